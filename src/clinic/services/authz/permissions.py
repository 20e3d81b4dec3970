from __future__ import annotations

from typing import AbstractSet, Sequence, Union

from src.clinic.domain.models.identity import ActingIdentity
from src.clinic.errors import PermissionDeniedError
from src.clinic.services.audit.service import audit_service

RequiredPermissions = Union[str, Sequence[str]]


def has_permission(granted: AbstractSet[str], required: RequiredPermissions) -> bool:
    """Return True only if every required permission is in ``granted``.

    ``required`` is a single permission name or a sequence of names. An empty
    sequence is satisfied by any identity; an identity with no permissions
    fails every non-empty request.
    """

    if isinstance(required, str):
        required = (required,)
    return all(name in granted for name in required)


def ensure_permission(
    identity: ActingIdentity,
    required: RequiredPermissions,
    *,
    action: str,
    detail: str,
) -> None:
    """Raise PermissionDeniedError (and audit the denial) unless permitted."""

    if has_permission(identity.permissions, required):
        return

    audit_service.log_event(
        action=action,
        resource_type="permission",
        subject=str(identity.user.id),
        clinic_id=str(identity.clinic_id) if identity.clinic_id else None,
        outcome="denied",
        extra={"required": [required] if isinstance(required, str) else list(required)},
    )
    raise PermissionDeniedError(detail)
