from __future__ import annotations

from contextvars import ContextVar
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.clinic.config import settings
from src.clinic.domain.models.identity import ActingIdentity
from src.clinic.domain.models.user import User
from src.clinic.services.audit.service import audit_service
from src.clinic.services.authz.identity import resolve_identity
from src.clinic.services.authz.permissions import has_permission
from src.clinic.services.users.service import subject_for_api_key, user_service
from src.clinic.tenancy import clinic_dependency

# API key is expected in this header when ENABLE_API_AUTH is true.
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Context variable storing a stable, non-raw identifier for the current caller
# (a hashed API key), so that raw secrets never reach logs.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)


def get_current_subject() -> Optional[str]:
    """Return the current subject identifier, if any.

    This is set by ``get_api_key`` when API authentication is enabled.
    """

    return _current_subject.get()


def _parse_api_keys() -> List[str]:
    """Return the configured API keys as a normalized list.

    API_KEYS is treated as a comma-separated list. Whitespace is stripped and
    empty entries are ignored.
    """

    if not settings.api_keys:
        return []
    return [key.strip() for key in settings.api_keys.split(",") if key.strip()]


def is_configured_api_key(api_key: str) -> bool:
    """Return True when ``api_key`` is one of the keys listed in API_KEYS."""

    return api_key.strip() in _parse_api_keys()


async def get_api_key(api_key: Optional[str] = Security(_api_key_header)) -> str:
    """FastAPI dependency for simple API-key based authentication.

    - If ENABLE_API_AUTH is false (default for development/tests), this is a
      no-op and always succeeds.
    - If ENABLE_API_AUTH is true, a valid API key must be supplied in the
      X-API-Key header and match the configured API_KEYS list.
    """

    if not settings.enable_api_auth:
        _current_subject.set(None)
        return ""

    allowed_keys = _parse_api_keys()
    if not allowed_keys:
        # Misconfiguration: auth is enabled but no keys are configured.
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API authentication is enabled but no API keys are configured.",
        )

    if not api_key or api_key not in allowed_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key.",
        )

    _current_subject.set(subject_for_api_key(api_key))
    return api_key


async def get_current_user(
    api_key: str = Depends(get_api_key),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
) -> User:
    """Resolve the registered User making the request.

    With API auth enabled the hashed key must be bound to a user. With auth
    disabled (development and tests) the caller names itself through the
    X-User-ID header instead.
    """

    subject = get_current_subject()
    if subject is not None:
        user = user_service.get_user_by_subject(subject)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="API key is not bound to a user.",
            )
        return user

    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required.",
        )

    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID must be a UUID.",
        )

    user = user_service.get_user(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user.",
        )
    return user


async def get_acting_identity(
    current_user: User = Depends(get_current_user),
    clinic_id: Optional[UUID] = Depends(clinic_dependency),
) -> ActingIdentity:
    """Resolve the caller's membership, role and permissions in the active clinic."""

    return resolve_identity(current_user, clinic_id)


def require_permissions(*names: str) -> Callable[..., Awaitable[ActingIdentity]]:
    """Build a dependency that raises HTTP 403 unless every permission is held."""

    async def _dependency(identity: ActingIdentity = Depends(get_acting_identity)) -> ActingIdentity:
        if not has_permission(identity.permissions, names):
            audit_service.log_event(
                action="require_permissions",
                resource_type="permission",
                subject=str(identity.user.id),
                clinic_id=str(identity.clinic_id) if identity.clinic_id else None,
                outcome="denied",
                extra={"required": list(names)},
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Missing required permissions",
            )
        return identity

    return _dependency
