from __future__ import annotations

from typing import Optional
from uuid import UUID

from src.clinic.domain.models.identity import ActingIdentity
from src.clinic.domain.models.user import User
from src.clinic.infra.db.registry import get_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry


def resolve_identity(
    user: User,
    clinic_id: Optional[UUID],
    repositories: Optional[RepositoryRegistry] = None,
) -> ActingIdentity:
    """Attach the user's membership, role and permission set in ``clinic_id``."""

    if clinic_id is None:
        return ActingIdentity(user=user)

    repos = repositories or get_repositories()
    membership = repos.memberships.get_for_user(user.id, clinic_id)
    if membership is None:
        return ActingIdentity(user=user, clinic_id=clinic_id)

    role = repos.roles.get(membership.role_id)
    return ActingIdentity(
        user=user,
        clinic_id=clinic_id,
        membership=membership,
        role=role,
        permissions=role.permission_names if role else frozenset(),
    )
