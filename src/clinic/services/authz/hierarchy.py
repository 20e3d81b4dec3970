from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from src.clinic.infra.db.registry import get_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry

logger = logging.getLogger("authz")

# Priority reported for a role that cannot be found: no authority.
MISSING_ROLE_PRIORITY = 0


class RoleHierarchy:
    """Numeric role-priority comparisons between roles and clinic members.

    Higher priority means more authority and comparisons are strict, so equal
    priorities never manage each other. Clinic ownership is not part of this
    class; callers combine :meth:`is_clinic_owner` with the hierarchy checks
    themselves.
    """

    def __init__(self, repositories: Optional[RepositoryRegistry] = None) -> None:
        self._repositories = repositories

    @property
    def _repos(self) -> RepositoryRegistry:
        return self._repositories or get_repositories()

    def get_role_priority(self, role_id: UUID) -> int:
        role = self._repos.roles.get(role_id)
        if role is None:
            logger.debug("Role %s not found; treating priority as %d", role_id, MISSING_ROLE_PRIORITY)
            return MISSING_ROLE_PRIORITY
        return role.priority

    def can_manage_role(self, acting_role_id: UUID, target_role_id: UUID) -> bool:
        return self.get_role_priority(acting_role_id) > self.get_role_priority(target_role_id)

    def get_user_role_priority(self, user_id: UUID, clinic_id: UUID) -> Optional[int]:
        """Priority of the user's role in the clinic, or None without a membership."""

        membership = self._repos.memberships.get_for_user(user_id, clinic_id)
        if membership is None:
            return None
        return self.get_role_priority(membership.role_id)

    def can_manage_user(self, actor_user_id: UUID, target_user_id: UUID, clinic_id: UUID) -> bool:
        actor_priority = self.get_user_role_priority(actor_user_id, clinic_id)
        target_priority = self.get_user_role_priority(target_user_id, clinic_id)

        if actor_priority is None or target_priority is None:
            return False

        return actor_priority > target_priority

    def is_clinic_owner(self, user_id: UUID, clinic_id: UUID) -> bool:
        clinic = self._repos.clinics.get(clinic_id)
        return clinic is not None and clinic.owner_id == user_id


role_hierarchy = RoleHierarchy()
