from __future__ import annotations

import logging
from typing import List, Optional, Sequence
from uuid import UUID, uuid4

from src.clinic.domain.models.permission import Permission
from src.clinic.domain.models.role import Role
from src.clinic.domain.models.user import User
from src.clinic.errors import NotFoundError, PermissionDeniedError, ValidationError
from src.clinic.infra.db.registry import get_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry
from src.clinic.services.audit.service import audit_service

logger = logging.getLogger("authz")


class RoleAdminService:
    """Platform-level administration of the role catalog.

    Only platform administrators may create, edit or delete roles. System
    roles are read-only here.
    """

    def __init__(self, repositories: Optional[RepositoryRegistry] = None) -> None:
        self._repositories = repositories

    @property
    def _repos(self) -> RepositoryRegistry:
        return self._repositories or get_repositories()

    def _ensure_admin(self, actor: User, action: str, role_id: Optional[UUID] = None) -> None:
        if actor.is_platform_admin:
            return
        audit_service.log_event(
            action=action,
            resource_type="role",
            resource_id=str(role_id) if role_id else None,
            subject=str(actor.id),
            outcome="denied",
        )
        raise PermissionDeniedError("Only platform administrators can manage roles")

    def _resolve_permissions(self, permission_ids: Sequence[UUID]) -> List[Permission]:
        resolved: List[Permission] = []
        seen = set()
        for permission_id in permission_ids:
            if permission_id in seen:
                continue
            permission = self._repos.permissions.get(permission_id)
            if permission is None:
                raise ValidationError(f"Unknown permission id: {permission_id}")
            seen.add(permission_id)
            resolved.append(permission)
        return sorted(resolved, key=lambda p: p.name)

    def _ensure_below_system_roles(self, priority: int) -> None:
        # System roles stay strictly above every custom role.
        system_priorities = [r.priority for r in self._repos.roles.list_all() if r.is_system_role]
        if system_priorities and priority >= min(system_priorities):
            raise ValidationError(f"Role priority must be below {min(system_priorities)}")

    def list_roles(self) -> List[Role]:
        return self._repos.roles.list_all()

    def list_permissions(self) -> List[Permission]:
        return self._repos.permissions.list_all()

    def create_role(
        self,
        actor: User,
        *,
        name: str,
        priority: int = 0,
        permission_ids: Sequence[UUID] = (),
    ) -> Role:
        self._ensure_admin(actor, "create_role")

        if self._repos.roles.get_by_name(name) is not None:
            raise ValidationError("Role with this name already exists")
        self._ensure_below_system_roles(priority)

        role = Role(
            id=uuid4(),
            name=name,
            priority=priority,
            permissions=self._resolve_permissions(permission_ids),
        )
        self._repos.roles.save(role)

        audit_service.log_event(
            action="create_role",
            resource_type="role",
            resource_id=str(role.id),
            subject=str(actor.id),
            extra={"priority": priority, "permission_count": len(role.permissions)},
        )
        return role

    def update_role(
        self,
        actor: User,
        role_id: UUID,
        *,
        name: Optional[str] = None,
        priority: Optional[int] = None,
        permission_ids: Optional[Sequence[UUID]] = None,
    ) -> Role:
        """Rename, re-rank or replace the permission set of a role.

        A given ``permission_ids`` replaces the whole set; None leaves it as is.
        """

        self._ensure_admin(actor, "update_role", role_id)

        role = self._repos.roles.get(role_id)
        if role is None:
            raise NotFoundError("Role not found")
        if role.is_system_role:
            raise PermissionDeniedError("System roles cannot be modified")

        if name and name != role.name:
            existing = self._repos.roles.get_by_name(name)
            if existing is not None and existing.id != role_id:
                raise ValidationError("Role with this name already exists")
            role.name = name
        if priority is not None:
            self._ensure_below_system_roles(priority)
            role.priority = priority
        if permission_ids is not None:
            role.permissions = self._resolve_permissions(permission_ids)

        self._repos.roles.save(role)

        audit_service.log_event(
            action="update_role",
            resource_type="role",
            resource_id=str(role_id),
            subject=str(actor.id),
            extra={"priority": role.priority, "permission_count": len(role.permissions)},
        )
        return role

    def delete_role(self, actor: User, role_id: UUID, *, transfer_to_role_id: Optional[UUID] = None) -> int:
        """Delete a role, moving its members to ``transfer_to_role_id`` first.

        Every precondition is checked before anything is written. Returns the
        number of memberships that were transferred.
        """

        self._ensure_admin(actor, "delete_role", role_id)

        role = self._repos.roles.get(role_id)
        if role is None:
            raise NotFoundError("Role not found")
        if role.is_system_role:
            raise PermissionDeniedError("System roles cannot be deleted")

        member_count = self._repos.memberships.count_by_role(role_id)
        if member_count > 0 and transfer_to_role_id is None:
            raise ValidationError("Cannot delete role with users. Please transfer users first.")

        if transfer_to_role_id is not None:
            if transfer_to_role_id == role_id:
                raise ValidationError("Cannot transfer users to the role being deleted")
            if self._repos.roles.get(transfer_to_role_id) is None:
                raise NotFoundError("Transfer role not found")

        moved = self._repos.roles.delete(role_id, transfer_to_role_id=transfer_to_role_id)
        logger.info("Role %s deleted; %d memberships transferred", role_id, moved)

        audit_service.log_event(
            action="delete_role",
            resource_type="role",
            resource_id=str(role_id),
            subject=str(actor.id),
            extra={
                "transferred_users": moved,
                "transfer_to_role_id": str(transfer_to_role_id) if transfer_to_role_id else None,
            },
        )
        return moved


role_admin_service = RoleAdminService()
