from __future__ import annotations

import logging
from typing import Dict, List, Optional
from uuid import uuid4

from src.clinic.config import settings
from src.clinic.domain.models.permission import Permission, Permissions, all_permission_names
from src.clinic.domain.models.role import Role
from src.clinic.domain.models.user import PlatformRole, User
from src.clinic.infra.db.registry import get_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry
from src.clinic.services.users.service import subject_for_api_key

logger = logging.getLogger("seed")

SUPER_ADMIN = "SUPER_ADMIN"

# name -> (priority, permission names). SUPER_ADMIN receives every permission.
DEFAULT_ROLES: Dict[str, tuple[int, List[str]]] = {
    SUPER_ADMIN: (100, []),
    "CLINIC_MANAGER": (
        50,
        [
            Permissions.PATIENT_READ,
            Permissions.PATIENT_CREATE,
            Permissions.PATIENT_UPDATE,
            Permissions.PATIENT_DELETE,
            Permissions.APPOINTMENT_READ,
            Permissions.APPOINTMENT_CREATE,
            Permissions.APPOINTMENT_UPDATE,
            Permissions.APPOINTMENT_DELETE,
            Permissions.USER_READ,
            Permissions.USER_MANAGE,
            Permissions.ROLE_READ,
            Permissions.DASHBOARD_READ,
            Permissions.CLINIC_UPDATE,
            Permissions.TEAM_READ,
            Permissions.TEAM_INVITE,
            Permissions.TEAM_MANAGE,
            Permissions.TEAM_TRANSFER_OWNERSHIP,
        ],
    ),
    "DOCTOR": (
        30,
        [
            Permissions.IS_DOCTOR,
            Permissions.PATIENT_READ,
            Permissions.PATIENT_CREATE,
            Permissions.PATIENT_UPDATE,
            Permissions.APPOINTMENT_READ,
            Permissions.APPOINTMENT_CREATE,
            Permissions.APPOINTMENT_UPDATE,
            Permissions.DASHBOARD_READ,
            Permissions.TEAM_READ,
        ],
    ),
    "RECEPTIONIST": (
        10,
        [
            Permissions.PATIENT_READ,
            Permissions.PATIENT_CREATE,
            Permissions.APPOINTMENT_READ,
            Permissions.APPOINTMENT_CREATE,
            Permissions.APPOINTMENT_UPDATE,
            Permissions.DASHBOARD_READ,
            Permissions.TEAM_READ,
        ],
    ),
}


def seed_defaults(repositories: Optional[RepositoryRegistry] = None) -> None:
    """Idempotently create the permission catalog and the default roles.

    Existing roles keep their priority and permissions, except SUPER_ADMIN,
    which is always reset to hold every permission.
    """

    repos = repositories or get_repositories()

    by_name: Dict[str, Permission] = {}
    for name in all_permission_names():
        permission = repos.permissions.get_by_name(name)
        if permission is None:
            permission = Permission(id=uuid4(), name=name)
            repos.permissions.save(permission)
        by_name[name] = permission

    for role_name, (priority, permission_names) in DEFAULT_ROLES.items():
        if role_name == SUPER_ADMIN:
            permissions = sorted(by_name.values(), key=lambda p: p.name)
        else:
            permissions = sorted((by_name[n] for n in permission_names), key=lambda p: p.name)

        role = repos.roles.get_by_name(role_name)
        if role is None:
            role = Role(
                id=uuid4(),
                name=role_name,
                priority=priority,
                permissions=permissions,
                is_system_role=role_name == SUPER_ADMIN,
            )
            repos.roles.save(role)
        elif role_name == SUPER_ADMIN:
            role.permissions = permissions
            role.is_system_role = True
            repos.roles.save(role)

    _seed_super_admin(repos)
    logger.info("Seeded %d permissions and %d roles", len(by_name), len(DEFAULT_ROLES))


def _seed_super_admin(repos: RepositoryRegistry) -> None:
    email = settings.super_admin_email
    if not email:
        return

    user = repos.users.get_by_email(email)
    if user is None:
        user = User(
            id=uuid4(),
            email=email,
            name=settings.super_admin_name,
            platform_role=PlatformRole.ADMIN,
        )
        repos.users.save(user)
        logger.info("Created platform administrator %s", user.id)

    if settings.super_admin_api_key:
        subject = subject_for_api_key(settings.super_admin_api_key)
        if user.subject != subject:
            user.subject = subject
            repos.users.save(user)
            logger.info("Bound configured API key to platform administrator %s", user.id)
