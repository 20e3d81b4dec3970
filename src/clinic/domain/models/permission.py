from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class Permission(BaseModel):
    id: UUID
    # Globally unique capability name, e.g. "team:manage".
    name: str
    description: Optional[str] = None


class Permissions:
    """Canonical permission names known to the system."""

    PATIENT_READ = "patient:read"
    PATIENT_CREATE = "patient:create"
    PATIENT_UPDATE = "patient:update"
    PATIENT_DELETE = "patient:delete"

    APPOINTMENT_READ = "appointment:read"
    APPOINTMENT_CREATE = "appointment:create"
    APPOINTMENT_UPDATE = "appointment:update"
    APPOINTMENT_DELETE = "appointment:delete"

    USER_READ = "user:read"
    USER_CREATE = "user:create"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"

    ROLE_READ = "role:read"
    ROLE_CREATE = "role:create"
    ROLE_UPDATE = "role:update"
    ROLE_DELETE = "role:delete"

    DASHBOARD_READ = "dashboard:read"

    CLINIC_UPDATE = "clinic:update"

    TEAM_READ = "team:read"
    TEAM_INVITE = "team:invite"
    TEAM_MANAGE = "team:manage"
    TEAM_TRANSFER_OWNERSHIP = "team:transfer_ownership"

    USER_MANAGE = "user:manage"

    # Marks a role whose holders are bookable doctors.
    IS_DOCTOR = "role:doctor"


def all_permission_names() -> List[str]:
    return [
        value
        for key, value in vars(Permissions).items()
        if key.isupper() and isinstance(value, str)
    ]
