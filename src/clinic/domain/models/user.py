from __future__ import annotations

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr


class PlatformRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class User(BaseModel):
    id: UUID
    email: EmailStr
    name: Optional[str] = None
    # Platform-wide role. Only admins may administer the role catalog; clinic
    # level authority comes from memberships instead.
    platform_role: PlatformRole = PlatformRole.USER
    # Stable hash-derived identifier of the API key bound to this user, when
    # API authentication is enabled.
    subject: Optional[str] = None

    @property
    def is_platform_admin(self) -> bool:
        return self.platform_role == PlatformRole.ADMIN
