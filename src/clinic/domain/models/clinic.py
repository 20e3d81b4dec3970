from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Clinic(BaseModel):
    id: UUID
    name: str
    # Owner authority is independent of role priority.
    owner_id: UUID


class Membership(BaseModel):
    """Binds a user to a clinic under exactly one role.

    At most one membership exists per (user_id, clinic_id) pair.
    """

    id: UUID
    user_id: UUID
    clinic_id: UUID
    role_id: UUID
    created_at: datetime


class TeamMember(BaseModel):
    """Membership joined with its user and role, for team listings."""

    membership_id: UUID
    user_id: UUID
    email: Optional[str] = None
    name: Optional[str] = None
    role_id: UUID
    role_name: Optional[str] = None
    role_priority: Optional[int] = None
    is_owner: bool = False
