from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    EXPIRED = "EXPIRED"


class Invitation(BaseModel):
    id: UUID
    email: EmailStr
    clinic_id: UUID
    role_id: UUID
    inviter_id: UUID
    token: str
    status: InvitationStatus = InvitationStatus.PENDING
    created_at: datetime
    expires_at: datetime


class InvitationSummary(BaseModel):
    """An invitation as shown in team listings, without its acceptance token."""

    id: UUID
    email: EmailStr
    clinic_id: UUID
    role_id: UUID
    inviter_id: UUID
    status: InvitationStatus
    created_at: datetime
    expires_at: datetime
