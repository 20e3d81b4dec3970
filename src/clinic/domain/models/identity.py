from __future__ import annotations

from typing import FrozenSet, Optional
from uuid import UUID

from pydantic import BaseModel

from src.clinic.domain.models.clinic import Membership
from src.clinic.domain.models.role import Role
from src.clinic.domain.models.user import User


class ActingIdentity(BaseModel):
    """The caller of a request, resolved against its active clinic.

    ``permissions`` is empty when there is no clinic context or the user has
    no membership in the active clinic.
    """

    user: User
    clinic_id: Optional[UUID] = None
    membership: Optional[Membership] = None
    role: Optional[Role] = None
    permissions: FrozenSet[str] = frozenset()
