from __future__ import annotations

from typing import FrozenSet, List
from uuid import UUID

from pydantic import BaseModel, Field

from src.clinic.domain.models.permission import Permission


class Role(BaseModel):
    """A named bundle of permissions with a priority used for hierarchy checks.

    Higher priority means strictly more authority. ``is_system_role`` marks the
    maximal built-in role, which the role-administration surface refuses to
    edit or delete.
    """

    id: UUID
    name: str
    priority: int = 0
    permissions: List[Permission] = Field(default_factory=list)
    is_system_role: bool = False

    @property
    def permission_names(self) -> FrozenSet[str]:
        return frozenset(p.name for p in self.permissions)
