from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from src.clinic.domain.models.role import Role
from src.clinic.domain.models.user import User
from src.clinic.security import get_api_key, get_current_user
from src.clinic.services.roles.service import role_admin_service


router = APIRouter(
    prefix="/roles",
    tags=["roles"],
    dependencies=[Depends(get_api_key)],
)


class CreateRoleRequest(BaseModel):
    name: str = Field(min_length=1)
    priority: int = Field(default=0, ge=0)
    permission_ids: List[UUID] = Field(default_factory=list)


class UpdateRoleRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    priority: Optional[int] = Field(default=None, ge=0)
    # When present, replaces the role's permission set wholesale.
    permission_ids: Optional[List[UUID]] = None


class DeleteRoleResponse(BaseModel):
    success: bool
    transferred_users: int


@router.get("/", response_model=List[Role])
async def list_roles(current_user: User = Depends(get_current_user)) -> List[Role]:
    return role_admin_service.list_roles()


@router.post("/", response_model=Role, status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: CreateRoleRequest,
    current_user: User = Depends(get_current_user),
) -> Role:
    return role_admin_service.create_role(
        current_user,
        name=payload.name,
        priority=payload.priority,
        permission_ids=payload.permission_ids,
    )


@router.patch("/{role_id}", response_model=Role)
async def update_role(
    role_id: UUID,
    payload: UpdateRoleRequest,
    current_user: User = Depends(get_current_user),
) -> Role:
    return role_admin_service.update_role(
        current_user,
        role_id,
        name=payload.name,
        priority=payload.priority,
        permission_ids=payload.permission_ids,
    )


@router.delete("/{role_id}", response_model=DeleteRoleResponse)
async def delete_role(
    role_id: UUID,
    transfer_to_role_id: Optional[UUID] = None,
    current_user: User = Depends(get_current_user),
) -> DeleteRoleResponse:
    moved = role_admin_service.delete_role(current_user, role_id, transfer_to_role_id=transfer_to_role_id)
    return DeleteRoleResponse(success=True, transferred_users=moved)
