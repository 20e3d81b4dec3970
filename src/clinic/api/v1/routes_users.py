from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from src.clinic.domain.models.clinic import Clinic
from src.clinic.domain.models.identity import ActingIdentity
from src.clinic.domain.models.permission import Permission
from src.clinic.domain.models.user import User
from src.clinic.errors import ValidationError
from src.clinic.security import get_acting_identity, get_current_user, is_configured_api_key
from src.clinic.services.roles.service import role_admin_service
from src.clinic.services.team.service import team_service
from src.clinic.services.users.service import user_service


router = APIRouter(tags=["users"])


class RegisterUserRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = None


class CreateClinicRequest(BaseModel):
    name: str = Field(min_length=1)
    owner_role_id: Optional[UUID] = None


class BindApiKeyRequest(BaseModel):
    # Must be one of the keys configured in API_KEYS.
    api_key: str = Field(min_length=1)


class MyPermissionsResponse(BaseModel):
    user_id: UUID
    clinic_id: Optional[UUID] = None
    role_id: Optional[UUID] = None
    role_name: Optional[str] = None
    permissions: List[str]


@router.post("/users", response_model=User, status_code=status.HTTP_201_CREATED)
async def register_user(payload: RegisterUserRequest) -> User:
    return user_service.register_user(email=payload.email, name=payload.name)


@router.get("/me", response_model=User)
async def get_me(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.get("/me/permissions", response_model=MyPermissionsResponse)
async def get_my_permissions(identity: ActingIdentity = Depends(get_acting_identity)) -> MyPermissionsResponse:
    return MyPermissionsResponse(
        user_id=identity.user.id,
        clinic_id=identity.clinic_id,
        role_id=identity.role.id if identity.role else None,
        role_name=identity.role.name if identity.role else None,
        permissions=sorted(identity.permissions),
    )


@router.get("/permissions", response_model=List[Permission])
async def list_permissions(current_user: User = Depends(get_current_user)) -> List[Permission]:
    return role_admin_service.list_permissions()


@router.post("/clinics", response_model=Clinic, status_code=status.HTTP_201_CREATED)
async def create_clinic(
    payload: CreateClinicRequest,
    current_user: User = Depends(get_current_user),
) -> Clinic:
    return team_service.create_clinic(current_user, payload.name, owner_role_id=payload.owner_role_id)


def _assign_api_key(actor: User, user_id: UUID, api_key: str) -> User:
    if not is_configured_api_key(api_key):
        raise ValidationError("API key is not one of the configured API keys")
    return user_service.assign_api_key(actor, user_id, api_key.strip())


@router.post("/me/api-key", response_model=User)
async def bind_my_api_key(
    payload: BindApiKeyRequest,
    current_user: User = Depends(get_current_user),
) -> User:
    """Bind a configured API key to the caller, so requests made with it resolve to them."""

    return _assign_api_key(current_user, current_user.id, payload.api_key)


@router.post("/users/{user_id}/api-key", response_model=User)
async def bind_user_api_key(
    user_id: UUID,
    payload: BindApiKeyRequest,
    current_user: User = Depends(get_current_user),
) -> User:
    """Platform administrators bind configured API keys to other users."""

    return _assign_api_key(current_user, user_id, payload.api_key)
