from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr

from src.clinic.domain.models.clinic import Clinic, Membership, TeamMember
from src.clinic.domain.models.identity import ActingIdentity
from src.clinic.domain.models.invitation import Invitation, InvitationSummary
from src.clinic.domain.models.permission import Permissions
from src.clinic.domain.models.user import User
from src.clinic.security import get_acting_identity, get_api_key, get_current_user, require_permissions
from src.clinic.services.team.service import team_service
from src.clinic.tenancy import clinic_dependency


router = APIRouter(
    prefix="/team",
    tags=["team"],
    dependencies=[Depends(get_api_key), Depends(clinic_dependency)],
)


class ChangeRoleRequest(BaseModel):
    membership_id: UUID
    new_role_id: UUID


class TransferOwnershipRequest(BaseModel):
    new_owner_id: UUID


class InviteRequest(BaseModel):
    email: EmailStr
    role_id: UUID


class AcceptInvitationRequest(BaseModel):
    token: str


class ActionResponse(BaseModel):
    success: bool
    message: str


@router.get("/members", response_model=List[TeamMember])
async def list_members(identity: ActingIdentity = Depends(get_acting_identity)) -> List[TeamMember]:
    return team_service.list_members(identity)


@router.patch("/change-role", response_model=Membership)
async def change_role(
    payload: ChangeRoleRequest,
    identity: ActingIdentity = Depends(get_acting_identity),
) -> Membership:
    return team_service.change_role(identity, payload.membership_id, payload.new_role_id)


@router.delete("/members/{membership_id}", response_model=ActionResponse)
async def remove_member(
    membership_id: UUID,
    identity: ActingIdentity = Depends(get_acting_identity),
) -> ActionResponse:
    team_service.remove_member(identity, membership_id)
    return ActionResponse(success=True, message="Member removed successfully")


@router.post("/transfer-ownership", response_model=Clinic)
async def transfer_ownership(
    payload: TransferOwnershipRequest,
    identity: ActingIdentity = Depends(get_acting_identity),
) -> Clinic:
    return team_service.transfer_ownership(identity, payload.new_owner_id)


@router.get("/invitations", response_model=List[InvitationSummary])
async def list_invitations(
    identity: ActingIdentity = Depends(require_permissions(Permissions.TEAM_READ)),
) -> List[InvitationSummary]:
    # Tokens are only returned to the inviter when the invitation is created.
    return [
        InvitationSummary.model_validate(invitation.model_dump())
        for invitation in team_service.list_invitations(identity.clinic_id)
    ]


@router.post("/invitations", response_model=Invitation, status_code=status.HTTP_201_CREATED)
async def invite(
    payload: InviteRequest,
    identity: ActingIdentity = Depends(get_acting_identity),
) -> Invitation:
    return team_service.invite(identity, payload.email, payload.role_id)


@router.delete("/invitations/{invitation_id}", response_model=ActionResponse)
async def cancel_invitation(
    invitation_id: UUID,
    identity: ActingIdentity = Depends(get_acting_identity),
) -> ActionResponse:
    team_service.cancel_invitation(identity, invitation_id)
    return ActionResponse(success=True, message="Invitation cancelled successfully")


@router.post("/invitations/accept", response_model=Membership)
async def accept_invitation(
    payload: AcceptInvitationRequest,
    current_user: User = Depends(get_current_user),
) -> Membership:
    return team_service.accept_invitation(current_user, payload.token)
