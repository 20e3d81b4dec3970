from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, NoReturn, Optional
from uuid import UUID, uuid4

from src.clinic.config import settings
from src.clinic.domain.models.clinic import Clinic, Membership, TeamMember
from src.clinic.domain.models.identity import ActingIdentity
from src.clinic.domain.models.invitation import Invitation, InvitationStatus
from src.clinic.domain.models.permission import Permissions
from src.clinic.domain.models.user import User
from src.clinic.errors import GoneError, NotFoundError, PermissionDeniedError, ValidationError
from src.clinic.infra.db.registry import get_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry
from src.clinic.services.audit.service import audit_service
from src.clinic.services.authz.hierarchy import RoleHierarchy, role_hierarchy
from src.clinic.services.authz.permissions import ensure_permission

logger = logging.getLogger("authz")

# Role given to the creator of a new clinic when none is requested.
DEFAULT_OWNER_ROLE = "CLINIC_MANAGER"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TeamService:
    """Role-mutation workflows for clinic teams.

    Every mutation first requires a direct permission and then, where it
    applies, a role-hierarchy check against the actor's own role. The clinic
    owner bypasses hierarchy checks; ownership is checked separately from
    role priority.
    """

    def __init__(
        self,
        repositories: Optional[RepositoryRegistry] = None,
        hierarchy: Optional[RoleHierarchy] = None,
    ) -> None:
        self._repositories = repositories
        self._hierarchy = hierarchy

    @property
    def _repos(self) -> RepositoryRegistry:
        return self._repositories or get_repositories()

    @property
    def hierarchy(self) -> RoleHierarchy:
        if self._hierarchy is not None:
            return self._hierarchy
        if self._repositories is not None:
            return RoleHierarchy(self._repositories)
        return role_hierarchy

    # Helpers

    def _deny(self, identity: ActingIdentity, *, action: str, resource_type: str, resource_id: Optional[UUID], detail: str) -> NoReturn:
        audit_service.log_event(
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id else None,
            subject=str(identity.user.id),
            clinic_id=str(identity.clinic_id) if identity.clinic_id else None,
            outcome="denied",
            extra={"reason": detail},
        )
        raise PermissionDeniedError(detail)

    def _active_clinic(self, identity: ActingIdentity, action: str) -> Clinic:
        if identity.clinic_id is None:
            self._deny(identity, action=action, resource_type="clinic", resource_id=None, detail="An active clinic is required")
        clinic = self._repos.clinics.get(identity.clinic_id)
        if clinic is None:
            raise NotFoundError("Clinic not found")
        return clinic

    def _audit(self, identity: ActingIdentity, *, action: str, resource_type: str, resource_id: UUID, extra: Optional[dict] = None) -> None:
        audit_service.log_event(
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            subject=str(identity.user.id),
            clinic_id=str(identity.clinic_id) if identity.clinic_id else None,
            extra=extra,
        )

    # Clinics and members

    def create_clinic(self, owner: User, name: str, *, owner_role_id: Optional[UUID] = None) -> Clinic:
        """Create a clinic owned by ``owner`` and enroll the owner as a member."""

        if owner_role_id is None:
            role = self._repos.roles.get_by_name(DEFAULT_OWNER_ROLE)
        else:
            role = self._repos.roles.get(owner_role_id)
        if role is None:
            raise NotFoundError("Owner role not found")

        clinic = Clinic(id=uuid4(), name=name, owner_id=owner.id)
        self._repos.clinics.save(clinic)
        self.add_member(clinic.id, owner.id, role.id)
        logger.info("Clinic %s created by %s", clinic.id, owner.id)
        return clinic

    def add_member(self, clinic_id: UUID, user_id: UUID, role_id: UUID) -> Membership:
        """Directly assign a user to a clinic under a role."""

        if self._repos.memberships.get_for_user(user_id, clinic_id) is not None:
            raise ValidationError("User is already a member of this clinic")
        membership = Membership(
            id=uuid4(),
            user_id=user_id,
            clinic_id=clinic_id,
            role_id=role_id,
            created_at=_utcnow(),
        )
        self._repos.memberships.save(membership)
        return membership

    def list_members(self, identity: ActingIdentity) -> List[TeamMember]:
        clinic = self._active_clinic(identity, "list_members")
        ensure_permission(
            identity,
            Permissions.TEAM_READ,
            action="list_members",
            detail="You don't have permission to view team members",
        )

        members: List[TeamMember] = []
        for membership in self._repos.memberships.list_by_clinic(clinic.id):
            user = self._repos.users.get(membership.user_id)
            role = self._repos.roles.get(membership.role_id)
            members.append(
                TeamMember(
                    membership_id=membership.id,
                    user_id=membership.user_id,
                    email=user.email if user else None,
                    name=user.name if user else None,
                    role_id=membership.role_id,
                    role_name=role.name if role else None,
                    role_priority=role.priority if role else None,
                    is_owner=membership.user_id == clinic.owner_id,
                )
            )
        return members

    # Role changes and removal

    def change_role(self, identity: ActingIdentity, membership_id: UUID, new_role_id: UUID) -> Membership:
        action = "change_role"
        clinic = self._active_clinic(identity, action)
        ensure_permission(
            identity,
            Permissions.TEAM_MANAGE,
            action=action,
            detail="You don't have permission to manage team members",
        )

        membership = self._repos.memberships.get(membership_id)
        if membership is None:
            raise NotFoundError("Membership not found")
        if membership.clinic_id != clinic.id:
            self._deny(identity, action=action, resource_type="membership", resource_id=membership_id, detail="Forbidden")
        if identity.membership is None:
            self._deny(identity, action=action, resource_type="membership", resource_id=membership_id, detail="Forbidden")

        is_owner = self.hierarchy.is_clinic_owner(identity.user.id, clinic.id)

        if membership.user_id == identity.user.id and not is_owner:
            self._deny(
                identity,
                action=action,
                resource_type="membership",
                resource_id=membership_id,
                detail="You cannot change your own role",
            )

        if self._repos.roles.get(new_role_id) is None:
            raise NotFoundError("Role not found")

        actor_role_id = identity.membership.role_id
        if not is_owner and not self.hierarchy.can_manage_role(actor_role_id, new_role_id):
            self._deny(
                identity,
                action=action,
                resource_type="membership",
                resource_id=membership_id,
                detail="You can only assign roles below your own",
            )
        if not is_owner and not self.hierarchy.can_manage_role(actor_role_id, membership.role_id):
            self._deny(
                identity,
                action=action,
                resource_type="membership",
                resource_id=membership_id,
                detail="You cannot manage users with a role equal to or higher than yours",
            )

        previous_role_id = membership.role_id
        membership.role_id = new_role_id
        self._repos.memberships.save(membership)

        self._audit(
            identity,
            action=action,
            resource_type="membership",
            resource_id=membership_id,
            extra={"from_role_id": str(previous_role_id), "to_role_id": str(new_role_id), "owner_bypass": is_owner},
        )
        return membership

    def remove_member(self, identity: ActingIdentity, membership_id: UUID) -> None:
        action = "remove_member"
        clinic = self._active_clinic(identity, action)
        ensure_permission(
            identity,
            Permissions.TEAM_MANAGE,
            action=action,
            detail="You don't have permission to manage team members",
        )

        membership = self._repos.memberships.get(membership_id)
        if membership is None:
            raise NotFoundError("Membership not found")
        if membership.clinic_id != clinic.id:
            self._deny(identity, action=action, resource_type="membership", resource_id=membership_id, detail="Forbidden")

        if membership.user_id == identity.user.id:
            self._deny(
                identity,
                action=action,
                resource_type="membership",
                resource_id=membership_id,
                detail="You cannot remove yourself",
            )
        if membership.user_id == clinic.owner_id:
            self._deny(
                identity,
                action=action,
                resource_type="membership",
                resource_id=membership_id,
                detail="Cannot remove the clinic owner",
            )

        is_owner = self.hierarchy.is_clinic_owner(identity.user.id, clinic.id)
        if not is_owner and not self.hierarchy.can_manage_user(identity.user.id, membership.user_id, clinic.id):
            self._deny(
                identity,
                action=action,
                resource_type="membership",
                resource_id=membership_id,
                detail="You cannot remove users with a role equal to or higher than yours",
            )

        self._repos.memberships.delete(membership_id)
        self._audit(
            identity,
            action=action,
            resource_type="membership",
            resource_id=membership_id,
            extra={"user_id": str(membership.user_id), "owner_bypass": is_owner},
        )

    def transfer_ownership(self, identity: ActingIdentity, new_owner_id: UUID) -> Clinic:
        action = "transfer_ownership"
        clinic = self._active_clinic(identity, action)
        ensure_permission(
            identity,
            Permissions.TEAM_TRANSFER_OWNERSHIP,
            action=action,
            detail="You don't have permission to transfer ownership",
        )

        if clinic.owner_id != identity.user.id:
            self._deny(
                identity,
                action=action,
                resource_type="clinic",
                resource_id=clinic.id,
                detail="Only the owner can transfer ownership",
            )

        if self._repos.memberships.get_for_user(new_owner_id, clinic.id) is None:
            raise ValidationError("New owner must be a member of the clinic")

        previous_owner_id = clinic.owner_id
        clinic.owner_id = new_owner_id
        self._repos.clinics.save(clinic)

        self._audit(
            identity,
            action=action,
            resource_type="clinic",
            resource_id=clinic.id,
            extra={"from_user_id": str(previous_owner_id), "to_user_id": str(new_owner_id)},
        )
        return clinic

    # Invitations

    def invite(self, identity: ActingIdentity, email: str, role_id: UUID) -> Invitation:
        action = "invite"
        clinic = self._active_clinic(identity, action)
        ensure_permission(
            identity,
            Permissions.TEAM_INVITE,
            action=action,
            detail="You don't have permission to invite users",
        )

        invited_user = self._repos.users.get_by_email(email)
        if invited_user is not None and self._repos.memberships.get_for_user(invited_user.id, clinic.id) is not None:
            raise ValidationError("User is already a member of this clinic")
        if self._repos.invitations.find_pending(email, clinic.id) is not None:
            raise ValidationError("Invitation already sent to this email")

        if identity.membership is None:
            self._deny(identity, action=action, resource_type="invitation", resource_id=None, detail="Forbidden")
        if self._repos.roles.get(role_id) is None:
            raise NotFoundError("Role not found")

        is_owner = self.hierarchy.is_clinic_owner(identity.user.id, clinic.id)
        if not is_owner and not self.hierarchy.can_manage_role(identity.membership.role_id, role_id):
            self._deny(
                identity,
                action=action,
                resource_type="invitation",
                resource_id=None,
                detail="You cannot invite users with a role equal to or higher than yours",
            )

        now = _utcnow()
        invitation = Invitation(
            id=uuid4(),
            email=email,
            clinic_id=clinic.id,
            role_id=role_id,
            inviter_id=identity.user.id,
            token=secrets.token_urlsafe(24),
            status=InvitationStatus.PENDING,
            created_at=now,
            expires_at=now + timedelta(days=settings.invitation_ttl_days),
        )
        self._repos.invitations.save(invitation)

        self._audit(
            identity,
            action=action,
            resource_type="invitation",
            resource_id=invitation.id,
            extra={"role_id": str(role_id), "known_user": invited_user is not None},
        )
        return invitation

    def list_invitations(self, clinic_id: UUID) -> List[Invitation]:
        return self._repos.invitations.list_by_clinic(clinic_id)

    def cancel_invitation(self, identity: ActingIdentity, invitation_id: UUID) -> None:
        action = "cancel_invitation"
        clinic = self._active_clinic(identity, action)
        ensure_permission(
            identity,
            Permissions.TEAM_MANAGE,
            action=action,
            detail="You don't have permission to manage invitations",
        )

        invitation = self._repos.invitations.get(invitation_id)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if invitation.clinic_id != clinic.id:
            self._deny(identity, action=action, resource_type="invitation", resource_id=invitation_id, detail="Forbidden")
        if invitation.status != InvitationStatus.PENDING:
            raise ValidationError("Only pending invitations can be cancelled")

        self._repos.invitations.delete(invitation_id)
        self._audit(identity, action=action, resource_type="invitation", resource_id=invitation_id)

    def accept_invitation(self, user: User, token: str) -> Membership:
        invitation = self._repos.invitations.get_by_token(token)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if invitation.status != InvitationStatus.PENDING:
            raise ValidationError("Invitation is no longer pending")

        if _as_utc(invitation.expires_at) <= _utcnow():
            invitation.status = InvitationStatus.EXPIRED
            self._repos.invitations.save(invitation)
            raise GoneError("Invitation has expired")

        if invitation.email.lower() != user.email.lower():
            raise PermissionDeniedError("This invitation was sent to a different email address")
        if self._repos.roles.get(invitation.role_id) is None:
            raise NotFoundError("Role not found")

        membership = self.add_member(invitation.clinic_id, user.id, invitation.role_id)

        invitation.status = InvitationStatus.ACCEPTED
        self._repos.invitations.save(invitation)

        audit_service.log_event(
            action="accept_invitation",
            resource_type="invitation",
            resource_id=str(invitation.id),
            subject=str(user.id),
            clinic_id=str(invitation.clinic_id),
            extra={"membership_id": str(membership.id)},
        )
        return membership


team_service = TeamService()
