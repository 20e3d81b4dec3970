from __future__ import annotations

from typing import Dict, List, Optional, Sequence
from uuid import UUID, uuid4

from src.clinic.domain.models.availability import AvailabilitySlot, AvailabilityWindow
from src.clinic.domain.models.clinic import Clinic, Membership
from src.clinic.domain.models.invitation import Invitation, InvitationStatus
from src.clinic.domain.models.permission import Permission
from src.clinic.domain.models.role import Role
from src.clinic.domain.models.user import User
from src.clinic.infra.db.repositories import (
    AvailabilityRepository,
    ClinicRepository,
    InvitationRepository,
    MembershipRepository,
    PermissionRepository,
    RepositoryRegistry,
    RoleRepository,
    UserRepository,
)

# Records are copied on the way in and out so that callers cannot mutate
# stored state without going through save(), matching the SQL repositories.


class InMemoryPermissionRepository(PermissionRepository):
    def __init__(self) -> None:
        self._permissions: Dict[UUID, Permission] = {}

    def get(self, permission_id: UUID) -> Optional[Permission]:
        permission = self._permissions.get(permission_id)
        return permission.model_copy() if permission else None

    def get_by_name(self, name: str) -> Optional[Permission]:
        for permission in self._permissions.values():
            if permission.name == name:
                return permission.model_copy()
        return None

    def list_all(self) -> List[Permission]:
        return sorted((p.model_copy() for p in self._permissions.values()), key=lambda p: p.name)

    def save(self, permission: Permission) -> None:
        self._permissions[permission.id] = permission.model_copy()


class InMemoryMembershipRepository(MembershipRepository):
    def __init__(self) -> None:
        self._memberships: Dict[UUID, Membership] = {}

    def get(self, membership_id: UUID) -> Optional[Membership]:
        membership = self._memberships.get(membership_id)
        return membership.model_copy() if membership else None

    def get_for_user(self, user_id: UUID, clinic_id: UUID) -> Optional[Membership]:
        for membership in self._memberships.values():
            if membership.user_id == user_id and membership.clinic_id == clinic_id:
                return membership.model_copy()
        return None

    def list_by_clinic(self, clinic_id: UUID) -> List[Membership]:
        members = [m.model_copy() for m in self._memberships.values() if m.clinic_id == clinic_id]
        return sorted(members, key=lambda m: m.created_at)

    def count_by_role(self, role_id: UUID) -> int:
        return sum(1 for m in self._memberships.values() if m.role_id == role_id)

    def save(self, membership: Membership) -> None:
        existing = self.get_for_user(membership.user_id, membership.clinic_id)
        if existing is not None and existing.id != membership.id:
            raise ValueError("User already has a membership in this clinic")
        self._memberships[membership.id] = membership.model_copy()

    def delete(self, membership_id: UUID) -> None:
        self._memberships.pop(membership_id, None)


class InMemoryInvitationRepository(InvitationRepository):
    def __init__(self) -> None:
        self._invitations: Dict[UUID, Invitation] = {}

    def get(self, invitation_id: UUID) -> Optional[Invitation]:
        invitation = self._invitations.get(invitation_id)
        return invitation.model_copy() if invitation else None

    def get_by_token(self, token: str) -> Optional[Invitation]:
        for invitation in self._invitations.values():
            if invitation.token == token:
                return invitation.model_copy()
        return None

    def find_pending(self, email: str, clinic_id: UUID) -> Optional[Invitation]:
        for invitation in self._invitations.values():
            if (
                invitation.email.lower() == email.lower()
                and invitation.clinic_id == clinic_id
                and invitation.status == InvitationStatus.PENDING
            ):
                return invitation.model_copy()
        return None

    def list_by_clinic(self, clinic_id: UUID) -> List[Invitation]:
        invitations = [i.model_copy() for i in self._invitations.values() if i.clinic_id == clinic_id]
        return sorted(invitations, key=lambda i: i.created_at)

    def save(self, invitation: Invitation) -> None:
        self._invitations[invitation.id] = invitation.model_copy()

    def delete(self, invitation_id: UUID) -> None:
        self._invitations.pop(invitation_id, None)


class InMemoryRoleRepository(RoleRepository):
    def __init__(
        self,
        memberships: InMemoryMembershipRepository,
        invitations: InMemoryInvitationRepository,
    ) -> None:
        self._roles: Dict[UUID, Role] = {}
        self._memberships = memberships
        self._invitations = invitations

    def get(self, role_id: UUID) -> Optional[Role]:
        role = self._roles.get(role_id)
        return role.model_copy(deep=True) if role else None

    def get_by_name(self, name: str) -> Optional[Role]:
        for role in self._roles.values():
            if role.name == name:
                return role.model_copy(deep=True)
        return None

    def list_all(self) -> List[Role]:
        roles = [r.model_copy(deep=True) for r in self._roles.values()]
        return sorted(roles, key=lambda r: (-r.priority, r.name))

    def save(self, role: Role) -> None:
        self._roles[role.id] = role.model_copy(deep=True)

    def delete(self, role_id: UUID, *, transfer_to_role_id: Optional[UUID] = None) -> int:
        if role_id not in self._roles:
            raise KeyError("Role not found")
        if transfer_to_role_id is not None and transfer_to_role_id not in self._roles:
            raise KeyError("Transfer role not found")

        moved = 0
        if transfer_to_role_id is not None:
            for membership in self._memberships._memberships.values():
                if membership.role_id == role_id:
                    membership.role_id = transfer_to_role_id
                    moved += 1
            for invitation in self._invitations._invitations.values():
                if invitation.role_id == role_id:
                    invitation.role_id = transfer_to_role_id
        elif self._memberships.count_by_role(role_id):
            raise ValueError("Role still has members")
        else:
            for invitation_id in [i.id for i in self._invitations._invitations.values() if i.role_id == role_id]:
                del self._invitations._invitations[invitation_id]

        del self._roles[role_id]
        return moved


class InMemoryClinicRepository(ClinicRepository):
    def __init__(self) -> None:
        self._clinics: Dict[UUID, Clinic] = {}

    def get(self, clinic_id: UUID) -> Optional[Clinic]:
        clinic = self._clinics.get(clinic_id)
        return clinic.model_copy() if clinic else None

    def save(self, clinic: Clinic) -> None:
        self._clinics[clinic.id] = clinic.model_copy()


class InMemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self._users: Dict[UUID, User] = {}

    def get(self, user_id: UUID) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    def get_by_email(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email.lower() == email.lower():
                return user.model_copy()
        return None

    def get_by_subject(self, subject: str) -> Optional[User]:
        for user in self._users.values():
            if user.subject is not None and user.subject == subject:
                return user.model_copy()
        return None

    def save(self, user: User) -> None:
        self._users[user.id] = user.model_copy()


class InMemoryAvailabilityRepository(AvailabilityRepository):
    def __init__(self) -> None:
        self._windows: Dict[UUID, AvailabilityWindow] = {}

    def list_for_doctor(
        self,
        doctor_id: UUID,
        *,
        clinic_id: Optional[UUID] = None,
        exclude_clinic_id: Optional[UUID] = None,
    ) -> List[AvailabilityWindow]:
        results: List[AvailabilityWindow] = []
        for window in self._windows.values():
            if window.doctor_id != doctor_id:
                continue
            if clinic_id is not None and window.clinic_id != clinic_id:
                continue
            if exclude_clinic_id is not None and window.clinic_id == exclude_clinic_id:
                continue
            results.append(window.model_copy())
        return sorted(results, key=lambda w: (w.day_of_week, w.start_time))

    def replace_for_doctor(
        self,
        doctor_id: UUID,
        clinic_id: UUID,
        slots: Sequence[AvailabilitySlot],
    ) -> List[AvailabilityWindow]:
        created = [
            AvailabilityWindow(
                id=uuid4(),
                doctor_id=doctor_id,
                clinic_id=clinic_id,
                day_of_week=slot.day_of_week,
                start_time=slot.start_time,
                end_time=slot.end_time,
            )
            for slot in slots
        ]

        stale = [
            window_id
            for window_id, window in self._windows.items()
            if window.doctor_id == doctor_id and window.clinic_id == clinic_id
        ]
        for window_id in stale:
            del self._windows[window_id]
        for window in created:
            self._windows[window.id] = window

        return self.list_for_doctor(doctor_id, clinic_id=clinic_id)


def create_inmemory_repositories() -> RepositoryRegistry:
    memberships = InMemoryMembershipRepository()
    invitations = InMemoryInvitationRepository()
    return RepositoryRegistry(
        permissions=InMemoryPermissionRepository(),
        roles=InMemoryRoleRepository(memberships, invitations),
        memberships=memberships,
        clinics=InMemoryClinicRepository(),
        users=InMemoryUserRepository(),
        availability=InMemoryAvailabilityRepository(),
        invitations=invitations,
    )
