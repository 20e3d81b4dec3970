from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence
from uuid import UUID

from src.clinic.domain.models.availability import AvailabilitySlot, AvailabilityWindow
from src.clinic.domain.models.clinic import Clinic, Membership
from src.clinic.domain.models.invitation import Invitation
from src.clinic.domain.models.permission import Permission
from src.clinic.domain.models.role import Role
from src.clinic.domain.models.user import User


class PermissionRepository(ABC):
    @abstractmethod
    def get(self, permission_id: UUID) -> Optional[Permission]:
        raise NotImplementedError

    @abstractmethod
    def get_by_name(self, name: str) -> Optional[Permission]:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> List[Permission]:
        raise NotImplementedError

    @abstractmethod
    def save(self, permission: Permission) -> None:
        raise NotImplementedError


class RoleRepository(ABC):
    @abstractmethod
    def get(self, role_id: UUID) -> Optional[Role]:
        raise NotImplementedError

    @abstractmethod
    def get_by_name(self, name: str) -> Optional[Role]:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> List[Role]:
        raise NotImplementedError

    @abstractmethod
    def save(self, role: Role) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, role_id: UUID, *, transfer_to_role_id: Optional[UUID] = None) -> int:
        """Delete a role, first moving its memberships to ``transfer_to_role_id``.

        Reassignment and deletion form one atomic unit. Returns the number of
        memberships that were moved.
        """
        raise NotImplementedError


class MembershipRepository(ABC):
    @abstractmethod
    def get(self, membership_id: UUID) -> Optional[Membership]:
        raise NotImplementedError

    @abstractmethod
    def get_for_user(self, user_id: UUID, clinic_id: UUID) -> Optional[Membership]:
        raise NotImplementedError

    @abstractmethod
    def list_by_clinic(self, clinic_id: UUID) -> List[Membership]:
        raise NotImplementedError

    @abstractmethod
    def count_by_role(self, role_id: UUID) -> int:
        raise NotImplementedError

    @abstractmethod
    def save(self, membership: Membership) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, membership_id: UUID) -> None:
        raise NotImplementedError


class ClinicRepository(ABC):
    @abstractmethod
    def get(self, clinic_id: UUID) -> Optional[Clinic]:
        raise NotImplementedError

    @abstractmethod
    def save(self, clinic: Clinic) -> None:
        raise NotImplementedError


class UserRepository(ABC):
    @abstractmethod
    def get(self, user_id: UUID) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def get_by_subject(self, subject: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def save(self, user: User) -> None:
        raise NotImplementedError


class AvailabilityRepository(ABC):
    @abstractmethod
    def list_for_doctor(
        self,
        doctor_id: UUID,
        *,
        clinic_id: Optional[UUID] = None,
        exclude_clinic_id: Optional[UUID] = None,
    ) -> List[AvailabilityWindow]:
        """Return the doctor's windows ordered by day of week, then start time."""
        raise NotImplementedError

    @abstractmethod
    def replace_for_doctor(
        self,
        doctor_id: UUID,
        clinic_id: UUID,
        slots: Sequence[AvailabilitySlot],
    ) -> List[AvailabilityWindow]:
        """Atomically replace every window the doctor has at ``clinic_id``."""
        raise NotImplementedError


class InvitationRepository(ABC):
    @abstractmethod
    def get(self, invitation_id: UUID) -> Optional[Invitation]:
        raise NotImplementedError

    @abstractmethod
    def get_by_token(self, token: str) -> Optional[Invitation]:
        raise NotImplementedError

    @abstractmethod
    def find_pending(self, email: str, clinic_id: UUID) -> Optional[Invitation]:
        raise NotImplementedError

    @abstractmethod
    def list_by_clinic(self, clinic_id: UUID) -> List[Invitation]:
        raise NotImplementedError

    @abstractmethod
    def save(self, invitation: Invitation) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, invitation_id: UUID) -> None:
        raise NotImplementedError


@dataclass
class RepositoryRegistry:
    permissions: PermissionRepository
    roles: RoleRepository
    memberships: MembershipRepository
    clinics: ClinicRepository
    users: UserRepository
    availability: AvailabilityRepository
    invitations: InvitationRepository
