from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update

from src.clinic.domain.models.clinic import Clinic, Membership
from src.clinic.domain.models.invitation import Invitation, InvitationStatus
from src.clinic.domain.models.permission import Permission
from src.clinic.domain.models.role import Role
from src.clinic.domain.models.user import User
from src.clinic.infra.db.models import (
    ClinicORM,
    InvitationORM,
    MembershipORM,
    PermissionORM,
    RoleORM,
    UserORM,
)
from src.clinic.infra.db.repositories import (
    ClinicRepository,
    InvitationRepository,
    MembershipRepository,
    PermissionRepository,
    RoleRepository,
    UserRepository,
)
from src.clinic.infra.db.session import SessionFactory


class SqlPermissionRepository(PermissionRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, permission_id: UUID) -> Optional[Permission]:
        session = self._session_factory()
        try:
            orm = session.get(PermissionORM, permission_id)
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def get_by_name(self, name: str) -> Optional[Permission]:
        session = self._session_factory()
        try:
            orm = session.scalars(select(PermissionORM).where(PermissionORM.name == name)).first()
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def list_all(self) -> List[Permission]:
        session = self._session_factory()
        try:
            return [orm.to_domain() for orm in session.scalars(select(PermissionORM).order_by(PermissionORM.name))]
        finally:
            session.close()

    def save(self, permission: Permission) -> None:
        session = self._session_factory()
        try:
            existing = session.get(PermissionORM, permission.id)
            if existing is None:
                session.add(
                    PermissionORM(id=permission.id, name=permission.name, description=permission.description)
                )
            else:
                existing.name = permission.name
                existing.description = permission.description
            session.commit()
        finally:
            session.close()


class SqlRoleRepository(RoleRepository):
    """SQL-backed role store.

    Role deletion moves memberships and invitations to the transfer role and
    removes the role inside one session transaction; nothing is committed
    unless every step succeeds.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, role_id: UUID) -> Optional[Role]:
        session = self._session_factory()
        try:
            orm = session.get(RoleORM, role_id)
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def get_by_name(self, name: str) -> Optional[Role]:
        session = self._session_factory()
        try:
            orm = session.scalars(select(RoleORM).where(RoleORM.name == name)).first()
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def list_all(self) -> List[Role]:
        session = self._session_factory()
        try:
            query = select(RoleORM).order_by(RoleORM.priority.desc(), RoleORM.name)
            return [orm.to_domain() for orm in session.scalars(query)]
        finally:
            session.close()

    def save(self, role: Role) -> None:
        session = self._session_factory()
        try:
            orm = session.get(RoleORM, role.id)
            if orm is None:
                orm = RoleORM(id=role.id)
                session.add(orm)
            orm.name = role.name
            orm.priority = role.priority
            orm.is_system_role = role.is_system_role
            permission_ids = [p.id for p in role.permissions]
            if permission_ids:
                orm.permissions = list(
                    session.scalars(select(PermissionORM).where(PermissionORM.id.in_(permission_ids)))
                )
            else:
                orm.permissions = []
            session.commit()
        finally:
            session.close()

    def delete(self, role_id: UUID, *, transfer_to_role_id: Optional[UUID] = None) -> int:
        session = self._session_factory()
        try:
            role = session.get(RoleORM, role_id)
            if role is None:
                raise KeyError("Role not found")
            if transfer_to_role_id is not None and session.get(RoleORM, transfer_to_role_id) is None:
                raise KeyError("Transfer role not found")

            moved = 0
            if transfer_to_role_id is not None:
                result = session.execute(
                    update(MembershipORM)
                    .where(MembershipORM.role_id == role_id)
                    .values(role_id=transfer_to_role_id)
                )
                moved = result.rowcount or 0
                session.execute(
                    update(InvitationORM)
                    .where(InvitationORM.role_id == role_id)
                    .values(role_id=transfer_to_role_id)
                )
            else:
                remaining = session.scalar(
                    select(func.count()).select_from(MembershipORM).where(MembershipORM.role_id == role_id)
                )
                if remaining:
                    raise ValueError("Role still has members")
                session.execute(delete(InvitationORM).where(InvitationORM.role_id == role_id))

            session.delete(role)
            session.commit()
            return moved
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class SqlMembershipRepository(MembershipRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, membership_id: UUID) -> Optional[Membership]:
        session = self._session_factory()
        try:
            orm = session.get(MembershipORM, membership_id)
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def get_for_user(self, user_id: UUID, clinic_id: UUID) -> Optional[Membership]:
        session = self._session_factory()
        try:
            query = select(MembershipORM).where(
                MembershipORM.user_id == user_id,
                MembershipORM.clinic_id == clinic_id,
            )
            orm = session.scalars(query).first()
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def list_by_clinic(self, clinic_id: UUID) -> List[Membership]:
        session = self._session_factory()
        try:
            query = (
                select(MembershipORM)
                .where(MembershipORM.clinic_id == clinic_id)
                .order_by(MembershipORM.created_at)
            )
            return [orm.to_domain() for orm in session.scalars(query)]
        finally:
            session.close()

    def count_by_role(self, role_id: UUID) -> int:
        session = self._session_factory()
        try:
            query = select(func.count()).select_from(MembershipORM).where(MembershipORM.role_id == role_id)
            return session.scalar(query) or 0
        finally:
            session.close()

    def save(self, membership: Membership) -> None:
        session = self._session_factory()
        try:
            existing = session.get(MembershipORM, membership.id)
            if existing is None:
                session.add(MembershipORM.from_domain(membership))
            else:
                existing.user_id = membership.user_id
                existing.clinic_id = membership.clinic_id
                existing.role_id = membership.role_id
            session.commit()
        finally:
            session.close()

    def delete(self, membership_id: UUID) -> None:
        session = self._session_factory()
        try:
            session.execute(delete(MembershipORM).where(MembershipORM.id == membership_id))
            session.commit()
        finally:
            session.close()


class SqlClinicRepository(ClinicRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, clinic_id: UUID) -> Optional[Clinic]:
        session = self._session_factory()
        try:
            orm = session.get(ClinicORM, clinic_id)
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def save(self, clinic: Clinic) -> None:
        session = self._session_factory()
        try:
            existing = session.get(ClinicORM, clinic.id)
            if existing is None:
                session.add(ClinicORM.from_domain(clinic))
            else:
                existing.name = clinic.name
                existing.owner_id = clinic.owner_id
            session.commit()
        finally:
            session.close()


class SqlUserRepository(UserRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, user_id: UUID) -> Optional[User]:
        session = self._session_factory()
        try:
            orm = session.get(UserORM, user_id)
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def get_by_email(self, email: str) -> Optional[User]:
        session = self._session_factory()
        try:
            query = select(UserORM).where(func.lower(UserORM.email) == email.lower())
            orm = session.scalars(query).first()
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def get_by_subject(self, subject: str) -> Optional[User]:
        session = self._session_factory()
        try:
            orm = session.scalars(select(UserORM).where(UserORM.subject == subject)).first()
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def save(self, user: User) -> None:
        session = self._session_factory()
        try:
            existing = session.get(UserORM, user.id)
            if existing is None:
                session.add(UserORM.from_domain(user))
            else:
                existing.email = user.email
                existing.name = user.name
                existing.platform_role = user.platform_role.value
                existing.subject = user.subject
            session.commit()
        finally:
            session.close()


class SqlInvitationRepository(InvitationRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, invitation_id: UUID) -> Optional[Invitation]:
        session = self._session_factory()
        try:
            orm = session.get(InvitationORM, invitation_id)
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def get_by_token(self, token: str) -> Optional[Invitation]:
        session = self._session_factory()
        try:
            orm = session.scalars(select(InvitationORM).where(InvitationORM.token == token)).first()
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def find_pending(self, email: str, clinic_id: UUID) -> Optional[Invitation]:
        session = self._session_factory()
        try:
            query = select(InvitationORM).where(
                func.lower(InvitationORM.email) == email.lower(),
                InvitationORM.clinic_id == clinic_id,
                InvitationORM.status == InvitationStatus.PENDING.value,
            )
            orm = session.scalars(query).first()
            return orm.to_domain() if orm else None
        finally:
            session.close()

    def list_by_clinic(self, clinic_id: UUID) -> List[Invitation]:
        session = self._session_factory()
        try:
            query = (
                select(InvitationORM)
                .where(InvitationORM.clinic_id == clinic_id)
                .order_by(InvitationORM.created_at)
            )
            return [orm.to_domain() for orm in session.scalars(query)]
        finally:
            session.close()

    def save(self, invitation: Invitation) -> None:
        session = self._session_factory()
        try:
            existing = session.get(InvitationORM, invitation.id)
            if existing is None:
                session.add(InvitationORM.from_domain(invitation))
            else:
                existing.role_id = invitation.role_id
                existing.status = invitation.status.value
                existing.expires_at = invitation.expires_at
            session.commit()
        finally:
            session.close()

    def delete(self, invitation_id: UUID) -> None:
        session = self._session_factory()
        try:
            session.execute(delete(InvitationORM).where(InvitationORM.id == invitation_id))
            session.commit()
        finally:
            session.close()
