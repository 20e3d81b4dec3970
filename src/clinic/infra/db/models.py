from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from src.clinic.domain.models.availability import AvailabilityWindow
from src.clinic.domain.models.clinic import Clinic, Membership
from src.clinic.domain.models.invitation import Invitation, InvitationStatus
from src.clinic.domain.models.permission import Permission
from src.clinic.domain.models.role import Role
from src.clinic.domain.models.user import PlatformRole, User


class Base(DeclarativeBase):
    pass


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", PG_UUID(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", PG_UUID(as_uuid=True), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class PermissionORM(Base):
    __tablename__ = "permissions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String, nullable=True)

    def to_domain(self) -> Permission:
        return Permission(id=self.id, name=self.name, description=self.description)


class RoleORM(Base):
    __tablename__ = "roles"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_system_role: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    permissions: Mapped[List[PermissionORM]] = relationship(secondary=role_permissions, lazy="selectin")

    def to_domain(self) -> Role:
        return Role(
            id=self.id,
            name=self.name,
            priority=self.priority,
            is_system_role=self.is_system_role,
            permissions=sorted((p.to_domain() for p in self.permissions), key=lambda p: p.name),
        )


class ClinicORM(Base):
    __tablename__ = "clinics"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)

    @classmethod
    def from_domain(cls, clinic: Clinic) -> "ClinicORM":
        return cls(id=clinic.id, name=clinic.name, owner_id=clinic.owner_id)

    def to_domain(self) -> Clinic:
        return Clinic(id=self.id, name=self.name, owner_id=self.owner_id)


class UserORM(Base):
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    platform_role: Mapped[str] = mapped_column(String, nullable=False)
    subject: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)

    @classmethod
    def from_domain(cls, user: User) -> "UserORM":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            platform_role=user.platform_role.value,
            subject=user.subject,
        )

    def to_domain(self) -> User:
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            platform_role=PlatformRole(self.platform_role),
            subject=self.subject,
        )


class MembershipORM(Base):
    __tablename__ = "clinic_members"
    __table_args__ = (UniqueConstraint("user_id", "clinic_id", name="uq_clinic_members_user_clinic"),)

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, index=True)
    clinic_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("clinics.id"), nullable=False, index=True)
    role_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("roles.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, membership: Membership) -> "MembershipORM":
        return cls(
            id=membership.id,
            user_id=membership.user_id,
            clinic_id=membership.clinic_id,
            role_id=membership.role_id,
            created_at=membership.created_at,
        )

    def to_domain(self) -> Membership:
        return Membership(
            id=self.id,
            user_id=self.user_id,
            clinic_id=self.clinic_id,
            role_id=self.role_id,
            created_at=self.created_at,
        )


class AvailabilityWindowORM(Base):
    __tablename__ = "doctor_availability"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    doctor_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, index=True)
    clinic_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("clinics.id"), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    # "HH:MM" wall-clock strings; zero padding keeps them sortable as text.
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)

    def to_domain(self) -> AvailabilityWindow:
        return AvailabilityWindow(
            id=self.id,
            doctor_id=self.doctor_id,
            clinic_id=self.clinic_id,
            day_of_week=self.day_of_week,
            start_time=self.start_time,
            end_time=self.end_time,
        )


class InvitationORM(Base):
    __tablename__ = "invitations"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    email: Mapped[str] = mapped_column(String, nullable=False, index=True)
    clinic_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("clinics.id"), nullable=False)
    role_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("roles.id"), nullable=False)
    inviter_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    token: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, invitation: Invitation) -> "InvitationORM":
        return cls(
            id=invitation.id,
            email=invitation.email,
            clinic_id=invitation.clinic_id,
            role_id=invitation.role_id,
            inviter_id=invitation.inviter_id,
            token=invitation.token,
            status=invitation.status.value,
            created_at=invitation.created_at,
            expires_at=invitation.expires_at,
        )

    def to_domain(self) -> Invitation:
        return Invitation(
            id=self.id,
            email=self.email,
            clinic_id=self.clinic_id,
            role_id=self.role_id,
            inviter_id=self.inviter_id,
            token=self.token,
            status=InvitationStatus(self.status),
            created_at=self.created_at,
            expires_at=self.expires_at,
        )
