from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.clinic.config import settings
from src.clinic.domain.models.availability import AvailabilitySlot
from src.clinic.domain.models.user import PlatformRole
from src.clinic.errors import ConflictError
from src.clinic.infra.db.bootstrap import create_sql_repositories, init_sql_repositories
from src.clinic.infra.db.registry import get_repositories
from src.clinic.services.authz.hierarchy import RoleHierarchy
from src.clinic.services.authz.identity import resolve_identity
from src.clinic.services.availability.service import AvailabilityService
from src.clinic.services.roles.seed import seed_defaults
from src.clinic.services.roles.service import RoleAdminService
from src.clinic.services.team.service import TeamService
from src.clinic.services.users.service import UserService


@pytest.fixture
def sql():
    repos = create_sql_repositories("sqlite:///:memory:")
    seed_defaults(repos)
    users = UserService(repos)
    team = TeamService(repos)

    owner = users.register_user(email="owner@example.com")
    doctor = users.register_user(email="doctor@example.com")
    admin = users.register_user(email="admin@example.com", platform_role=PlatformRole.ADMIN)
    clinic_x = team.create_clinic(owner, "Northside Clinic")
    clinic_y = team.create_clinic(owner, "Riverside Clinic")
    doctor_role = repos.roles.get_by_name("DOCTOR")
    membership = team.add_member(clinic_x.id, doctor.id, doctor_role.id)
    team.add_member(clinic_y.id, doctor.id, doctor_role.id)

    return SimpleNamespace(
        repos=repos,
        users=users,
        team=team,
        owner=owner,
        doctor=doctor,
        admin=admin,
        x=clinic_x,
        y=clinic_y,
        doctor_role=doctor_role,
        membership=membership,
    )


def test_seed_populates_roles_with_permissions(sql):
    roles = {r.name: r for r in sql.repos.roles.list_all()}

    assert list(roles) == ["SUPER_ADMIN", "CLINIC_MANAGER", "DOCTOR", "RECEPTIONIST"]
    assert "role:doctor" in roles["DOCTOR"].permission_names
    assert roles["SUPER_ADMIN"].is_system_role

    seed_defaults(sql.repos)
    assert len(sql.repos.roles.list_all()) == 4


def test_membership_lookup_and_hierarchy(sql):
    hierarchy = RoleHierarchy(sql.repos)

    assert hierarchy.get_user_role_priority(sql.owner.id, sql.x.id) == 50
    assert hierarchy.get_user_role_priority(sql.doctor.id, sql.x.id) == 30
    assert hierarchy.get_user_role_priority(sql.admin.id, sql.x.id) is None
    assert hierarchy.can_manage_user(sql.owner.id, sql.doctor.id, sql.x.id)

    identity = resolve_identity(sql.doctor, sql.x.id, sql.repos)
    assert identity.permissions == sql.doctor_role.permission_names


def test_delete_role_with_transfer_is_atomic(sql):
    admin_service = RoleAdminService(sql.repos)
    receptionist = sql.repos.roles.get_by_name("RECEPTIONIST")
    sql.team.invite(resolve_identity(sql.owner, sql.x.id, sql.repos), "new@example.com", sql.doctor_role.id)

    moved = admin_service.delete_role(sql.admin, sql.doctor_role.id, transfer_to_role_id=receptionist.id)

    assert moved == 2
    assert sql.repos.roles.get(sql.doctor_role.id) is None
    assert sql.repos.memberships.get(sql.membership.id).role_id == receptionist.id
    assert [i.role_id for i in sql.repos.invitations.list_by_clinic(sql.x.id)] == [receptionist.id]


def test_repository_delete_refuses_role_with_members(sql):
    with pytest.raises(ValueError):
        sql.repos.roles.delete(sql.doctor_role.id)
    with pytest.raises(KeyError):
        sql.repos.roles.delete(sql.doctor_role.id, transfer_to_role_id=uuid4())

    assert sql.repos.roles.get(sql.doctor_role.id) is not None
    assert sql.repos.memberships.count_by_role(sql.doctor_role.id) == 2


def test_availability_round_trip_and_conflicts(sql):
    service = AvailabilityService(sql.repos)
    doctor = resolve_identity(sql.doctor, None, sql.repos)

    saved = service.replace_doctor_availability(
        doctor,
        sql.doctor.id,
        sql.x.id,
        [
            AvailabilitySlot(day_of_week=3, start_time="14:00", end_time="18:00"),
            AvailabilitySlot(day_of_week=1, start_time="09:00", end_time="12:00"),
        ],
    )
    assert [(w.day_of_week, w.start_time) for w in saved] == [(1, "09:00"), (3, "14:00")]

    proposed = [AvailabilitySlot(day_of_week=1, start_time="11:30", end_time="15:00")]
    with pytest.raises(ConflictError):
        service.replace_doctor_availability(doctor, sql.doctor.id, sql.y.id, proposed)
    assert service.get_doctor_availability(sql.doctor.id, sql.y.id) == []

    service.replace_doctor_availability(doctor, sql.doctor.id, sql.y.id, proposed, ignore_conflicts=True)
    conflicts = service.detector.get_all_availability_conflicts(sql.doctor.id)
    assert len(conflicts) == 1
    assert conflicts[0].overlapping_time.start == "11:30"
    assert conflicts[0].overlapping_time.end == "12:00"

    # Replacing with an empty list clears only that clinic.
    service.replace_doctor_availability(doctor, sql.doctor.id, sql.y.id, [])
    assert len(service.get_doctor_availability(sql.doctor.id)) == 2


def test_invitation_round_trip(sql):
    invitation = sql.team.invite(
        resolve_identity(sql.owner, sql.x.id, sql.repos),
        "new@example.com",
        sql.doctor_role.id,
    )
    newcomer = sql.users.register_user(email="new@example.com")

    membership = sql.team.accept_invitation(newcomer, invitation.token)

    assert membership.role_id == sql.doctor_role.id
    assert sql.repos.invitations.find_pending("new@example.com", sql.x.id) is None


def test_init_sql_repositories_is_noop_when_disabled(monkeypatch):
    monkeypatch.setattr(settings, "use_sql_repos", False)
    before = get_repositories()

    assert init_sql_repositories("sqlite:///:memory:") is False
    assert get_repositories() is before
