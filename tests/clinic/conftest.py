from types import SimpleNamespace

import pytest

from src.clinic.config import settings
from src.clinic.domain.models.user import PlatformRole
from src.clinic.infra.db.registry import get_repositories, reset_repositories
from src.clinic.services.roles.seed import seed_defaults
from src.clinic.services.team.service import team_service
from src.clinic.services.users.service import user_service
from src.clinic.tenancy import set_active_clinic_id


@pytest.fixture(autouse=True)
def fresh_repositories(monkeypatch):
    """Give every test its own seeded in-memory store.

    Startup hooks do not run under ASGITransport, so seeding happens here.
    """

    monkeypatch.setattr(settings, "enable_api_auth", False)
    monkeypatch.setattr(settings, "super_admin_email", None)
    monkeypatch.setattr(settings, "super_admin_api_key", None)
    reset_repositories()
    seed_defaults()
    set_active_clinic_id(None)
    yield
    set_active_clinic_id(None)


@pytest.fixture
def roles():
    repos = get_repositories()
    return SimpleNamespace(
        super_admin=repos.roles.get_by_name("SUPER_ADMIN"),
        manager=repos.roles.get_by_name("CLINIC_MANAGER"),
        doctor=repos.roles.get_by_name("DOCTOR"),
        receptionist=repos.roles.get_by_name("RECEPTIONIST"),
    )


@pytest.fixture
def clinic(roles):
    """A clinic with an owner, a second manager, a doctor and a receptionist."""

    owner = user_service.register_user(email="owner@example.com", name="Owner")
    manager = user_service.register_user(email="manager@example.com", name="Manager")
    doctor = user_service.register_user(email="doctor@example.com", name="Doctor")
    receptionist = user_service.register_user(email="desk@example.com", name="Desk")

    created = team_service.create_clinic(owner, "Northside Clinic")
    memberships = SimpleNamespace(
        owner=get_repositories().memberships.get_for_user(owner.id, created.id),
        manager=team_service.add_member(created.id, manager.id, roles.manager.id),
        doctor=team_service.add_member(created.id, doctor.id, roles.doctor.id),
        receptionist=team_service.add_member(created.id, receptionist.id, roles.receptionist.id),
    )
    return SimpleNamespace(
        clinic=created,
        owner=owner,
        manager=manager,
        doctor=doctor,
        receptionist=receptionist,
        memberships=memberships,
    )


@pytest.fixture
def platform_admin():
    return user_service.register_user(
        email="admin@example.com",
        name="Platform Admin",
        platform_role=PlatformRole.ADMIN,
    )
