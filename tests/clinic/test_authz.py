from uuid import uuid4

import pytest

from src.clinic.domain.models.identity import ActingIdentity
from src.clinic.domain.models.permission import Permissions
from src.clinic.domain.models.role import Role
from src.clinic.errors import PermissionDeniedError
from src.clinic.infra.db.registry import get_repositories
from src.clinic.services.authz.hierarchy import MISSING_ROLE_PRIORITY, role_hierarchy
from src.clinic.services.authz.identity import resolve_identity
from src.clinic.services.authz.permissions import ensure_permission, has_permission
from src.clinic.services.team.service import team_service
from src.clinic.services.users.service import user_service


def _save_role(name: str, priority: int) -> Role:
    role = Role(id=uuid4(), name=name, priority=priority)
    get_repositories().roles.save(role)
    return role


def test_has_permission_requires_every_name():
    granted = {"patient:read", "team:read"}

    assert has_permission(granted, "patient:read")
    assert has_permission(granted, ["patient:read", "team:read"])
    assert not has_permission(granted, ["patient:read", "team:manage"])
    assert not has_permission(set(), "patient:read")


def test_has_permission_empty_requirement_is_vacuously_true():
    assert has_permission(set(), [])
    assert has_permission({"team:read"}, ())


def test_has_permission_is_monotonic_in_granted_set():
    required = ["team:read", "team:invite"]
    granted = {"team:read", "team:invite"}
    assert has_permission(granted, required)
    assert has_permission(granted | {"team:manage"}, required)


def test_ensure_permission_raises_forbidden(clinic):
    identity = resolve_identity(clinic.receptionist, clinic.clinic.id)

    with pytest.raises(PermissionDeniedError):
        ensure_permission(identity, Permissions.TEAM_MANAGE, action="test", detail="nope")

    ensure_permission(identity, Permissions.TEAM_READ, action="test", detail="nope")


def test_resolve_identity_without_clinic_has_no_permissions(clinic):
    identity = resolve_identity(clinic.owner, None)

    assert identity.clinic_id is None
    assert identity.membership is None
    assert identity.permissions == frozenset()


def test_resolve_identity_is_scoped_to_the_clinic(clinic, roles):
    other_owner = user_service.register_user(email="other@example.com")
    other = team_service.create_clinic(other_owner, "Southside Clinic")

    inside = resolve_identity(clinic.doctor, clinic.clinic.id)
    assert inside.role.id == roles.doctor.id
    assert inside.permissions == roles.doctor.permission_names

    # A membership in one clinic grants nothing in another.
    outside = resolve_identity(clinic.doctor, other.id)
    assert outside.membership is None
    assert outside.permissions == frozenset()


def test_role_priority_of_missing_role_is_zero():
    assert role_hierarchy.get_role_priority(uuid4()) == MISSING_ROLE_PRIORITY == 0


def test_can_manage_role_is_strict_and_antisymmetric():
    senior = _save_role("Senior", 40)
    junior = _save_role("Junior", 20)
    peer = _save_role("Peer", 40)

    assert role_hierarchy.can_manage_role(senior.id, junior.id)
    assert not role_hierarchy.can_manage_role(junior.id, senior.id)
    # Equal priorities never manage each other, including a role and itself.
    assert not role_hierarchy.can_manage_role(senior.id, peer.id)
    assert not role_hierarchy.can_manage_role(peer.id, senior.id)
    assert not role_hierarchy.can_manage_role(senior.id, senior.id)


def test_any_role_outranks_a_missing_role():
    junior = _save_role("Junior", 1)
    missing = uuid4()

    assert role_hierarchy.can_manage_role(junior.id, missing)
    assert not role_hierarchy.can_manage_role(missing, junior.id)


def test_user_role_priority_without_membership_is_none(clinic):
    outsider = user_service.register_user(email="outsider@example.com")

    assert role_hierarchy.get_user_role_priority(outsider.id, clinic.clinic.id) is None
    assert role_hierarchy.get_user_role_priority(clinic.doctor.id, clinic.clinic.id) == 30


def test_can_manage_user_fails_closed_without_membership(clinic):
    outsider = user_service.register_user(email="outsider@example.com")
    clinic_id = clinic.clinic.id

    assert not role_hierarchy.can_manage_user(clinic.manager.id, outsider.id, clinic_id)
    assert not role_hierarchy.can_manage_user(outsider.id, clinic.receptionist.id, clinic_id)


def test_can_manage_user_compares_membership_roles(clinic):
    clinic_id = clinic.clinic.id

    assert role_hierarchy.can_manage_user(clinic.manager.id, clinic.doctor.id, clinic_id)
    assert role_hierarchy.can_manage_user(clinic.doctor.id, clinic.receptionist.id, clinic_id)
    assert not role_hierarchy.can_manage_user(clinic.doctor.id, clinic.manager.id, clinic_id)
    # Owner and second manager share CLINIC_MANAGER; priority alone does not decide.
    assert not role_hierarchy.can_manage_user(clinic.owner.id, clinic.manager.id, clinic_id)


def test_is_clinic_owner_is_independent_of_role(clinic):
    clinic_id = clinic.clinic.id

    assert role_hierarchy.is_clinic_owner(clinic.owner.id, clinic_id)
    assert not role_hierarchy.is_clinic_owner(clinic.manager.id, clinic_id)
    assert not role_hierarchy.is_clinic_owner(clinic.owner.id, uuid4())


def test_team_read_with_invite_but_not_manage():
    """A user whose role grants team:read and team:invite only."""

    repos = get_repositories()
    perms = {p.name: p for p in repos.permissions.list_all()}
    role_a = Role(
        id=uuid4(),
        name="Coordinator",
        priority=20,
        permissions=[perms[Permissions.TEAM_READ], perms[Permissions.TEAM_INVITE]],
    )
    repos.roles.save(role_a)

    owner = user_service.register_user(email="owner2@example.com")
    coordinator = user_service.register_user(email="coordinator@example.com")
    created = team_service.create_clinic(owner, "East Clinic")
    team_service.add_member(created.id, coordinator.id, role_a.id)

    identity = resolve_identity(coordinator, created.id)
    assert has_permission(identity.permissions, Permissions.TEAM_READ)
    assert has_permission(identity.permissions, Permissions.TEAM_INVITE)
    assert not has_permission(identity.permissions, Permissions.TEAM_MANAGE)
    assert isinstance(identity, ActingIdentity)
