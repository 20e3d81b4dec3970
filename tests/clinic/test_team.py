from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.clinic.domain.models.invitation import InvitationStatus
from src.clinic.errors import GoneError, NotFoundError, PermissionDeniedError, ValidationError
from src.clinic.infra.db.registry import get_repositories
from src.clinic.main import app
from src.clinic.services.authz.identity import resolve_identity
from src.clinic.services.team.service import team_service
from src.clinic.services.users.service import user_service


def _as(world, user):
    return resolve_identity(user, world.clinic.id)


def test_create_clinic_enrolls_owner_as_manager(clinic, roles):
    members = team_service.list_members(_as(clinic, clinic.owner))

    owner_rows = [m for m in members if m.is_owner]
    assert len(owner_rows) == 1
    assert owner_rows[0].user_id == clinic.owner.id
    assert owner_rows[0].role_id == roles.manager.id
    assert {m.role_name for m in members} == {"CLINIC_MANAGER", "DOCTOR", "RECEPTIONIST"}


def test_list_members_requires_an_active_clinic(clinic):
    with pytest.raises(PermissionDeniedError):
        team_service.list_members(resolve_identity(clinic.owner, None))


def test_manager_cannot_change_own_role(clinic, roles):
    with pytest.raises(PermissionDeniedError):
        team_service.change_role(_as(clinic, clinic.manager), clinic.memberships.manager.id, roles.receptionist.id)


def test_owner_can_change_own_role(clinic, roles):
    updated = team_service.change_role(_as(clinic, clinic.owner), clinic.memberships.owner.id, roles.doctor.id)

    assert updated.role_id == roles.doctor.id
    stored = get_repositories().memberships.get(clinic.memberships.owner.id)
    assert stored.role_id == roles.doctor.id


def test_manager_cannot_assign_an_equal_role(clinic, roles):
    with pytest.raises(PermissionDeniedError):
        team_service.change_role(_as(clinic, clinic.manager), clinic.memberships.doctor.id, roles.manager.id)

    stored = get_repositories().memberships.get(clinic.memberships.doctor.id)
    assert stored.role_id == roles.doctor.id


def test_manager_cannot_change_a_peer(clinic, roles):
    # Target already holds CLINIC_MANAGER, equal to the actor.
    with pytest.raises(PermissionDeniedError):
        team_service.change_role(_as(clinic, clinic.manager), clinic.memberships.owner.id, roles.receptionist.id)


def test_manager_can_demote_a_lower_member(clinic, roles):
    updated = team_service.change_role(_as(clinic, clinic.manager), clinic.memberships.doctor.id, roles.receptionist.id)
    assert updated.role_id == roles.receptionist.id


def test_owner_bypasses_hierarchy_when_promoting(clinic, roles):
    updated = team_service.change_role(_as(clinic, clinic.owner), clinic.memberships.doctor.id, roles.manager.id)
    assert updated.role_id == roles.manager.id


def test_change_role_requires_team_manage(clinic, roles):
    with pytest.raises(PermissionDeniedError):
        team_service.change_role(_as(clinic, clinic.doctor), clinic.memberships.receptionist.id, roles.receptionist.id)


def test_change_role_to_unknown_role(clinic):
    with pytest.raises(NotFoundError):
        team_service.change_role(_as(clinic, clinic.owner), clinic.memberships.doctor.id, uuid4())


def test_change_role_across_clinics_is_forbidden(clinic, roles):
    other_owner = user_service.register_user(email="other@example.com")
    other = team_service.create_clinic(other_owner, "Southside Clinic")
    other_membership = get_repositories().memberships.get_for_user(other_owner.id, other.id)

    with pytest.raises(PermissionDeniedError):
        team_service.change_role(_as(clinic, clinic.owner), other_membership.id, roles.receptionist.id)


def test_nobody_removes_themselves(clinic):
    with pytest.raises(PermissionDeniedError):
        team_service.remove_member(_as(clinic, clinic.owner), clinic.memberships.owner.id)
    with pytest.raises(PermissionDeniedError):
        team_service.remove_member(_as(clinic, clinic.manager), clinic.memberships.manager.id)


def test_owner_cannot_be_removed(clinic):
    with pytest.raises(PermissionDeniedError):
        team_service.remove_member(_as(clinic, clinic.manager), clinic.memberships.owner.id)

    assert get_repositories().memberships.get(clinic.memberships.owner.id) is not None


def test_remove_member_respects_hierarchy(clinic, roles):
    team_service.change_role(_as(clinic, clinic.owner), clinic.memberships.doctor.id, roles.manager.id)

    # Equal priority: the second manager cannot remove the promoted doctor.
    with pytest.raises(PermissionDeniedError):
        team_service.remove_member(_as(clinic, clinic.manager), clinic.memberships.doctor.id)

    team_service.remove_member(_as(clinic, clinic.manager), clinic.memberships.receptionist.id)
    assert get_repositories().memberships.get(clinic.memberships.receptionist.id) is None


def test_owner_removes_a_peer_manager(clinic):
    team_service.remove_member(_as(clinic, clinic.owner), clinic.memberships.manager.id)
    assert get_repositories().memberships.get(clinic.memberships.manager.id) is None


def test_only_owner_transfers_ownership(clinic):
    with pytest.raises(PermissionDeniedError):
        team_service.transfer_ownership(_as(clinic, clinic.manager), clinic.doctor.id)


def test_transfer_ownership_to_non_member_is_rejected(clinic):
    outsider = user_service.register_user(email="outsider@example.com")

    with pytest.raises(ValidationError):
        team_service.transfer_ownership(_as(clinic, clinic.owner), outsider.id)


def test_transfer_ownership_moves_owner_bypass(clinic, roles):
    updated = team_service.transfer_ownership(_as(clinic, clinic.owner), clinic.manager.id)
    assert updated.owner_id == clinic.manager.id

    # The new owner may now manage a peer; the previous owner has become removable.
    team_service.change_role(_as(clinic, clinic.manager), clinic.memberships.owner.id, roles.doctor.id)
    team_service.remove_member(_as(clinic, clinic.manager), clinic.memberships.owner.id)
    assert get_repositories().memberships.get_for_user(clinic.owner.id, clinic.clinic.id) is None


def test_invite_and_accept(clinic, roles):
    invitation = team_service.invite(_as(clinic, clinic.manager), "newdoc@example.com", roles.doctor.id)
    assert invitation.status == InvitationStatus.PENDING
    assert invitation.expires_at > invitation.created_at

    newcomer = user_service.register_user(email="newdoc@example.com")
    membership = team_service.accept_invitation(newcomer, invitation.token)

    assert membership.clinic_id == clinic.clinic.id
    assert membership.role_id == roles.doctor.id
    assert get_repositories().invitations.get(invitation.id).status == InvitationStatus.ACCEPTED

    with pytest.raises(ValidationError):
        team_service.accept_invitation(newcomer, invitation.token)


def test_invite_rejects_duplicates_and_existing_members(clinic, roles):
    team_service.invite(_as(clinic, clinic.manager), "newdoc@example.com", roles.doctor.id)

    with pytest.raises(ValidationError):
        team_service.invite(_as(clinic, clinic.manager), "newdoc@example.com", roles.receptionist.id)
    with pytest.raises(ValidationError):
        team_service.invite(_as(clinic, clinic.manager), clinic.doctor.email, roles.receptionist.id)


def test_invite_respects_hierarchy_except_for_owner(clinic, roles):
    with pytest.raises(PermissionDeniedError):
        team_service.invite(_as(clinic, clinic.manager), "peer@example.com", roles.manager.id)

    invitation = team_service.invite(_as(clinic, clinic.owner), "peer@example.com", roles.manager.id)
    assert invitation.role_id == roles.manager.id


def test_invite_requires_team_invite(clinic, roles):
    with pytest.raises(PermissionDeniedError):
        team_service.invite(_as(clinic, clinic.doctor), "someone@example.com", roles.receptionist.id)


def test_accept_invitation_for_another_email_is_forbidden(clinic, roles):
    invitation = team_service.invite(_as(clinic, clinic.manager), "newdoc@example.com", roles.doctor.id)
    impostor = user_service.register_user(email="impostor@example.com")

    with pytest.raises(PermissionDeniedError):
        team_service.accept_invitation(impostor, invitation.token)


def test_expired_invitation_is_marked_and_rejected(clinic, roles):
    invitation = team_service.invite(_as(clinic, clinic.manager), "late@example.com", roles.doctor.id)
    repos = get_repositories()
    stored = repos.invitations.get(invitation.id)
    stored.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    repos.invitations.save(stored)

    late = user_service.register_user(email="late@example.com")
    with pytest.raises(GoneError):
        team_service.accept_invitation(late, invitation.token)

    assert repos.invitations.get(invitation.id).status == InvitationStatus.EXPIRED
    assert repos.memberships.get_for_user(late.id, clinic.clinic.id) is None


def test_cancel_invitation(clinic, roles):
    invitation = team_service.invite(_as(clinic, clinic.manager), "newdoc@example.com", roles.doctor.id)

    with pytest.raises(PermissionDeniedError):
        team_service.cancel_invitation(_as(clinic, clinic.receptionist), invitation.id)

    team_service.cancel_invitation(_as(clinic, clinic.manager), invitation.id)
    assert team_service.list_invitations(clinic.clinic.id) == []


def test_only_pending_invitations_can_be_cancelled(clinic, roles):
    manager = _as(clinic, clinic.manager)
    accepted = team_service.invite(manager, "newdoc@example.com", roles.doctor.id)
    team_service.accept_invitation(user_service.register_user(email="newdoc@example.com"), accepted.token)
    expired = team_service.invite(manager, "late@example.com", roles.doctor.id)
    expired.status = InvitationStatus.EXPIRED
    get_repositories().invitations.save(expired)

    for invitation in (accepted, expired):
        with pytest.raises(ValidationError):
            team_service.cancel_invitation(manager, invitation.id)

    repos = get_repositories()
    assert repos.invitations.get(accepted.id).status == InvitationStatus.ACCEPTED
    assert repos.invitations.get(expired.id).status == InvitationStatus.EXPIRED


async def test_invitation_listing_hides_tokens(clinic, roles):
    team_service.invite(_as(clinic, clinic.manager), "newdoc@example.com", roles.doctor.id)
    desk_headers = {"X-User-ID": str(clinic.receptionist.id), "X-Clinic-ID": str(clinic.clinic.id)}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        listing = await ac.get("/api/v1/team/invitations", headers=desk_headers)

    assert listing.status_code == status.HTTP_200_OK
    [invitation] = listing.json()
    assert invitation["email"] == "newdoc@example.com"
    assert invitation["status"] == "PENDING"
    assert "token" not in invitation


async def test_team_api_flow(clinic, roles):
    owner_headers = {"X-User-ID": str(clinic.owner.id), "X-Clinic-ID": str(clinic.clinic.id)}
    manager_headers = {"X-User-ID": str(clinic.manager.id), "X-Clinic-ID": str(clinic.clinic.id)}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        members = await ac.get("/api/v1/team/members", headers=manager_headers)
        assert members.status_code == status.HTTP_200_OK
        assert len(members.json()) == 4

        denied = await ac.patch(
            "/api/v1/team/change-role",
            json={"membership_id": str(clinic.memberships.manager.id), "new_role_id": str(roles.doctor.id)},
            headers=manager_headers,
        )
        assert denied.status_code == status.HTTP_403_FORBIDDEN
        assert denied.json()["detail"] == "You cannot change your own role"

        changed = await ac.patch(
            "/api/v1/team/change-role",
            json={"membership_id": str(clinic.memberships.doctor.id), "new_role_id": str(roles.receptionist.id)},
            headers=manager_headers,
        )
        assert changed.status_code == status.HTTP_200_OK
        assert changed.json()["role_id"] == str(roles.receptionist.id)

        removed = await ac.delete(
            f"/api/v1/team/members/{clinic.memberships.receptionist.id}",
            headers=manager_headers,
        )
        assert removed.status_code == status.HTTP_200_OK
        assert removed.json() == {"success": True, "message": "Member removed successfully"}

        invited = await ac.post(
            "/api/v1/team/invitations",
            json={"email": "nurse@example.com", "role_id": str(roles.receptionist.id)},
            headers=manager_headers,
        )
        assert invited.status_code == status.HTTP_201_CREATED
        token = invited.json()["token"]

        pending = await ac.get("/api/v1/team/invitations", headers=manager_headers)
        assert [i["email"] for i in pending.json()] == ["nurse@example.com"]
        assert "token" not in pending.json()[0]

        registered = await ac.post("/api/v1/users", json={"email": "nurse@example.com", "name": "Nurse"})
        assert registered.status_code == status.HTTP_201_CREATED
        nurse_id = registered.json()["id"]

        accepted = await ac.post(
            "/api/v1/team/invitations/accept",
            json={"token": token},
            headers={"X-User-ID": nurse_id},
        )
        assert accepted.status_code == status.HTTP_200_OK
        assert accepted.json()["clinic_id"] == str(clinic.clinic.id)

        transferred = await ac.post(
            "/api/v1/team/transfer-ownership",
            json={"new_owner_id": str(clinic.manager.id)},
            headers=owner_headers,
        )
        assert transferred.status_code == status.HTTP_200_OK
        assert transferred.json()["owner_id"] == str(clinic.manager.id)


async def test_team_api_without_clinic_header_is_forbidden(clinic):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/api/v1/team/members", headers={"X-User-ID": str(clinic.owner.id)})
    assert response.status_code == status.HTTP_403_FORBIDDEN


async def test_team_api_rejects_malformed_clinic_header(clinic):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get(
            "/api/v1/team/members",
            headers={"X-User-ID": str(clinic.owner.id), "X-Clinic-ID": "not-a-uuid"},
        )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


async def test_my_permissions_reflect_the_active_clinic(clinic, roles):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        scoped = await ac.get(
            "/api/v1/me/permissions",
            headers={"X-User-ID": str(clinic.doctor.id), "X-Clinic-ID": str(clinic.clinic.id)},
        )
        unscoped = await ac.get("/api/v1/me/permissions", headers={"X-User-ID": str(clinic.doctor.id)})

    assert scoped.status_code == status.HTTP_200_OK
    assert scoped.json()["role_name"] == "DOCTOR"
    assert scoped.json()["permissions"] == sorted(roles.doctor.permission_names)
    assert unscoped.json()["permissions"] == []
