"""
synergyhub/test_members_api.py

HTTP tests for auth, businesses, membership, quotas, invitations and audit logs.

Tests:
1. Role is resolved per business; non-members get 403, unknown business 404
2. Only SuperAdmin/Admin mutate members, within the roles they may manage
3. Engine errors come back as {"detail", "code"} with their status
4. Closed Role enum and positive ids are validated at the boundary (422)

Run:
    pytest synergyhub/test_members_api.py -v
"""

import jwt
import pytest
from fastapi.testclient import TestClient

from synergyhub import config, services
from synergyhub.db import commit, execute_query
from synergyhub.main import app
from synergyhub.models import Role


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def team(conn, make_user, auth_headers):
    """
    Business "Acme" owned by `owner`, with an Admin, a Member and a second
    SuperAdmin. `outsider` belongs to no business.
    """
    users = {
        "owner": make_user("owner@test.com", "Owner"),
        "super": make_user("super@test.com", "Second SuperAdmin"),
        "admin": make_user("admin@test.com", "Admin"),
        "member": make_user("member@test.com", "Member"),
        "outsider": make_user("outsider@test.com", "Outsider"),
    }
    business = services.create_business(conn, users["owner"].id, "Acme")
    services.add_business_member(conn, users["owner"].id, business.id, users["super"].id, Role.SuperAdmin)
    services.add_business_member(conn, users["owner"].id, business.id, users["admin"].id, Role.Admin)
    services.add_business_member(conn, users["owner"].id, business.id, users["member"].id, Role.Member)

    return {
        "business_id": business.id,
        "users": users,
        "headers": {name: auth_headers(u) for name, u in users.items()},
    }


def members_url(team, suffix=""):
    return f"/businesses/{team['business_id']}/members{suffix}"


class TestAuth:
    def test_register_login_me(self, client):
        r = client.post("/auth/register", json={"email": " New@Test.com ", "password": "secret123", "name": "New"})
        assert r.status_code == 200
        assert r.json()["user"]["email"] == "new@test.com"

        r = client.post("/auth/login", json={"email": "new@test.com", "password": "secret123"})
        assert r.status_code == 200
        token = r.json()["access_token"]

        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        assert "exp" in payload
        assert "role" not in payload

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["business_ids"] == []

    def test_duplicate_email(self, client):
        body = {"email": "dup@test.com", "password": "secret123"}
        assert client.post("/auth/register", json=body).status_code == 200
        assert client.post("/auth/register", json=body).status_code == 400

    def test_bad_password(self, client):
        client.post("/auth/register", json={"email": "x@test.com", "password": "secret123"})
        r = client.post("/auth/login", json={"email": "x@test.com", "password": "wrong-password"})
        assert r.status_code == 401

    def test_invalid_email_rejected(self, client):
        r = client.post("/auth/register", json={"email": "not-an-email", "password": "secret123"})
        assert r.status_code == 422

    def test_missing_and_invalid_token(self, client):
        assert client.get("/businesses").status_code in (401, 403)
        r = client.get("/businesses", headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401

    def test_expired_token(self, client, make_user):
        user = make_user("late@test.com")
        token = jwt.encode({"sub": str(user.id), "exp": 1}, config.SECRET_KEY, algorithm=config.ALGORITHM)
        r = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401
        assert r.json()["detail"] == "Token expired"


class TestBusinesses:
    def test_create_and_list(self, client, make_user, auth_headers):
        headers = auth_headers(make_user("founder@test.com"))

        r = client.post("/businesses", json={"name": "  Startup  "}, headers=headers)
        assert r.status_code == 201
        body = r.json()
        assert body["name"] == "Startup"
        assert body["member_counts"] == {"super_admin": 1, "admin": 0, "member": 0, "client": 0}

        listed = client.get("/businesses", headers=headers).json()
        assert [b["id"] for b in listed["items"]] == [body["id"]]

    def test_get_requires_membership(self, client, team):
        url = f"/businesses/{team['business_id']}"
        assert client.get(url, headers=team["headers"]["member"]).status_code == 200
        assert client.get(url, headers=team["headers"]["outsider"]).status_code == 403
        assert client.get("/businesses/9999", headers=team["headers"]["owner"]).status_code == 404

    def test_delete_owner_only(self, client, team):
        url = f"/businesses/{team['business_id']}"

        r = client.delete(url, headers=team["headers"]["super"])
        assert r.status_code == 403
        assert r.json()["code"] == "not_business_owner"

        r = client.delete(url, headers=team["headers"]["owner"])
        assert r.status_code == 200
        assert r.json()["deleted"]["businesses"] == 1
        assert client.get(url, headers=team["headers"]["owner"]).status_code == 404


class TestListMembers:
    def test_members_in_order_with_details(self, client, team):
        r = client.get(members_url(team), headers=team["headers"]["member"])
        assert r.status_code == 200
        body = r.json()

        assert [m["email"] for m in body["items"]] == [
            "owner@test.com", "super@test.com", "admin@test.com", "member@test.com",
        ]
        assert body["items"][0]["is_owner"] is True
        assert body["member_counts"] == {"super_admin": 2, "admin": 1, "member": 1, "client": 0}

    def test_outsider_forbidden(self, client, team):
        assert client.get(members_url(team), headers=team["headers"]["outsider"]).status_code == 403


class TestAddMember:
    def test_admin_adds_member(self, client, team):
        outsider = team["users"]["outsider"]
        r = client.post(members_url(team), json={"user_id": outsider.id, "role": "Member"},
                        headers=team["headers"]["admin"])
        assert r.status_code == 201
        assert r.json()["role"] == "Member"

        me = client.get("/auth/me", headers=team["headers"]["outsider"]).json()
        assert me["default_business_id"] == team["business_id"]
        assert "edit_task" in me["permissions"]

    def test_admin_cannot_grant_admin(self, client, team):
        outsider = team["users"]["outsider"]
        r = client.post(members_url(team), json={"user_id": outsider.id, "role": "Admin"},
                        headers=team["headers"]["admin"])
        assert r.status_code == 403

    def test_member_cannot_add(self, client, team):
        outsider = team["users"]["outsider"]
        r = client.post(members_url(team), json={"user_id": outsider.id, "role": "Client"},
                        headers=team["headers"]["member"])
        assert r.status_code == 403

    def test_only_owner_grants_super_admin(self, client, team):
        outsider = team["users"]["outsider"]
        body = {"user_id": outsider.id, "role": "SuperAdmin"}

        assert client.post(members_url(team), json=body, headers=team["headers"]["super"]).status_code == 403
        assert client.post(members_url(team), json=body, headers=team["headers"]["owner"]).status_code == 201

    def test_duplicate(self, client, team):
        member = team["users"]["member"]
        r = client.post(members_url(team), json={"user_id": member.id, "role": "Client"},
                        headers=team["headers"]["owner"])
        assert r.status_code == 400
        assert r.json()["code"] == "duplicate_member"

    def test_unknown_user(self, client, team):
        r = client.post(members_url(team), json={"user_id": 9999, "role": "Client"},
                        headers=team["headers"]["owner"])
        assert r.status_code == 404
        assert r.json()["code"] == "user_not_found"

    @pytest.mark.parametrize("body", [
        {"user_id": 5, "role": "Owner"},
        {"user_id": 5, "role": "admin"},
        {"user_id": 0, "role": "Member"},
        {"role": "Member"},
    ])
    def test_validation(self, client, team, body):
        r = client.post(members_url(team), json=body, headers=team["headers"]["owner"])
        assert r.status_code == 422

    def test_admin_ceiling(self, client, conn, team, make_user):
        owner_id = team["users"]["owner"].id
        for i in range(19):
            user = make_user(f"admin{i}@test.com")
            services.add_business_member(conn, owner_id, team["business_id"], user.id, Role.Admin)

        outsider = team["users"]["outsider"]
        r = client.post(members_url(team), json={"user_id": outsider.id, "role": "Admin"},
                        headers=team["headers"]["owner"])

        assert r.status_code == 400
        assert r.json()["code"] == "quota_exceeded"
        quotas = client.get(f"/businesses/{team['business_id']}/quotas", headers=team["headers"]["owner"]).json()
        assert quotas["admin"] == {"current": 20, "limit": 20, "remaining": 0}


class TestRemoveMember:
    def test_admin_removes_member(self, client, team):
        member = team["users"]["member"]
        r = client.delete(members_url(team, f"/{member.id}"), headers=team["headers"]["admin"])
        assert r.status_code == 200
        assert r.json()["member_counts"]["member"] == 0

        assert client.get(members_url(team), headers=team["headers"]["member"]).status_code == 403

    def test_admin_cannot_remove_admin(self, client, team):
        admin = team["users"]["admin"]
        assert client.delete(members_url(team, f"/{admin.id}"), headers=team["headers"]["admin"]).status_code == 403

    def test_super_admin_cannot_remove_super_admin(self, client, team):
        owner = team["users"]["owner"]
        assert client.delete(members_url(team, f"/{owner.id}"), headers=team["headers"]["super"]).status_code == 403

    def test_not_a_member(self, client, team):
        outsider = team["users"]["outsider"]
        r = client.delete(members_url(team, f"/{outsider.id}"), headers=team["headers"]["owner"])
        assert r.status_code == 404
        assert r.json()["code"] == "member_not_found"

    def test_owner_removes_other_super_admin_then_is_last(self, client, team):
        owner, second = team["users"]["owner"], team["users"]["super"]

        assert client.delete(members_url(team, f"/{second.id}"), headers=team["headers"]["owner"]).status_code == 200

        r = client.delete(members_url(team, f"/{owner.id}"), headers=team["headers"]["owner"])
        assert r.status_code == 400
        assert r.json()["code"] == "last_super_admin"


class TestUpdateRole:
    def test_admin_promotes_client_to_member(self, client, conn, team):
        outsider = team["users"]["outsider"]
        services.add_business_member(conn, team["users"]["owner"].id, team["business_id"], outsider.id, Role.Client)

        r = client.patch(members_url(team, f"/{outsider.id}/role"), json={"role": "Member"},
                         headers=team["headers"]["admin"])
        assert r.status_code == 200
        body = r.json()
        assert body["old_role"] == "Client"
        assert body["new_role"] == "Member"
        assert body["member_counts"]["member"] == 2

    def test_admin_cannot_promote_to_admin(self, client, team):
        member = team["users"]["member"]
        r = client.patch(members_url(team, f"/{member.id}/role"), json={"role": "Admin"},
                         headers=team["headers"]["admin"])
        assert r.status_code == 403

    def test_owner_demotes_self_only_while_another_super_admin_exists(self, client, team):
        owner, second = team["users"]["owner"], team["users"]["super"]

        r = client.patch(members_url(team, f"/{second.id}/role"), json={"role": "Admin"},
                         headers=team["headers"]["owner"])
        assert r.status_code == 200

        r = client.patch(members_url(team, f"/{owner.id}/role"), json={"role": "Admin"},
                         headers=team["headers"]["owner"])
        assert r.status_code == 400
        assert r.json()["code"] == "last_super_admin"

    def test_invalid_role(self, client, team):
        member = team["users"]["member"]
        r = client.patch(members_url(team, f"/{member.id}/role"), json={"role": "Guest"},
                         headers=team["headers"]["owner"])
        assert r.status_code == 422


class TestQuotasAndPermissions:
    def test_quotas(self, client, team):
        r = client.get(f"/businesses/{team['business_id']}/quotas", headers=team["headers"]["member"])
        assert r.status_code == 200
        assert r.json() == {
            "super_admin": {"current": 2, "limit": 5, "remaining": 3},
            "admin": {"current": 1, "limit": 20, "remaining": 19},
            "member": {"current": 1, "limit": 1000, "remaining": 999},
            "client": {"current": 0, "limit": None, "remaining": None},
        }

    def test_permissions_follow_business_role(self, client, team):
        r = client.get(f"/businesses/{team['business_id']}/permissions", headers=team["headers"]["admin"])
        body = r.json()
        assert body["role"] == "Admin"
        assert body["is_owner"] is False
        assert "manage_members" in body["permissions"]
        assert "manage_admins" not in body["permissions"]

    def test_audit_logs_need_view_permission(self, client, team):
        url = f"/businesses/{team['business_id']}/audit-logs"
        assert client.get(url, headers=team["headers"]["member"]).status_code == 403

        r = client.get(url, headers=team["headers"]["admin"])
        assert r.status_code == 200
        actions = [item["action"] for item in r.json()["items"]]
        assert actions.count("MEMBER_ADDED") == 3
        assert "BUSINESS_CREATED" in actions

    def test_notifications(self, client, team):
        r = client.get("/notifications", headers=team["headers"]["member"])
        assert r.status_code == 200
        assert r.json()["items"][0]["type"] == "member_added"


class TestInvitationsApi:
    def test_invite_and_accept(self, client, team, make_user, auth_headers):
        url = f"/businesses/{team['business_id']}/invitations"
        r = client.post(url, json={"email": "carol@test.com", "role": "Client"}, headers=team["headers"]["admin"])
        assert r.status_code == 201
        token = r.json()["token"]

        listed = client.get(url, headers=team["headers"]["admin"]).json()
        assert listed["total"] == 1
        assert listed["items"][0]["token"] is None

        carol = make_user("carol@test.com")
        r = client.post(f"/invitations/{token}/accept", headers=auth_headers(carol))
        assert r.status_code == 200
        assert r.json()["role"] == "Client"

        r = client.post(f"/invitations/{token}/accept", headers=auth_headers(carol))
        assert r.status_code == 400
        assert r.json()["code"] == "invitation_invalid"

    def test_admin_cannot_invite_admin(self, client, team):
        url = f"/businesses/{team['business_id']}/invitations"
        r = client.post(url, json={"email": "carol@test.com", "role": "Admin"}, headers=team["headers"]["admin"])
        assert r.status_code == 403

    def test_member_cannot_invite(self, client, team):
        url = f"/businesses/{team['business_id']}/invitations"
        r = client.post(url, json={"email": "carol@test.com", "role": "Client"}, headers=team["headers"]["member"])
        assert r.status_code == 403

    def test_cancel(self, client, team):
        url = f"/businesses/{team['business_id']}/invitations"
        invitation_id = client.post(url, json={"email": "carol@test.com"}, headers=team["headers"]["owner"]).json()["id"]

        assert client.delete(f"{url}/{invitation_id}", headers=team["headers"]["owner"]).status_code == 200
        assert client.delete(f"{url}/{invitation_id}", headers=team["headers"]["owner"]).status_code == 404

    def test_resend_renews_and_keeps_token(self, client, conn, team):
        url = f"/businesses/{team['business_id']}/invitations"
        created = client.post(url, json={"email": "carol@test.com", "role": "Client"},
                              headers=team["headers"]["admin"]).json()
        execute_query(conn, "UPDATE invitations SET status = 'expired', expires_at = '2000-01-01T00:00:00Z' "
                            "WHERE id = :id", {"id": created["id"]})
        commit(conn)

        r = client.post(f"{url}/{created['id']}/resend", headers=team["headers"]["admin"])
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "pending"
        assert body["token"] == created["token"]
        assert body["expires_at"] > "2000-01-01T00:00:00Z"

    def test_resend_needs_manager_role(self, client, team):
        url = f"/businesses/{team['business_id']}/invitations"
        invitation_id = client.post(url, json={"email": "carol@test.com"}, headers=team["headers"]["owner"]).json()["id"]

        assert client.post(f"{url}/{invitation_id}/resend", headers=team["headers"]["member"]).status_code == 403
        assert client.post(f"{url}/9999/resend", headers=team["headers"]["owner"]).status_code == 404

    def test_admin_cannot_resend_admin_invitation(self, client, team):
        url = f"/businesses/{team['business_id']}/invitations"
        invitation_id = client.post(url, json={"email": "carol@test.com", "role": "Admin"},
                                    headers=team["headers"]["owner"]).json()["id"]

        assert client.post(f"{url}/{invitation_id}/resend", headers=team["headers"]["admin"]).status_code == 403

    def test_validate_is_public_until_accepted(self, client, team, make_user, auth_headers):
        url = f"/businesses/{team['business_id']}/invitations"
        token = client.post(url, json={"email": "carol@test.com", "role": "Member"},
                            headers=team["headers"]["admin"]).json()["token"]

        r = client.get(f"/invitations/{token}")
        assert r.status_code == 200
        assert r.json() == {"email": "carol@test.com", "business_id": team["business_id"], "role": "Member"}

        carol = make_user("carol@test.com")
        assert client.post(f"/invitations/{token}/accept", headers=auth_headers(carol)).status_code == 200

        r = client.get(f"/invitations/{token}")
        assert r.status_code == 404
        assert r.json()["code"] == "invitation_not_found"

    def test_validate_unknown_token(self, client, db):
        assert client.get(f"/invitations/{'0' * 64}").status_code == 404
        assert client.get("/invitations/short").status_code == 422


class TestOwnerRights:
    def test_owner_leaves_and_remaining_super_admin_takes_over(self, client, team, make_user):
        owner = team["users"]["owner"]

        r = client.delete(members_url(team, f"/{owner.id}"), headers=team["headers"]["owner"])
        assert r.status_code == 200
        assert r.json()["member_counts"]["super_admin"] == 1

        r = client.get(f"/businesses/{team['business_id']}/permissions", headers=team["headers"]["super"])
        assert r.json()["is_owner"] is False

        newcomer = make_user("newcomer@test.com")
        r = client.post(members_url(team), json={"user_id": newcomer.id, "role": "SuperAdmin"},
                        headers=team["headers"]["super"])
        assert r.status_code == 201

        r = client.delete(f"/businesses/{team['business_id']}", headers=team["headers"]["super"])
        assert r.status_code == 200
        assert r.json()["deleted"]["businesses"] == 1

    def test_owner_demoted_hands_rights_to_super_admins(self, client, team):
        owner = team["users"]["owner"]
        r = client.patch(members_url(team, f"/{owner.id}/role"), json={"role": "Admin"},
                         headers=team["headers"]["owner"])
        assert r.status_code == 200

        # the former owner is now an Admin and cannot touch SuperAdmin seats
        second = team["users"]["super"]
        assert client.delete(members_url(team, f"/{second.id}"), headers=team["headers"]["owner"]).status_code == 403
        assert client.delete(f"/businesses/{team['business_id']}", headers=team["headers"]["owner"]).status_code == 403

        r = client.patch(members_url(team, f"/{owner.id}/role"), json={"role": "SuperAdmin"},
                         headers=team["headers"]["super"])
        assert r.status_code == 200

    def test_other_super_admin_has_no_owner_rights_while_owner_stays(self, client, team, make_user):
        newcomer = make_user("newcomer@test.com")
        r = client.post(members_url(team), json={"user_id": newcomer.id, "role": "SuperAdmin"},
                        headers=team["headers"]["super"])
        assert r.status_code == 403
