import pytest

from app.core.errors import Forbidden, Unauthorized
from app.core.roles import Role, has_required_role, is_admin, parse_roles
from app.core.auth import require_admin, require_roles

from conftest import admin_user, dev_headers, make_cycle, make_user


def test_parse_roles_ignores_unknown_and_duplicates():
    assert parse_roles(" admin, USER,admin, wizard ") == [Role.ADMIN, Role.USER]
    assert parse_roles(None) == []


def test_super_admin_satisfies_any_role():
    assert has_required_role([Role.SUPER_ADMIN], [Role.PROJECT_TEAM_MEMBER])
    assert is_admin([Role.SUPER_ADMIN])


def test_plain_user_is_not_admin():
    assert not is_admin([Role.USER, Role.GENERAL_MEMBER])
    assert has_required_role([Role.GENERAL_MEMBER], [Role.GENERAL_MEMBER, Role.PROJECT_TEAM_MEMBER])


async def test_require_admin_rejects_applicant():
    dependency = require_admin()
    with pytest.raises(Forbidden):
        await dependency(user=make_user())
    assert (await dependency(user=admin_user())).is_admin


async def test_require_roles_accepts_matching_role():
    dependency = require_roles([Role.PROJECT_TEAM_MEMBER])
    member = make_user("member@umich.edu", Role.PROJECT_TEAM_MEMBER)
    assert await dependency(user=member) is member


async def test_admin_routes_need_admin_role(client):
    response = await client.get("/api/admin/recruitment/cycles", headers={"X-User-Email": "student@umich.edu"})
    assert response.status_code == 403
    assert response.json() == {"error": "Insufficient permissions"}


async def test_missing_identity_is_unauthorized(client):
    response = await client.get("/auth/me")
    assert response.status_code == 401
    assert "error" in response.json()


async def test_me_reports_roles(client):
    response = await client.get("/auth/me", headers={"X-User-Email": "Lead@umich.edu", "X-User-Roles": "ADMIN"})
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "lead@umich.edu"
    assert body["roles"] == ["ADMIN"]


def test_unauthorized_is_401():
    assert Unauthorized().status_code == 401


async def test_me_reports_active_application(client, db_session):
    cycle = await make_cycle(db_session)
    await db_session.commit()
    response = await client.get("/auth/me", headers=dev_headers("applicant@umich.edu"))
    assert response.status_code == 200
    body = response.json()
    assert body["is_admin"] is False
    assert body["active_cycle_id"] == cycle.cycle_id
    assert body["application_stage"] is None
