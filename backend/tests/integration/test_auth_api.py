from unittest.mock import MagicMock

import pytest

import reviewdesk.api.v1.auth as auth_api


@pytest.mark.asyncio
async def test_register_then_dev_login(client):
    res = await client.post(
        "/api/v1/auth/register",
        json={"name": "Nia New", "email": "Nia@uni-example.org", "password": "long-enough-pw"},
    )
    assert res.status_code == 201, res.text
    user = res.json()["user"]
    assert user["role"] == "author"
    assert "password" not in user

    res = await client.get("/api/v1/auth/dev-login", params={"email": "nia@uni-example.org"})
    assert res.status_code == 200
    token = res.json()["access_token"]
    assert res.json()["user"]["id"] == user["id"]

    res = await client.get("/api/v1/user/profile", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.json()["data"]["email"] == "nia@uni-example.org"


@pytest.mark.asyncio
async def test_register_duplicate_and_admin_role(client, people):
    res = await client.post(
        "/api/v1/auth/register",
        json={"name": "Ada Again", "email": "ada@uni-example.org", "password": "long-enough-pw"},
    )
    assert res.status_code == 409
    assert res.json()["error"]["kind"] == "conflict"

    res = await client.post(
        "/api/v1/auth/register",
        json={"name": "Mallory", "email": "mallory@uni-example.org", "password": "long-enough-pw", "role": "admin"},
    )
    assert res.status_code == 422
    assert res.json()["error"]["details"][0]["field"] == "role"


@pytest.mark.asyncio
async def test_dev_login_hidden_outside_development(client, people, monkeypatch):
    monkeypatch.setattr(auth_api, "app_config", MagicMock(is_dev=False))
    res = await client.get("/api/v1/auth/dev-login", params={"email": "ada@uni-example.org"})
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_dev_login_unknown_email(client, people):
    res = await client.get("/api/v1/auth/dev-login", params={"email": "nobody@uni-example.org"})
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_missing_and_expired_tokens_are_401(client, people, expired_token):
    res = await client.get("/api/v1/manuscripts")
    assert res.status_code == 401
    assert res.json() == {
        "success": False,
        "error": {"kind": "unauthorized", "message": "Authentication required"},
    }

    res = await client.get("/api/v1/manuscripts", headers={"Authorization": f"Bearer {expired_token}"})
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_profile_update(client, people, auth_headers):
    headers = auth_headers(people["reviewer"])
    res = await client.put(
        "/api/v1/user/profile",
        headers=headers,
        json={"affiliation": "Ocean Lab", "expertise": ["tides", " "], "orcid": ""},
    )
    assert res.status_code == 200, res.text
    profile = res.json()["data"]["profile"]
    assert profile["affiliation"] == "Ocean Lab"
    assert profile["expertise"] == ["tides"]
    assert profile["orcid"] is None

    res = await client.put("/api/v1/user/profile", headers=headers, json={"orcid": "not-an-orcid"})
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_search_is_editor_only(client, people, auth_headers):
    res = await client.get("/api/v1/users/search", params={"query": "rita"}, headers=auth_headers(people["author"]))
    assert res.status_code == 403

    res = await client.get("/api/v1/users/search", params={"query": "rita"}, headers=auth_headers(people["editor"]))
    users = res.json()["users"]
    assert [u["name"] for u in users] == ["Rita Reviewer"]
    assert users[0]["profile"]["affiliation"] == "Institute of Marine Biology"


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client):
    res = await client.get("/api/v1/nothing-here")
    assert res.status_code == 404
    assert res.json()["success"] is False
    assert res.json()["error"]["kind"] == "http_error"


@pytest.mark.asyncio
async def test_root(client):
    res = await client.get("/")
    assert res.status_code == 200
    assert res.json()["message"] == "ReviewDesk API is running"


def test_package_entrypoint_exposes_same_app():
    import main
    from reviewdesk.main import app

    assert app is main.app
