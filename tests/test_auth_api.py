from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from auth import create_token
from conftest import PREFIX, bearer, make_settings, register
from database import MemoryStore
from main import create_app


@pytest.mark.parametrize(
    "email,is_admin",
    [
        ("admin@x.com", True),
        ("Store.ADMIN@x.com", True),
        ("jane@x.com", False),
    ],
)
def test_admin_flag_set_at_registration(client, email, is_admin):
    data = register(client, email, password="pw")
    assert data["user"]["isAdmin"] is is_admin
    assert data["user"]["user_metadata"] == {"name": "Test User", "isAdmin": is_admin}
    assert data["session"]["token_type"] == "bearer"


def test_password_never_returned_or_stored_in_clear(client, store):
    data = register(client, "jane@x.com", password="s3cret")
    assert "password" not in data["user"]
    assert "passwordHash" not in data["user"]
    stored = store.get("user", data["user"]["id"])
    assert stored["passwordHash"] != "s3cret"


def test_duplicate_email_rejected(client):
    register(client, "jane@x.com")
    res = client.post(f"{PREFIX}/auth/register", json={"email": "JANE@x.com", "password": "pw", "name": "J"})
    assert res.status_code == 400
    assert res.json() == {"error": "Email already registered"}


def test_invalid_email_rejected(client):
    res = client.post(f"{PREFIX}/auth/register", json={"email": "not-an-email", "password": "pw"})
    assert res.status_code == 400


def test_login_returns_session_and_stored_role(client):
    register(client, "admin@x.com", password="pw", name="Boss")
    res = client.post("/auth/v1/token", json={"email": "admin@x.com", "password": "pw"})
    assert res.status_code == 200
    body = res.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 7 * 24 * 60 * 60
    assert body["user"]["name"] == "Boss"
    assert body["user"]["isAdmin"] is True

    me = client.get("/auth/v1/user", headers=bearer(body["access_token"]))
    assert me.json()["email"] == "admin@x.com"


@pytest.mark.parametrize(
    "email,password",
    [("jane@x.com", "wrong"), ("nobody@x.com", "pw")],
)
def test_login_rejects_bad_credentials(client, email, password):
    register(client, "jane@x.com", password="pw")
    res = client.post("/auth/v1/token", json={"email": email, "password": password})
    assert res.status_code == 401
    assert res.json() == {"error": "Invalid login credentials"}


def test_current_user_requires_token(client):
    assert client.get("/auth/v1/user").status_code == 401
    res = client.get("/auth/v1/user", headers=bearer("mock_access_token"))
    assert res.status_code == 401
    assert res.json() == {"error": "Invalid token"}


def test_expired_token_rejected(client):
    user = register(client, "jane@x.com")["user"]
    token = create_token({"sub": user["id"]}, "test-secret", timedelta(minutes=-5))
    res = client.get("/auth/v1/user", headers=bearer(token))
    assert res.status_code == 401
    assert res.json() == {"error": "Token expired"}


def test_token_for_deleted_user_rejected(client, store):
    data = register(client, "jane@x.com")
    store.delete("user", data["user"]["id"])
    res = client.get("/auth/v1/user", headers=bearer(data["session"]["access_token"]))
    assert res.status_code == 401


def test_explicit_admin_list_and_disabled_marker():
    app = create_app(make_settings(admin_email_marker="", admin_emails=["Owner@Shop.com"]), store=MemoryStore())
    with TestClient(app) as client:
        assert register(client, "owner@shop.com")["user"]["isAdmin"] is True
        assert register(client, "admin@shop.com")["user"]["isAdmin"] is False
