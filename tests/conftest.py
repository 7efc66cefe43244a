import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import MemoryStore
from main import create_app

PREFIX = "/make-server-ff9d2bf9"

ADDRESS = {
    "fullName": "Priya Sharma",
    "email": "priya@jewelpalace.com",
    "phone": "9876543210",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}


def make_settings(**overrides):
    options = dict(
        store_backend="memory",
        api_prefix=PREFIX,
        jwt_secret="test-secret",
        admin_email_marker="admin",
        admin_emails=[],
        log_level="WARNING",
    )
    options.update(overrides)
    return Settings(**options)


def register(client, email, password="pw", name="Test User"):
    res = client.post(f"{PREFIX}/auth/register", json={"email": email, "password": password, "name": name})
    assert res.status_code == 200, res.text
    return res.json()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def app(store):
    return create_app(make_settings(), store=store)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers(client):
    data = register(client, "admin@x.com", name="Admin")
    return bearer(data["session"]["access_token"])


@pytest.fixture
def user_headers(client):
    data = register(client, "jane@x.com", name="Jane")
    return bearer(data["session"]["access_token"])


@pytest.fixture
def gold_ring(client, admin_headers):
    res = client.post(
        f"{PREFIX}/admin/products",
        json={"name": "Gold Ring", "category": "Rings", "price": 45000, "discount": 15, "material": "Gold"},
        headers=admin_headers,
    )
    assert res.status_code == 200, res.text
    return res.json()["product"]
