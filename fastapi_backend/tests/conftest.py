import os

# Must be set before the app modules read the environment.
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("AUTH_STORAGE_PROVIDER", "memory")
os.environ.setdefault("NODE_ENV", "test")

import pytest
from fastapi.testclient import TestClient

from src.api.auth_store import InMemoryAuthStore
from src.api.auth_utils import Auth
from src.api.config import AppConfig
from src.api.main import create_app


@pytest.fixture
def config():
    return AppConfig(environment="test", storage_provider="memory", jwt_secret="test-secret")


@pytest.fixture
def store():
    return InMemoryAuthStore()


@pytest.fixture
def auth(config, store):
    return Auth.from_config(config, store)


@pytest.fixture
def app(config, auth):
    return create_app(config, auth)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def signed_up(client):
    """Sign up a user and return (token, user) with a clean cookie jar."""
    resp = client.post(
        "/auth/sign-up/email",
        json={"name": "Ada", "email": "ada@example.com", "password": "correct-horse"},
    )
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    body = resp.json()
    return body["token"], body["user"]
