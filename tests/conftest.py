"""
Shared fixtures.

Every test gets a fresh in-memory store and a logging notification sender,
wired into the app through dependency overrides, so no MongoDB or provider
credentials are needed.
"""
import os

# Force the in-memory store before the app modules are imported
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)

import pytest
from fastapi.testclient import TestClient

from database import MemoryDB, get_db
from main import app
from notifications import LoggingNotificationSender, get_sender
from security import create_token


@pytest.fixture
def db():
    return MemoryDB()


@pytest.fixture
def sender():
    return LoggingNotificationSender()


@pytest.fixture
def client(db, sender):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_sender] = lambda: sender
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def account(client):
    """A freshly registered account: ``{"user": {...}, "token": ..., "refreshToken": ...}``."""
    resp = client.post(
        "/api/auth/register",
        json={"name": "Agent Smith", "email": "agent@example.com", "password": "S3cret!pass"},
    )
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def auth_headers(account):
    return {"Authorization": f"Bearer {account['token']}"}


@pytest.fixture
def token_for():
    def _make(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_token(user_id)}"}

    return _make
