"""
Shared fixtures. Every test gets a fresh in-memory Mongo database
(mongomock-motor) so nothing touches a real server.
"""

import asyncio
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from smartcare_auth.core.config import settings
from smartcare_auth.core.security import create_access_token
from smartcare_auth.db.mongodb import get_database
from smartcare_auth.db.redis_client import reset_redis
from smartcare_auth.main import app


USER_ID = "U1"
EMAIL = "patient@example.com"
DEVICE_ID = "device_lx2k9a1b_4f8z1c0q7m2ab"


def run(coro):
    """Run a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.setattr(settings, "REDIS_URL", None)
    reset_redis()
    yield
    reset_redis()


@pytest.fixture
def db():
    client = AsyncMongoMockClient()
    return client["smart_care_test"]


@pytest.fixture
def client(db):
    async def override_get_database():
        return db

    app.dependency_overrides[get_database] = override_get_database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    token = create_access_token({"id": USER_ID, "email": EMAIL, "role": "patient"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_user_headers():
    token = create_access_token({"id": "U2", "email": "other@example.com", "role": "patient"})
    return {"Authorization": f"Bearer {token}"}


def expire_request(db, request_id, minutes_ago=1):
    """Push a stored request's expiry into the past."""
    return run(db.login_requests.update_one(
        {"_id": request_id},
        {"$set": {"expires_at": datetime.utcnow() - timedelta(minutes=minutes_ago)}}
    ))
