"""
Shared fixtures. Environment is set before any service module is imported,
since their ``config`` modules read it at import time.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("BOOKING_DB", "sqlite+aiosqlite://")
os.environ.setdefault("AUTH_DB", "sqlite+aiosqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.pop("RABBIT_URL", None)
os.environ.pop("REDIS_URL", None)

from datetime import timedelta

import pytest

from shared.security import ACCESS_TOKEN, Actor, create_token


class FakeRedis:
    """In-memory stand-in for the few redis.asyncio calls the services make."""

    def __init__(self):
        self.store = {}

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def get(self, key):
        return self.store.get(key)

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    async def exists(self, key):
        return 1 if key in self.store else 0


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def customer():
    return Actor(subject="alice@example.com", roles=frozenset({"customer"}))


@pytest.fixture
def other_customer():
    return Actor(subject="bob@example.com", roles=frozenset({"customer"}))


@pytest.fixture
def technician():
    return Actor(subject="tech1@example.com", roles=frozenset({"technician"}))


@pytest.fixture
def other_technician():
    return Actor(subject="tech2@example.com", roles=frozenset({"technician"}))


@pytest.fixture
def admin():
    return Actor(subject="admin@example.com", roles=frozenset({"admin"}))


@pytest.fixture
def token_for():
    """Mint an access token for an Actor, signed like auth-service does."""

    def _token(actor: Actor, token_type: str = ACCESS_TOKEN, expires_delta=timedelta(minutes=15)) -> str:
        return create_token(
            actor.subject,
            sorted(actor.roles),
            token_type,
            expires_delta,
            os.environ["JWT_SECRET"],
            os.environ["JWT_ALGORITHM"],
        )

    return _token


@pytest.fixture
def auth_headers(token_for):
    def _headers(actor: Actor) -> dict:
        return {"Authorization": f"Bearer {token_for(actor)}"}

    return _headers
