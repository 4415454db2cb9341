"""
Shared Test Fixtures
====================

HTTP client over the ASGI app, an in-memory stand-in for Redis and a mocked
database session. No Postgres or Redis server is needed.
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.db.session import get_db
from app.dependencies import get_current_user, get_current_user_optional
from app.main import app
from app.models.user import User, UserRole


def make_user(role: UserRole = UserRole.PARTICIPANT, **overrides) -> User:
    """Transient User with the columns routes read."""
    now = datetime.now(timezone.utc)
    values = {
        "user_id": uuid.uuid4(),
        "email": f"{role.value.lower()}-{uuid.uuid4().hex[:6]}@example.com",
        "name": f"Test {role.value.title()}",
        "role": role,
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return User(**values)


async def _no_keys(*args, **kwargs):
    return
    yield


@pytest.fixture(autouse=True)
def fake_redis():
    """Redis client double: every key is a miss, every counter is at 1."""
    client = AsyncMock()
    client.get.return_value = None
    client.incr.return_value = 1
    client.ttl.return_value = 60
    client.setex.return_value = True
    client.delete.return_value = 1
    client.exists.return_value = 0
    client.scan_iter = MagicMock(side_effect=_no_keys)

    with patch("app.services.cache.get_redis", return_value=client), \
            patch("app.core.rate_limit.get_redis", return_value=client), \
            patch("app.dependencies.get_redis", return_value=client), \
            patch("app.api.v1.webhooks.get_redis", return_value=client):
        yield client


@pytest.fixture
def mock_db():
    db = AsyncMock()
    db.add = MagicMock()
    db.begin_nested = MagicMock()
    return db


@pytest.fixture
def participant() -> User:
    return make_user(UserRole.PARTICIPANT)


@pytest.fixture
def captain() -> User:
    return make_user(UserRole.CAPTAIN)


@pytest.fixture
def admin() -> User:
    return make_user(UserRole.ADMIN)


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def login(mock_db):
    """Authenticate requests as ``user`` against the mocked session."""

    def _login(user: User):
        async def _db():
            yield mock_db

        app.dependency_overrides[get_db] = _db
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_current_user_optional] = lambda: user
        return user

    yield _login
    app.dependency_overrides.clear()
