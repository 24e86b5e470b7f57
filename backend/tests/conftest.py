"""
PeakSelf Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment variables are set before any app import so Settings picks
       them up; the database is replaced by an AsyncMock session injected
       through app.dependency_overrides.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── mock_db_session: Mock AsyncSession (no real DB needed)
    ├── make_user: Factory for User instances
    ├── test_client: HTTPX AsyncClient over ASGITransport, DB overridden
    ├── csrf_headers: Fetches a CSRF token and returns the matching header
    └── rate_limiting: Enables the limiters with fresh windows
"""

import os

# Override settings for testing BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ENABLE_RATE_LIMIT"] = "false"
os.environ["CLIENT_URL"] = "http://localhost:5173"
os.environ["JWT_SECRET"] = "test-jwt-secret-that-is-long-enough-0123456789"
os.environ["SESSION_SECRET"] = "test-session-secret-long-enough-0123456789"
os.environ["CSRF_SECRET"] = "test-csrf-secret-long-enough-0123456789"
os.environ["GOOGLE_CLIENT_ID"] = ""
os.environ["GOOGLE_CLIENT_SECRET"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"  # Fast hashing in tests

import uuid  # noqa: E402
from datetime import datetime, timezone  # noqa: E402
from typing import Any, Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import get_db_session  # noqa: E402
from app.middleware.rate_limit import reset_rate_limits  # noqa: E402
from app.models.user import User  # noqa: E402


def make_result(
    scalar: Any = None,
    scalars: Optional[list] = None,
    first: Any = None,
    one: Any = None,
    rowcount: int = 0,
    scalar_value: Any = None,
) -> MagicMock:
    """
    A stand-in for the Result returned by AsyncSession.execute().

    Usage:
        mock_db_session.execute.return_value = make_result(scalar=user)
        mock_db_session.execute.side_effect = [make_result(first=None), make_result(scalar=user)]
    """
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalars.return_value.all.return_value = scalars or []
    result.first.return_value = first
    result.one_or_none.return_value = one
    result.scalar_one.return_value = scalar_value
    result.scalar.return_value = scalar_value
    result.rowcount = rowcount
    return result


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    execute() answers with an empty result unless a test sets return_value
    or side_effect (see make_result).
    """
    session = AsyncMock()
    session.execute = AsyncMock(return_value=make_result())
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def make_user():
    """Factory for User instances that never touch a database."""

    def _make(**overrides) -> User:
        fields = {
            "id": uuid.uuid4(),
            "email": "user@example.com",
            "password_hash": None,
            "name": "Test User",
            "avatar_url": None,
            "google_id": None,
            "provider": "local",
            "role": "user",
            "verified": True,
            "deleted_at": None,
            "created_at": datetime.now(timezone.utc),
            "updated_at": datetime.now(timezone.utc),
        }
        fields.update(overrides)
        return User(**fields)

    return _make


@pytest.fixture
def fastapi_app():
    from app.main import app
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_client(fastapi_app, mock_db_session):
    """
    HTTPX AsyncClient routed straight into the FastAPI app.

    get_db_session is overridden to yield mock_db_session. App exceptions
    are rendered as responses instead of being re-raised into the test.
    """

    async def _override_db():
        yield mock_db_session

    fastapi_app.dependency_overrides[get_db_session] = _override_db
    transport = ASGITransport(app=fastapi_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def csrf_headers(test_client):
    """Fetch a CSRF token (the cookie lands in the client jar) and return the header."""
    response = await test_client.get("/api/csrf-token")
    assert response.status_code == 200
    return {"X-CSRF-Token": response.json()["csrfToken"]}


@pytest.fixture
def rate_limiting(monkeypatch):
    """Turn the limiters on with empty windows for the duration of a test."""
    monkeypatch.setattr(settings, "enable_rate_limit", True)
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture(autouse=True)
def _fresh_rate_limit_windows():
    reset_rate_limits()
    yield
