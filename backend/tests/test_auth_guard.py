"""
PeakSelf Backend — Auth Guard Tests
=====================================

What:  Tests for identity extraction and the require_auth / require_admin guards.
Why:   Every protected route trusts these dependencies; a wrong precedence or
       a skipped role recheck would let a demoted admin back in.
How:   Guards are called directly with hand-built Starlette requests and the
       mock DB session; the admin route is also exercised through the app.

What we test:
    ✅ JWT from the access_token cookie and from a Bearer header
    ✅ Expired, forged and malformed tokens are ignored
    ✅ JWT wins over the session user in get_current_user
    ✅ Session users are re-read from the database; missing rows are anonymous
    ✅ A demoted or deleted session admin is refused
    ✅ require_auth raises 401 without any identity
    ✅ require_admin rechecks the role in the database for JWT callers
    ✅ require_admin falls back to the token role when the recheck fails
    ✅ /api/admin answers 401 / 403 / 200
"""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, Optional

import jwt
import pytest
from sqlalchemy.exc import OperationalError
from starlette.requests import Request

from app.config import settings
from app.exceptions import AuthenticationError, AuthorizationError
from app.middleware.auth import (
    ACCESS_TOKEN_COOKIE,
    SESSION_USER_KEY,
    decode_access_token,
    get_current_user,
    require_admin,
    require_auth,
    verify_jwt,
)
from app.services.auth_service import auth_service
from tests.conftest import make_result


def make_request(
    cookies: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
    session: Optional[dict] = None,
) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookies:
        cookie_header = "; ".join(f"{k}={v}" for k, v in cookies.items())
        raw_headers.append((b"cookie", cookie_header.encode()))
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": raw_headers,
        "session": session if session is not None else {},
    }
    return Request(scope)


def make_token(sub=None, role="user", email="user@example.com", expires_in=3600, secret=None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(sub or uuid.uuid4()),
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm="HS256")


class TestTokenExtraction:

    def test_token_from_cookie(self):
        token = make_token(role="admin")
        claims = verify_jwt(make_request(cookies={ACCESS_TOKEN_COOKIE: token}))
        assert claims["role"] == "admin"

    def test_token_from_bearer_header(self):
        token = make_token()
        claims = verify_jwt(make_request(headers={"Authorization": f"Bearer {token}"}))
        assert claims["email"] == "user@example.com"

    def test_no_token_returns_none(self):
        assert verify_jwt(make_request()) is None

    def test_non_bearer_scheme_ignored(self):
        assert verify_jwt(make_request(headers={"Authorization": "Basic abc"})) is None

    def test_expired_token_rejected(self):
        assert decode_access_token(make_token(expires_in=-10)) is None

    def test_forged_token_rejected(self):
        forged = make_token(secret="someone-elses-secret-that-is-long-enough")
        assert decode_access_token(forged) is None

    def test_garbage_token_rejected(self):
        assert decode_access_token("not-a-jwt") is None

    def test_signed_token_round_trip(self, make_user):
        user = make_user(role="admin")
        claims = decode_access_token(auth_service.sign_jwt(user))
        assert claims["sub"] == str(user.id)
        assert claims["role"] == "admin"
        assert claims["exp"] - claims["iat"] == settings.jwt_expiration_seconds


class TestGetCurrentUser:

    @pytest.mark.asyncio
    async def test_jwt_takes_precedence_over_session(self, mock_db_session):
        sub = uuid.uuid4()
        request = make_request(
            cookies={ACCESS_TOKEN_COOKIE: make_token(sub=sub)},
            session={SESSION_USER_KEY: {"id": str(uuid.uuid4())}},
        )
        current = await get_current_user(request, mock_db_session)
        assert current.id == str(sub)
        assert current.source == "jwt"
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_session_user_read_from_database(self, mock_db_session):
        user_id = str(uuid.uuid4())
        mock_db_session.execute.return_value = make_result(
            one=SimpleNamespace(email="s@example.com", role="user")
        )
        request = make_request(session={SESSION_USER_KEY: {"id": user_id}})
        current = await get_current_user(request, mock_db_session)
        assert current.id == user_id
        assert current.email == "s@example.com"
        assert current.role == "user"
        assert current.source == "session"
        mock_db_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_session_without_id_is_anonymous(self, mock_db_session):
        request = make_request(session={SESSION_USER_KEY: {"email": "s@example.com"}})
        assert await get_current_user(request, mock_db_session) is None

    @pytest.mark.asyncio
    async def test_session_for_missing_user_is_anonymous(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(one=None)
        request = make_request(session={SESSION_USER_KEY: {"id": str(uuid.uuid4())}})
        assert await get_current_user(request, mock_db_session) is None

    @pytest.mark.asyncio
    async def test_session_lookup_failure_is_anonymous(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        request = make_request(session={SESSION_USER_KEY: {"id": str(uuid.uuid4())}})
        assert await get_current_user(request, mock_db_session) is None
        mock_db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_session_id_skips_lookup(self, mock_db_session):
        request = make_request(session={SESSION_USER_KEY: {"id": "not-a-uuid"}})
        assert await get_current_user(request, mock_db_session) is None
        mock_db_session.execute.assert_not_awaited()


class TestRequireAuth:

    @pytest.mark.asyncio
    async def test_missing_identity_raises_401(self, mock_db_session):
        with pytest.raises(AuthenticationError) as exc_info:
            await require_auth(make_request(), mock_db_session)
        assert exc_info.value.message == "Unauthorized"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_identity_attached_to_request_state(self, mock_db_session):
        request = make_request(cookies={ACCESS_TOKEN_COOKIE: make_token()})
        current = await require_auth(request, mock_db_session)
        assert request.state.current_user is current

    @pytest.mark.asyncio
    async def test_deleted_session_user_raises_401(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(one=None)
        request = make_request(session={SESSION_USER_KEY: {"id": str(uuid.uuid4())}})
        with pytest.raises(AuthenticationError):
            await require_auth(request, mock_db_session)


class TestRequireAdmin:

    @pytest.mark.asyncio
    async def test_anonymous_raises_401(self, mock_db_session):
        with pytest.raises(AuthenticationError):
            await require_admin(make_request(), mock_db_session)
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_session_admin_confirmed_by_database(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(
            one=SimpleNamespace(email="a@example.com", role="admin")
        )
        request = make_request(session={SESSION_USER_KEY: {"id": str(uuid.uuid4())}})
        current = await require_admin(request, mock_db_session)
        assert current.source == "session"
        assert current.email == "a@example.com"
        mock_db_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_demoted_session_admin_raises_403(self, mock_db_session):
        """A role cached in an old session cookie is never trusted."""
        mock_db_session.execute.return_value = make_result(
            one=SimpleNamespace(email="a@example.com", role="user")
        )
        request = make_request(session={SESSION_USER_KEY: {"id": str(uuid.uuid4()), "role": "admin"}})
        with pytest.raises(AuthorizationError) as exc_info:
            await require_admin(request, mock_db_session)
        assert exc_info.value.message == "Forbidden"
        mock_db_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deleted_session_admin_raises_401(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(one=None)
        request = make_request(session={SESSION_USER_KEY: {"id": str(uuid.uuid4()), "role": "admin"}})
        with pytest.raises(AuthenticationError):
            await require_admin(request, mock_db_session)

    @pytest.mark.asyncio
    async def test_session_lookup_failure_denies_session_admin(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        request = make_request(session={SESSION_USER_KEY: {"id": str(uuid.uuid4()), "role": "admin"}})
        with pytest.raises(AuthenticationError):
            await require_admin(request, mock_db_session)

    @pytest.mark.asyncio
    async def test_jwt_role_overridden_by_database(self, mock_db_session):
        """A token minted before demotion must not keep admin access."""
        mock_db_session.execute.return_value = make_result(
            one=SimpleNamespace(email="demoted@example.com", role="user")
        )
        request = make_request(cookies={ACCESS_TOKEN_COOKIE: make_token(role="admin")})
        with pytest.raises(AuthorizationError):
            await require_admin(request, mock_db_session)

    @pytest.mark.asyncio
    async def test_jwt_promoted_by_database(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(
            one=SimpleNamespace(email="new-admin@example.com", role="admin")
        )
        request = make_request(cookies={ACCESS_TOKEN_COOKIE: make_token(role="user")})
        current = await require_admin(request, mock_db_session)
        assert current.role == "admin"
        assert current.email == "new-admin@example.com"

    @pytest.mark.asyncio
    async def test_recheck_failure_falls_back_to_token_role(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        request = make_request(cookies={ACCESS_TOKEN_COOKIE: make_token(role="admin")})
        current = await require_admin(request, mock_db_session)
        assert current.role == "admin"
        mock_db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_user_row_keeps_token_values(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(one=None)
        request = make_request(cookies={ACCESS_TOKEN_COOKIE: make_token(role="admin")})
        current = await require_admin(request, mock_db_session)
        assert current.source == "jwt"


class TestAdminRoute:

    @pytest.mark.asyncio
    async def test_anonymous_gets_401(self, test_client):
        response = await test_client.get("/api/admin")
        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    @pytest.mark.asyncio
    async def test_non_admin_gets_403(self, test_client, mock_db_session):
        mock_db_session.execute.return_value = make_result(
            one=SimpleNamespace(email="user@example.com", role="user")
        )
        response = await test_client.get(
            "/api/admin", headers={"Authorization": f"Bearer {make_token()}"}
        )
        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    @pytest.mark.asyncio
    async def test_admin_gets_welcome(self, test_client, mock_db_session):
        mock_db_session.execute.return_value = make_result(
            one=SimpleNamespace(email="admin@example.com", role="admin")
        )
        response = await test_client.get(
            "/api/admin", headers={"Authorization": f"Bearer {make_token(role='admin')}"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Welcome, admin"
        assert body["user"]["authSource"] == "jwt"
        assert [s["key"] for s in body["sections"]] == ["overview", "users", "content", "settings"]

    @pytest.mark.asyncio
    async def test_demoted_admin_session_cookie_gets_403(self, test_client, csrf_headers, mock_db_session, make_user):
        admin = make_user(role="admin", password_hash=auth_service.hash_password("pw123456"))
        mock_db_session.execute.side_effect = [make_result(first=None), make_result(scalar=admin)]
        login = await test_client.post(
            "/api/auth/login",
            json={"email": admin.email, "password": "pw123456"},
            headers=csrf_headers,
        )
        assert login.status_code == 200
        test_client.cookies.delete(ACCESS_TOKEN_COOKIE)

        mock_db_session.execute.side_effect = None
        mock_db_session.execute.return_value = make_result(
            one=SimpleNamespace(email=admin.email, role="user")
        )
        response = await test_client.get("/api/admin")

        assert response.status_code == 403
        mock_db_session.execute.assert_awaited()
