"""
PeakSelf Backend — CSRF Tests
===============================

What we test:
    ✅ GET /api/csrf-token issues a token and a signed httponly cookie
    ✅ An existing valid cookie is reused
    ✅ Unsafe requests without the header are rejected with EBADCSRFTOKEN
    ✅ Tampered cookies and mismatched headers are rejected
    ✅ Exempt paths and safe methods pass without a token
    ✅ require_csrf_token accepts a matching pair and rejects the rest
"""

import pytest
from starlette.requests import Request

from app.exceptions import CsrfError
from app.middleware.csrf import (
    CSRF_COOKIE_NAME,
    CSRF_HEADER_NAME,
    _sign,
    require_csrf_token,
)


def make_request(cookie_token=None, header_token=None) -> Request:
    headers = []
    if cookie_token is not None:
        cookie = f"{CSRF_COOKIE_NAME}={cookie_token}|{_sign(cookie_token)}"
        headers.append((b"cookie", cookie.encode()))
    if header_token is not None:
        headers.append((CSRF_HEADER_NAME.encode(), header_token.encode()))
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/api/admin/blog/upload-image",
        "query_string": b"",
        "headers": headers,
    })


class TestCsrfTokenEndpoint:

    @pytest.mark.asyncio
    async def test_issues_token_and_cookie(self, test_client):
        response = await test_client.get("/api/csrf-token")
        assert response.status_code == 200
        token = response.json()["csrfToken"]
        assert token

        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith(f"{CSRF_COOKIE_NAME}=")
        assert "httponly" in set_cookie.lower()
        # The cookie stores the token plus its HMAC, never the bare token
        assert test_client.cookies[CSRF_COOKIE_NAME].strip('"').startswith(f"{token}|")

    @pytest.mark.asyncio
    async def test_existing_cookie_is_reused(self, test_client):
        first = (await test_client.get("/api/csrf-token")).json()["csrfToken"]
        second = (await test_client.get("/api/csrf-token")).json()["csrfToken"]
        assert first == second


class TestCsrfMiddleware:

    @pytest.mark.asyncio
    async def test_post_without_token_rejected(self, test_client):
        response = await test_client.post("/api/auth/logout")
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "Invalid CSRF token"
        assert body["code"] == "EBADCSRFTOKEN"
        assert "request_id" in body

    @pytest.mark.asyncio
    async def test_post_with_token_allowed(self, test_client, csrf_headers):
        response = await test_client.post("/api/auth/logout", headers=csrf_headers)
        assert response.status_code == 200
        assert response.json() == {"message": "Logged out successfully"}

    @pytest.mark.asyncio
    async def test_header_mismatch_rejected(self, test_client, csrf_headers):
        response = await test_client.post(
            "/api/auth/logout", headers={"X-CSRF-Token": "not-the-token"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_header_without_cookie_rejected(self, test_client, csrf_headers):
        test_client.cookies.clear()
        response = await test_client.post("/api/auth/logout", headers=csrf_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_tampered_cookie_rejected(self, test_client):
        test_client.cookies.set(CSRF_COOKIE_NAME, "chosen-token|forged-signature")
        response = await test_client.post(
            "/api/auth/logout", headers={"X-CSRF-Token": "chosen-token"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_error_log_path_is_exempt(self, test_client):
        response = await test_client.post("/api/errors/log", json={"message": "boom"})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_safe_methods_pass(self, test_client):
        response = await test_client.get("/api/auth/me")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_upload_path_bypasses_middleware(self, test_client):
        # No upload route is mounted, so a bypassed request falls through to 404
        response = await test_client.post("/api/admin/blog/upload-image")
        assert response.status_code == 404


class TestRequireCsrfToken:

    @pytest.mark.asyncio
    async def test_matching_header_and_cookie_pass(self):
        assert await require_csrf_token(make_request(cookie_token="tok-1", header_token="tok-1")) is None

    @pytest.mark.asyncio
    async def test_missing_header_rejected(self):
        with pytest.raises(CsrfError):
            await require_csrf_token(make_request(cookie_token="tok-1"))

    @pytest.mark.asyncio
    async def test_missing_cookie_rejected(self):
        with pytest.raises(CsrfError):
            await require_csrf_token(make_request(header_token="tok-1"))

    @pytest.mark.asyncio
    async def test_mismatched_header_rejected(self):
        with pytest.raises(CsrfError) as exc_info:
            await require_csrf_token(make_request(cookie_token="tok-1", header_token="tok-2"))
        assert exc_info.value.status_code == 403
