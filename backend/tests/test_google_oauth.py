"""
PeakSelf Backend — Google OAuth Client Tests

What we test:
    ✅ Code exchange + userinfo produce a GoogleProfile
    ✅ HTTP errors and incomplete responses raise GoogleOAuthError
    ✅ Relative callback URLs are made absolute
"""

import httpx
import pytest

from app.config import settings
from app.exceptions import GoogleOAuthError
from app.services.google_oauth import (
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    GoogleOAuthClient,
)


def google_transport(token_status=200, token_body=None, userinfo_body=None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == GOOGLE_TOKEN_URL:
            return httpx.Response(token_status, json=token_body or {"access_token": "at-1"})
        if str(request.url) == GOOGLE_USERINFO_URL:
            assert request.headers["Authorization"] == "Bearer at-1"
            return httpx.Response(200, json=userinfo_body or {
                "sub": "1234567890",
                "email": "User@Gmail.com",
                "name": "Gmail User",
                "picture": "https://lh3.googleusercontent.com/a/photo",
            })
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestGoogleOAuthClient:

    @pytest.mark.asyncio
    async def test_authenticate(self):
        client = GoogleOAuthClient(transport=google_transport())
        profile = await client.authenticate("code-1")
        assert profile.google_id == "1234567890"
        assert profile.email == "user@gmail.com"
        assert profile.name == "Gmail User"
        assert profile.avatar_url == "https://lh3.googleusercontent.com/a/photo"

    @pytest.mark.asyncio
    async def test_rejected_code(self):
        client = GoogleOAuthClient(transport=google_transport(token_status=400, token_body={"error": "invalid_grant"}))
        with pytest.raises(GoogleOAuthError):
            await client.authenticate("bad-code")

    @pytest.mark.asyncio
    async def test_missing_access_token(self):
        client = GoogleOAuthClient(transport=google_transport(token_body={"token_type": "Bearer"}))
        with pytest.raises(GoogleOAuthError):
            await client.authenticate("code-1")

    @pytest.mark.asyncio
    async def test_missing_subject(self):
        client = GoogleOAuthClient(transport=google_transport(userinfo_body={"email": "a@b.c"}))
        with pytest.raises(GoogleOAuthError):
            await client.authenticate("code-1")

    def test_relative_callback(self, monkeypatch):
        monkeypatch.setattr(settings, "app_base_url", "https://api.peakself.app")
        monkeypatch.setattr(settings, "google_callback_url", "/api/auth/google/callback")
        assert GoogleOAuthClient().redirect_uri == "https://api.peakself.app/api/auth/google/callback"

    def test_absolute_callback(self, monkeypatch):
        monkeypatch.setattr(settings, "google_callback_url", "https://auth.peakself.app/cb")
        assert GoogleOAuthClient().redirect_uri == "https://auth.peakself.app/cb"
