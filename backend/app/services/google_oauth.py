"""
PeakSelf Backend — Google OAuth Client
========================================

What:  Authorization-code flow against Google for "Sign in with Google".
How:   1. /api/auth/google stores a random `state` in the session and
          redirects to Google's consent screen
       2. Google redirects back to /api/auth/google/callback with code+state
       3. The state is compared with the session copy, the code is exchanged
          for an access token (httpx), and the userinfo endpoint supplies the
          profile handed to AuthService.upsert_google_user()
When:  Only when GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are set; the
       routes answer 503 otherwise.
"""

import logging
import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from app.config import settings
from app.exceptions import GoogleOAuthError
from app.services.auth_service import GoogleProfile

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_SCOPES = "openid email profile"

SESSION_STATE_KEY = "google_oauth_state"
HTTP_TIMEOUT_SECONDS = 15.0


class GoogleOAuthClient:

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # transport is injectable so tests can answer with httpx.MockTransport
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return settings.google_enabled

    @property
    def redirect_uri(self) -> str:
        """GOOGLE_CALLBACK_URL, made absolute against APP_BASE_URL when relative."""
        callback = settings.google_callback_url
        if callback.startswith(("http://", "https://")):
            return callback
        return f"{settings.public_base_url}/{callback.lstrip('/')}"

    def new_state(self) -> str:
        return secrets.token_urlsafe(24)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": settings.google_client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": GOOGLE_SCOPES,
            "state": state,
            "access_type": "online",
            "include_granted_scopes": "true",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, transport=self._transport) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "redirect_uri": self.redirect_uri,
                },
                headers={"Accept": "application/json"},
            )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise GoogleOAuthError("Token response did not include an access token")
        return payload

    async def fetch_profile(self, access_token: str) -> GoogleProfile:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, transport=self._transport) as client:
            response = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        response.raise_for_status()
        info = response.json()
        if not isinstance(info, dict) or not info.get("sub"):
            raise GoogleOAuthError("Userinfo response did not include a subject")
        email = info.get("email")
        return GoogleProfile(
            google_id=str(info["sub"]),
            email=email.lower() if isinstance(email, str) and email else None,
            name=info.get("name") or None,
            avatar_url=info.get("picture") or None,
        )

    async def authenticate(self, code: str) -> GoogleProfile:
        """
        Exchange an authorization code for the caller's Google profile.

        Raises:
            GoogleOAuthError: Google rejected the code or answered with
                              something unusable
        """
        try:
            tokens = await self.exchange_code(code)
            return await self.fetch_profile(tokens["access_token"])
        except httpx.HTTPError as e:
            logger.warning("Google OAuth request failed: %s", e)
            raise GoogleOAuthError(details={"reason": type(e).__name__})
        except ValueError as e:
            logger.warning("Google OAuth returned invalid JSON: %s", e)
            raise GoogleOAuthError(details={"reason": "invalid_json"})


# Module-level singleton
google_oauth = GoogleOAuthClient()
