"""
PeakSelf Backend — CSRF Protection (Double-Submit Cookie)
===========================================================

What:  Issues CSRF tokens and rejects state-changing requests without one.
How:   GET /api/csrf-token returns a random token and stores
       "<token>|<hmac>" in an httponly cookie. The browser echoes the token in
       the X-CSRF-Token header; a request passes when the header equals the
       cookie token and the cookie's HMAC (keyed by CSRF_SECRET) is valid.
       A cross-site page can neither read the cookie nor forge the signature.

Skipped:
    - Safe methods: GET, HEAD, OPTIONS
    - /api/errors/log: the error boundary may fire before a token exists
    - /api/admin/blog/upload-image: multipart uploads validate through the
      require_csrf_token dependency instead

Failure response:
    403 {"error": "Invalid CSRF token", "code": "EBADCSRFTOKEN"}
    The frontend refetches its token and retries once on this code.
"""

import hashlib
import hmac
import logging
import secrets
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from app.config import settings
from app.exceptions import CsrfError
from app.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

CSRF_COOKIE_NAME = "psifi.x-csrf-token"
CSRF_HEADER_NAME = "x-csrf-token"
CSRF_TOKEN_BYTES = 64
IGNORED_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
CSRF_EXEMPT_PATHS = frozenset({
    "/api/errors/log",
    "/api/admin/blog/upload-image",
})


def _sign(token: str) -> str:
    return hmac.new(
        settings.csrf_secret.encode("utf-8"), token.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def _read_cookie_token(request: Request) -> Optional[str]:
    """Token from the CSRF cookie, or None when absent or tampered with."""
    raw = request.cookies.get(CSRF_COOKIE_NAME)
    if not raw or "|" not in raw:
        return None
    token, signature = raw.rsplit("|", 1)
    if not token or not hmac.compare_digest(signature.encode(), _sign(token).encode()):
        return None
    return token


def generate_csrf_token(request: Request, response: Response, overwrite: bool = False) -> str:
    """
    Return the caller's CSRF token, issuing a new one when needed.

    An existing valid cookie is reused unless overwrite is set, so several
    tabs fetching a token do not invalidate each other.
    """
    token = None if overwrite else _read_cookie_token(request)
    if token is None:
        token = secrets.token_urlsafe(CSRF_TOKEN_BYTES)
        response.set_cookie(
            key=CSRF_COOKIE_NAME,
            value=f"{token}|{_sign(token)}",
            httponly=True,
            samesite="lax",
            secure=settings.is_production,
            path="/",
        )
    return token


def validate_csrf_request(request: Request) -> bool:
    header_token = request.headers.get(CSRF_HEADER_NAME)
    cookie_token = _read_cookie_token(request)
    if not header_token or not cookie_token:
        return False
    return hmac.compare_digest(header_token.encode("utf-8"), cookie_token.encode("utf-8"))


def is_csrf_exempt(request: Request) -> bool:
    return request.method.upper() in IGNORED_METHODS or request.url.path in CSRF_EXEMPT_PATHS


async def require_csrf_token(request: Request) -> None:
    """Dependency for routes the middleware skips (multipart uploads)."""
    if not validate_csrf_request(request):
        raise CsrfError()


class CsrfMiddleware(BaseHTTPMiddleware):
    """Rejects unsafe requests whose double-submit token does not verify."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if is_csrf_exempt(request) or validate_csrf_request(request):
            return await call_next(request)

        rid = request_id_var.get("")
        logger.warning(
            "[%s] CSRF validation failed: %s %s",
            rid,
            request.method,
            request.url.path,
        )
        return JSONResponse(
            status_code=CsrfError.status_code,
            content={
                "error": "Invalid CSRF token",
                "code": CsrfError.code,
                "request_id": rid,
            },
        )
