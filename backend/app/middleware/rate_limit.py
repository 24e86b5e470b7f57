"""
PeakSelf Backend — Rate Limiting
==================================

What:  Per-route fixed-window rate limiters plus a global limiter middleware.
Why:   Brute-force protection for password endpoints, slower OAuth abuse, and
       a coarse ceiling for everything else.
How:   Each limiter owns a policy (max requests per window). Hits are counted
       per "<limiter>:<client ip>" key in an in-memory fixed-window store.
       Route limiters are FastAPI dependencies; the global limiter runs as
       Starlette middleware.
When:  Only when settings.enable_rate_limit is true (ENABLE_RATE_LIMIT=true).
       Otherwise every limiter lets requests through untouched.

Algorithm: Fixed Window Counter
    1. First hit for a key opens a window ending at now + window_seconds
    2. Each hit inside the window increments the count
    3. count > limit → reject with 429 until the window ends
    4. The first hit after the window ends opens a fresh window

Policies:
    auth_password   5 / 30 min   register, login
    auth_oauth      5 / 15 min   Google sign-in (redirects instead of JSON)
    auth_general   15 / 30 min   verify-email, logout, OAuth failure
    api           100 / 15 min   error reporting
    admin          30 / 15 min   /api/admin
    global        200 / 15 min   every request (middleware)

Production Upgrade Path:
    The store is per-process. Multi-worker deployments need a shared store
    (Redis INCR + EXPIRE) behind FixedWindowCounter.hit().
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple, Type

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from app.config import settings
from app.exceptions import OAuthRateLimitExceededError, RateLimitExceededError
from app.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

MINUTE = 60


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    max_requests: int
    window_seconds: int
    description: str


RATE_LIMITS: Dict[str, RateLimitPolicy] = {
    policy.name: policy
    for policy in (
        RateLimitPolicy("auth_password", 5, 30 * MINUTE, "login/register"),
        RateLimitPolicy("auth_oauth", 5, 15 * MINUTE, "Google OAuth"),
        RateLimitPolicy("auth_general", 15, 30 * MINUTE, "verify-email/logout"),
        RateLimitPolicy("api", 100, 15 * MINUTE, "general API"),
        RateLimitPolicy("admin", 30, 15 * MINUTE, "admin"),
        RateLimitPolicy("global", 200, 15 * MINUTE, "all requests"),
    )
}


@dataclass
class RateLimitState:
    limit: int
    remaining: int
    reset_at: float  # epoch seconds when the window ends
    exceeded: bool

    def retry_after(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return max(0, math.ceil(self.reset_at - now))


class FixedWindowCounter:
    """
    In-memory fixed-window hit store.

    Maps key → (window_end, count). Expired keys are dropped every
    CLEANUP_EVERY hits so the dict does not grow with one-off clients.
    """

    CLEANUP_EVERY = 1000

    def __init__(self):
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._hits = 0

    def hit(self, key: str, window_seconds: int, now: Optional[float] = None) -> Tuple[int, float]:
        """Record one hit; returns (count in current window, window end)."""
        now = time.time() if now is None else now
        window_end, count = self._windows.get(key, (0.0, 0))
        if now >= window_end:
            window_end, count = now + window_seconds, 0
        count += 1
        self._windows[key] = (window_end, count)

        self._hits += 1
        if self._hits % self.CLEANUP_EVERY == 0:
            self._cleanup(now)
        return count, window_end

    def reset(self) -> None:
        self._windows.clear()
        self._hits = 0

    def __len__(self) -> int:
        return len(self._windows)

    def _cleanup(self, now: float) -> None:
        expired = [key for key, (window_end, _) in self._windows.items() if window_end <= now]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Cleaned up %d expired rate limit windows", len(expired))


_counter = FixedWindowCounter()


def reset_rate_limits() -> None:
    """Forget every window (tests, or after changing limits at runtime)."""
    _counter.reset()


def client_ip(request: Request) -> str:
    """
    Client address used as the limiter key.

    In production the app sits behind one reverse proxy, so the last
    X-Forwarded-For entry (the address the proxy saw) is used.
    """
    if settings.is_production:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[-1].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_headers(state: RateLimitState, now: Optional[float] = None) -> Dict[str, str]:
    """Standard RateLimit-* headers (draft IETF format, reset in seconds)."""
    return {
        "RateLimit-Limit": str(state.limit),
        "RateLimit-Remaining": str(state.remaining),
        "RateLimit-Reset": str(state.retry_after(now)),
    }


def rate_limit_body(reset_at: Optional[datetime]) -> Dict[str, str]:
    return {
        "error": "Too many requests",
        "message": "You have exceeded the rate limit. Please try again later.",
        "retryAfter": reset_at.isoformat() if reset_at else "in a few minutes",
    }


class RateLimiter:
    """
    A named fixed-window limiter usable as a FastAPI dependency.

    Usage:
        @router.post("/login", dependencies=[Depends(auth_password_limiter)])

    Allowed requests get RateLimit-* headers on the response. They are also
    kept on request.state so RateLimitMiddleware can restore them when the
    handler raises or returns its own response. Rejected requests raise
    exceeded_error, rendered by the global exception handler.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        counter: FixedWindowCounter = _counter,
        exceeded_error: Type[RateLimitExceededError] = RateLimitExceededError,
    ):
        self.policy = policy
        self.counter = counter
        self.exceeded_error = exceeded_error

    @property
    def name(self) -> str:
        return self.policy.name

    def check(self, key: str, now: Optional[float] = None) -> RateLimitState:
        count, window_end = self.counter.hit(
            f"{self.policy.name}:{key}", self.policy.window_seconds, now
        )
        return RateLimitState(
            limit=self.policy.max_requests,
            remaining=max(0, self.policy.max_requests - count),
            reset_at=window_end,
            exceeded=count > self.policy.max_requests,
        )

    def build_error(self, state: RateLimitState) -> RateLimitExceededError:
        return self.exceeded_error(
            limiter=self.policy.name,
            reset_at=datetime.fromtimestamp(state.reset_at, tz=timezone.utc),
            retry_after=state.retry_after(),
            limit=state.limit,
        )

    async def __call__(self, request: Request, response: Response) -> None:
        if not settings.enable_rate_limit:
            return

        ip = client_ip(request)
        state = self.check(ip)
        if state.exceeded:
            logger.warning(
                "[%s] Rate limit '%s' exceeded for %s (%d per %ds)",
                request_id_var.get(""),
                self.policy.name,
                ip,
                self.policy.max_requests,
                self.policy.window_seconds,
            )
            raise self.build_error(state)

        headers = rate_limit_headers(state)
        request.state.route_rate_limit_headers = headers
        for header, value in headers.items():
            response.headers[header] = value


auth_password_limiter = RateLimiter(RATE_LIMITS["auth_password"])
auth_oauth_limiter = RateLimiter(
    RATE_LIMITS["auth_oauth"], exceeded_error=OAuthRateLimitExceededError
)
auth_general_limiter = RateLimiter(RATE_LIMITS["auth_general"])
api_limiter = RateLimiter(RATE_LIMITS["api"])
admin_limiter = RateLimiter(RATE_LIMITS["admin"])
global_limiter = RateLimiter(RATE_LIMITS["global"])


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Global limiter applied to every request.

    Runs outside the routing layer, so a rejection is rendered here instead
    of going through the exception handlers. Headers from a route limiter
    take precedence over the global ones.
    """

    EXCLUDED_PATHS = {
        "/api/health",
        "/api/health/ready",
        "/api/health/live",
        "/docs",
        "/openapi.json",
        "/redoc",
    }

    def __init__(self, app, limiter: RateLimiter = global_limiter, **kwargs):
        super().__init__(app, **kwargs)
        self.limiter = limiter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not settings.enable_rate_limit or request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        ip = client_ip(request)
        state = self.limiter.check(ip)
        headers = rate_limit_headers(state)

        if state.exceeded:
            logger.warning(
                "Global rate limit exceeded for %s: %d requests per %ds",
                ip,
                state.limit,
                self.limiter.policy.window_seconds,
            )
            headers["Retry-After"] = str(state.retry_after())
            reset_at = datetime.fromtimestamp(state.reset_at, tz=timezone.utc)
            return JSONResponse(
                status_code=429,
                content={**rate_limit_body(reset_at), "request_id": request_id_var.get("")},
                headers=headers,
            )

        response = await call_next(request)
        route_headers = getattr(request.state, "route_rate_limit_headers", None) or {}
        for header, value in route_headers.items():
            response.headers[header] = value
        for header, value in headers.items():
            response.headers.setdefault(header, value)
        return response


def log_rate_limits() -> None:
    """Startup summary of the configured limits."""
    if not settings.enable_rate_limit:
        logger.info("Rate limiting disabled (set ENABLE_RATE_LIMIT=true to enable)")
        return
    logger.info("Rate limiting enabled:")
    for policy in RATE_LIMITS.values():
        logger.info(
            "  %-14s %4d requests / %d min (%s)",
            policy.name,
            policy.max_requests,
            policy.window_seconds // MINUTE,
            policy.description,
        )
