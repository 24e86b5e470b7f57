"""
PeakSelf Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, exception handlers, route
       mounting and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn app.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain (outermost first):                     │
    │  CORS → Request ID → Access Log → Global Rate Limit      │
    │       → Security Headers → CSRF → Session → GZip         │
    │                                                          │
    │  Routes:                                                 │
    │  /api/auth/*   /api/admin   /api/errors/log              │
    │  /api/csrf-token            /api/health[/ready|/live]    │
    │                                                          │
    │  Exception Handlers:                                     │
    │  Validation→400 │ AuthN→401 │ AuthZ/CSRF→403 │ 404 │ 409 │
    │  RateLimit→429 (OAuth: redirect) │ Database/other→500    │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Validate configuration (fail fast in production)
    3. Log optional features and the rate limit table
    4. Start the hourly expired-registration cleanup
    Shutdown:
    1. Cancel the cleanup task
    2. Dispose the database engine
"""

import asyncio
import contextlib
import logging
import math
import sys
import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from app import __version__
from app.config import settings
from app.database import dispose_engine
from app.exceptions import (
    CsrfError,
    DatabaseError,
    OAuthRateLimitExceededError,
    PeakSelfError,
    RateLimitExceededError,
    ValidationError,
)
from app.middleware.csrf import CsrfMiddleware
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware, log_rate_limits, rate_limit_body
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.routes import admin, auth, csrf, errors, health
from app.services.maintenance import run_pending_cleanup_loop

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "peakself.sid"


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Access lines come from "peakself.access", frontend crash reports from
    "peakself.client_errors".
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosmtplib").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("PeakSelf Backend starting up (%s)...", settings.environment)

    try:
        settings.validate_environment()
    except ValueError as e:
        if settings.is_production:
            logger.critical("%s", e)
            raise
        logger.warning("%s", e)
        logger.warning("Continuing with development defaults.")

    for feature, enabled in settings.optional_features().items():
        logger.info("  %-12s %s", feature, "enabled" if enabled else "disabled")
    log_rate_limits()

    cleanup_task: Optional[asyncio.Task] = None
    if settings.environment != "test":
        cleanup_task = asyncio.create_task(run_pending_cleanup_loop())

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("PeakSelf Backend shutting down...")
    if cleanup_task is not None:
        cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup_task
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_body(
    message: str,
    error_type: str,
    details: Optional[Any] = None,
    exc: Optional[BaseException] = None,
) -> Dict[str, Any]:
    """
    {"error", "request_id"}; outside production also type, details and stack.
    """
    body: Dict[str, Any] = {"error": message, "request_id": request_id_var.get("")}
    if not settings.is_production:
        body["type"] = error_type
        if details:
            body["details"] = details
        if exc is not None:
            body["stack"] = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
    return body


def _log_error(request: Request, status_code: int, error_type: str, message: str, exc: BaseException) -> None:
    rid = request_id_var.get("")
    if status_code >= 500:
        logger.error(
            "[%s] Server error %s on %s %s: %s",
            rid, error_type, request.method, request.url.path, message,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        original = getattr(exc, "original_error", None)
        if original is not None:
            logger.error("[%s] Original error: %r", rid, original)
    elif status_code >= 400:
        logger.warning(
            "[%s] Client error %s on %s %s: %s",
            rid, error_type, request.method, request.url.path, message,
        )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to status codes and the JSON error envelope.

    Handler hierarchy:
        PeakSelfError subclasses → their status_code (400/401/403/404/409/503/500)
        RateLimitExceededError   → 429 JSON, or a redirect for OAuth flows
        RequestValidationError   → 400 (reported as ValidationError)
        HTTPException            → 404 "Route METHOD path not found", else its status
        SQLAlchemyError          → 500 (wrapped as DatabaseError)
        Exception (fallback)     → 500 Internal server error
    """

    @app.exception_handler(PeakSelfError)
    async def handle_app_error(request: Request, exc: PeakSelfError):
        _log_error(request, exc.status_code, exc.error_type, exc.message, exc)
        body = error_body(exc.message, exc.error_type, exc.details, exc)
        if isinstance(exc, CsrfError):
            body["code"] = exc.code
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        if isinstance(exc, OAuthRateLimitExceededError):
            minutes = max(1, math.ceil(exc.retry_after / 60))
            return RedirectResponse(
                url=f"{settings.primary_client_url}/rate-limit?retry_in={minutes}",
                status_code=302,
            )
        return JSONResponse(
            status_code=429,
            content={**rate_limit_body(exc.reset_at), "request_id": request_id_var.get("")},
            headers={
                "Retry-After": str(exc.retry_after),
                "RateLimit-Limit": str(exc.limit),
                "RateLimit-Remaining": "0",
                "RateLimit-Reset": str(exc.retry_after),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "loc": [str(part) for part in err.get("loc", ())],
                "msg": err.get("msg"),
                "type": err.get("type"),
            }
            for err in exc.errors()
        ]
        wrapped = ValidationError("Validation failed", details={"errors": errors})
        return await handle_app_error(request, wrapped)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = f"Route {request.method} {request.url.path} not found"
            error_type = "NotFoundError"
        else:
            message = str(exc.detail)
            error_type = "HTTPException"
        _log_error(request, exc.status_code, error_type, message, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(message, error_type),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        wrapped = DatabaseError(original_error=exc)
        wrapped.__traceback__ = exc.__traceback__
        return await handle_app_error(request, wrapped)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        _log_error(request, 500, type(exc).__name__, str(exc), exc)
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", type(exc).__name__, exc=exc),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="PeakSelf API",
        description="Authentication, admin entry and operational endpoints for PeakSelf.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first. Added innermost → outermost:
    # GZip, Session, CSRF, Security Headers, Rate Limit, Logging, Request ID, CORS

    app.add_middleware(GZipMiddleware, minimum_size=500)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        max_age=settings.session_max_age,
        same_site="lax",
        https_only=settings.is_production,
    )

    app.add_middleware(CsrfMiddleware)

    app.add_middleware(SecurityHeadersMiddleware)

    # Inside Request ID and Logging, so global 429s carry an id and are logged
    app.add_middleware(RateLimitMiddleware)

    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(RequestIDMiddleware)

    # Outermost, so 403/429 rejections from inner layers carry CORS headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "RateLimit-Limit",
            "RateLimit-Remaining",
            "RateLimit-Reset",
        ],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(errors.router)
    app.include_router(csrf.router)
    app.include_router(health.router)

    return app


app = create_app()
