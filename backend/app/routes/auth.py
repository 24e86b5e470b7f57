"""
PeakSelf Backend — Auth Route Handlers
========================================

What:  /api/auth: password sign-up and login, email verification, logout,
       current user, and Google sign-in.
How:   Handlers stay thin. AuthService does the account work; the handlers
       set the access_token cookie, write the session user and choose between
       JSON and a browser redirect.

Rate limits (skipped unless ENABLE_RATE_LIMIT=true):
    register, login                       auth_password   5 / 30 min
    google, google/callback               auth_oauth      5 / 15 min (redirect)
    verify-email, logout, google/failure  auth_general   15 / 30 min
    me                                    none (polled by the frontend)

Login state:
    Every successful sign-in sets both an HS256 JWT in the httponly
    `access_token` cookie (30 days; the token itself expires after 1 day) and
    the session user id. The auth guard accepts either.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db_session
from app.exceptions import (
    AuthenticationError,
    GoogleOAuthError,
    NotFoundError,
    ServiceUnavailableError,
)
from app.middleware.auth import (
    ACCESS_TOKEN_COOKIE,
    SESSION_USER_KEY,
    get_current_user,
    session_user_id,
    verify_jwt,
)
from app.middleware.rate_limit import (
    auth_general_limiter,
    auth_oauth_limiter,
    auth_password_limiter,
)
from app.models.user import User
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    UserOut,
)
from app.schemas.common import ErrorResponse
from app.services.auth_service import auth_service
from app.services.google_oauth import SESSION_STATE_KEY, google_oauth

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

REGISTER_MESSAGE = (
    "Registration initiated. Please check your email to verify your account before logging in."
)


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

def set_access_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=token,
        max_age=settings.access_cookie_max_age,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
    )


def clear_access_cookie(response: Response) -> None:
    response.delete_cookie(
        key=ACCESS_TOKEN_COOKIE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


def start_session(request: Request, response: Response, user: User) -> None:
    """Issue the JWT cookie and record the session user id."""
    set_access_cookie(response, auth_service.sign_jwt(user))
    request.session[SESSION_USER_KEY] = {"id": str(user.id)}


def _client_redirect(path: str = "") -> RedirectResponse:
    return RedirectResponse(
        url=f"{settings.primary_client_url}{path}",
        status_code=status.HTTP_302_FOUND,
    )


def _require_google() -> None:
    if not google_oauth.enabled:
        raise ServiceUnavailableError("Google OAuth not configured")


# ══════════════════════════════════════════════════════════════════════════
# Local accounts
# ══════════════════════════════════════════════════════════════════════════

@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=RegisterResponse,
    responses={400: {"model": ErrorResponse}, 429: {"description": "Rate limited"}},
    dependencies=[Depends(auth_password_limiter)],
    summary="Start a password sign-up",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> RegisterResponse:
    """
    Store the sign-up as a pending registration and mail the verification
    link. No account exists and no one is logged in until the link is opened.
    """
    email = await auth_service.register(db, body.email, body.password, body.name)
    return RegisterResponse(message=REGISTER_MESSAGE, email=email)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={400: {"model": ErrorResponse}, 429: {"description": "Rate limited"}},
    dependencies=[Depends(auth_password_limiter)],
    summary="Password login",
)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> LoginResponse:
    user = await auth_service.login(db, body.email, body.password)
    start_session(request, response, user)
    return LoginResponse(message="Logged in", user=UserOut(**user.to_public_dict()))


@router.get(
    "/verify-email",
    response_class=RedirectResponse,
    responses={302: {"description": "Verified; redirect to the client"}, 400: {"model": ErrorResponse}},
    dependencies=[Depends(auth_general_limiter)],
    summary="Consume an email verification link",
)
async def verify_email(
    request: Request,
    token: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> RedirectResponse:
    user = await auth_service.verify_email(db, token)
    redirect = _client_redirect("?verified=true")
    if user is not None:
        start_session(request, redirect, user)
    return redirect


@router.post(
    "/logout",
    response_model=MessageResponse,
    dependencies=[Depends(auth_general_limiter)],
    summary="Clear the access cookie and the session",
)
async def logout(request: Request, response: Response) -> MessageResponse:
    clear_access_cookie(response)
    request.session.clear()
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=MeResponse, summary="Current user or null")
async def me(request: Request, db: AsyncSession = Depends(get_db_session)) -> MeResponse:
    """
    The signed-in user, re-read from the database.

    Always answers 200; anonymous callers and lookup failures get
    {"user": null} so the frontend can poll this freely.
    """
    claims = verify_jwt(request)
    user_id = claims.get("sub") if claims else None
    if not user_id:
        user_id = session_user_id(request)
    if not user_id:
        return MeResponse(user=None)

    try:
        user = await auth_service.get_user_by_id(db, user_id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Current user lookup failed: %s", e)
        return MeResponse(user=None)
    return MeResponse(user=UserOut(**user.to_public_dict()) if user else None)


# ══════════════════════════════════════════════════════════════════════════
# Google
# ══════════════════════════════════════════════════════════════════════════

@router.get(
    "/google",
    response_class=RedirectResponse,
    responses={503: {"model": ErrorResponse}},
    dependencies=[Depends(auth_oauth_limiter)],
    summary="Start Google sign-in",
)
async def google_login(request: Request) -> RedirectResponse:
    _require_google()
    state = google_oauth.new_state()
    request.session[SESSION_STATE_KEY] = state
    return RedirectResponse(google_oauth.authorization_url(state), status_code=status.HTTP_302_FOUND)


@router.get(
    "/google/callback",
    response_class=RedirectResponse,
    responses={503: {"model": ErrorResponse}},
    dependencies=[Depends(auth_oauth_limiter)],
    summary="Google sign-in callback",
)
async def google_callback(
    request: Request,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> RedirectResponse:
    _require_google()
    failed = "/login?error=oauth_failed"

    expected_state = request.session.pop(SESSION_STATE_KEY, None)
    if error or not code or not state or state != expected_state:
        logger.warning("Google callback rejected (error=%s, state_match=%s)", error, state == expected_state)
        return _client_redirect(failed)

    try:
        profile = await google_oauth.authenticate(code)
        user = await auth_service.upsert_google_user(db, profile)
        if user is None:
            return _client_redirect(failed)
        user = await auth_service.get_user_by_id(db, user.id)
    except GoogleOAuthError:
        return _client_redirect(failed)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Google account upsert failed: %s", e)
        return _client_redirect(failed)

    if user is None:
        return _client_redirect("/login?error=user_not_found")

    redirect = _client_redirect()
    start_session(request, redirect, user)
    return redirect


@router.get(
    "/google/failure",
    responses={401: {"model": ErrorResponse}},
    dependencies=[Depends(auth_general_limiter)],
    summary="Google sign-in failed",
)
async def google_failure() -> None:
    raise AuthenticationError("Google authentication failed")


# ══════════════════════════════════════════════════════════════════════════
# Development
# ══════════════════════════════════════════════════════════════════════════

@router.get("/debug/session", include_in_schema=False)
async def debug_session(request: Request, db: AsyncSession = Depends(get_db_session)) -> dict:
    if settings.is_production:
        raise NotFoundError(f"Route {request.method} {request.url.path} not found")
    current = await get_current_user(request, db)
    return {
        "authenticated": current is not None,
        "user": current.model_dump() if current else None,
    }
