"""
PeakSelf Backend — Auth Guard
===============================

What:  Derives the caller identity and guards routes that need one.
How:   Two identity sources are accepted:
         1. A signed JWT (HS256, JWT_SECRET) from the `access_token` cookie or
            an `Authorization: Bearer` header
         2. The session user id written at login
       The guards are FastAPI dependencies:
         - require_auth:  any identity, else 401 Unauthorized
         - require_admin: admin role, else 401/403

Session users:
    The session cookie holds only {"id"}. Email and role are read from
    `users` on every request that needs the session identity, so a demoted
    admin loses access at once. A missing or soft-deleted row, or a failed
    lookup, leaves the session anonymous.

Admin role recheck:
    A JWT stays valid for a day after it is issued, so a demoted admin could
    keep their old token. require_admin therefore re-reads email and role
    from `users` whenever a JWT is present. If that query fails the values
    on the token are used and the failure is logged.

Identity precedence:
    get_current_user / require_auth prefer the JWT.
    require_admin prefers the session (the JWT role is rechecked anyway).
"""

import logging
import uuid
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db_session
from app.exceptions import AuthenticationError, AuthorizationError
from app.middleware.request_id import request_id_var
from app.models.user import ROLE_ADMIN, User
from app.schemas.auth import CurrentUser

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "access_token"
SESSION_USER_KEY = "user"


# ══════════════════════════════════════════════════════════════════════════
# Identity extraction
# ══════════════════════════════════════════════════════════════════════════

def _token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a valid token, or None for any malformed/forged/expired token."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        logger.debug("Rejected access token: %s", e)
        return None


def verify_jwt(request: Request) -> Optional[Dict[str, Any]]:
    """Decoded JWT claims for this request, or None when there is no valid token."""
    token = _token_from_request(request)
    if not token:
        return None
    return decode_access_token(token)


def session_user_id(request: Request) -> Optional[str]:
    user = request.session.get(SESSION_USER_KEY)
    if isinstance(user, dict) and user.get("id"):
        return str(user["id"])
    return None


def _parse_uuid(user_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        logger.warning("[%s] Ignoring malformed user id %r", request_id_var.get(""), user_id)
        return None


async def load_session_user(request: Request, db: AsyncSession) -> Optional[CurrentUser]:
    """
    The session identity with email and role re-read from `users`.

    Returns None when there is no session id, the row is gone or soft-deleted,
    or the lookup fails.
    """
    user_id = session_user_id(request)
    if not user_id:
        return None
    uid = _parse_uuid(user_id)
    if uid is None:
        return None
    try:
        result = await db.execute(
            select(User.email, User.role).where(User.id == uid, User.deleted_at.is_(None))
        )
        row = result.one_or_none()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("[%s] Session user lookup failed: %s", request_id_var.get(""), e)
        return None
    if row is None:
        return None
    return CurrentUser(id=user_id, email=row.email, role=row.role, source="session")


async def get_current_user(request: Request, db: AsyncSession) -> Optional[CurrentUser]:
    """JWT identity first, then the session user, else None."""
    claims = verify_jwt(request)
    if claims and claims.get("sub"):
        return CurrentUser(
            id=str(claims["sub"]),
            email=claims.get("email"),
            role=claims.get("role"),
            source="jwt",
        )
    return await load_session_user(request, db)


# ══════════════════════════════════════════════════════════════════════════
# Guards
# ══════════════════════════════════════════════════════════════════════════

async def require_auth(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    current = await get_current_user(request, db)
    if current is None:
        raise AuthenticationError("Unauthorized")
    request.state.current_user = current
    return current


async def _fetch_email_and_role(db: AsyncSession, user_id: str):
    uid = _parse_uuid(user_id)
    if uid is None:
        return None
    result = await db.execute(select(User.email, User.role).where(User.id == uid))
    return result.one_or_none()


async def require_admin(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    """
    Allow only admins.

    Raises:
        AuthenticationError: neither a valid JWT nor a live session user (401)
        AuthorizationError:  identity found but role is not admin (403)
    """
    claims = verify_jwt(request)
    has_jwt = bool(claims and claims.get("sub"))

    current = await load_session_user(request, db)
    if current is None and has_jwt:
        current = CurrentUser(
            id=str(claims["sub"]),
            email=claims.get("email"),
            role=claims.get("role"),
            source="jwt",
        )
    if current is None:
        raise AuthenticationError("Unauthorized")

    if has_jwt:
        try:
            row = await _fetch_email_and_role(db, claims["sub"])
            if row is not None:
                current.email = row.email
                current.role = row.role
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning(
                "[%s] Admin role recheck failed, using token role: %s",
                request_id_var.get(""),
                e,
            )

    if current.role != ROLE_ADMIN:
        raise AuthorizationError("Forbidden")

    request.state.current_user = current
    return current
