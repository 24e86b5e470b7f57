"""
PeakSelf Backend — Auth Service (Accounts, Passwords, Tokens)
===============================================================

What:  Business logic behind /api/auth: sign-up with email verification,
       password login, JWT issuing and the Google account upsert.
Why:   Keeps SQL and credential handling out of the route handlers, which only
       translate results into cookies, sessions and redirects.
Who:   Called by app.routes.auth, the maintenance task and the scripts.

Registration Flow:
    ┌──────────┐   ┌──────────────────────┐   ┌──────────────┐   ┌─────────┐
    │ register │──▶│ pending_registrations│──▶│ verify-email │──▶│  users  │
    └──────────┘   │  (hash + token, 24h) │   │  (token)     │   │verified │
                   └──────────────────────┘   └──────────────┘   └─────────┘
    A local account only exists once the email owner clicks the link. A
    Google account with the same email is upgraded in place (password added,
    provider switched to local, google_id kept).

Design Decision:
    AuthService is stateless; every method receives the request's session,
    so one transaction covers a whole operation and tests can pass a mock.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from sqlalchemy import String, cast, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import ValidationError
from app.models.email_verification_token import EmailVerificationToken
from app.models.pending_registration import PendingRegistration
from app.models.user import PROVIDER_GOOGLE, PROVIDER_LOCAL, User
from app.services.email_service import email_service

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


@dataclass
class GoogleProfile:
    """The parts of a Google userinfo response the account upsert needs."""
    google_id: str
    email: Optional[str]
    name: Optional[str] = None
    avatar_url: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_local_allowed(user: Optional[User]) -> Optional[str]:
    """Reason a password login is refused for this account, or None when allowed."""
    if user is None:
        return "Invalid user"
    if user.provider != PROVIDER_LOCAL:
        return "Local login disabled for this account"
    if not user.verified:
        return "Please verify your email before logging in"
    return None


class AuthService:
    """
    Account operations for local and Google sign-in.

    Responsibilities:
        - register(): hold a sign-up until its email is verified
        - login(): check a password login and return the user
        - verify_email(): turn a pending registration (or legacy token) into
          a verified account
        - upsert_google_user(): find, link or create the Google account
        - sign_jwt(): issue the access token stored in the access_token cookie
    """

    # ── Passwords ─────────────────────────────────────────────────────────

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
        return bcrypt.hashpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], salt).decode("utf-8")

    def verify_password(self, password: str, password_hash: Optional[str]) -> bool:
        """False for accounts without a password and for unreadable hashes."""
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(
                password.encode("utf-8")[:BCRYPT_MAX_BYTES], password_hash.encode("utf-8")
            )
        except ValueError:
            logger.warning("Stored password hash is not a valid bcrypt hash")
            return False

    # ── Tokens ────────────────────────────────────────────────────────────

    def sign_jwt(self, user: User) -> str:
        now = _utcnow()
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role,
            "iat": now,
            "exp": now + timedelta(seconds=settings.jwt_expiration_seconds),
        }
        return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    # ── Lookups ───────────────────────────────────────────────────────────

    async def get_user_by_id(self, db: AsyncSession, user_id) -> Optional[User]:
        try:
            uid = user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))
        except ValueError:
            return None
        result = await db.execute(select(User).where(User.id == uid))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
        return result.scalar_one_or_none()

    # ── Registration ──────────────────────────────────────────────────────

    async def register(
        self,
        db: AsyncSession,
        email: Optional[str],
        password: Optional[str],
        name: Optional[str] = None,
    ) -> str:
        """
        Store a pending registration and send the verification link.

        Returns:
            The normalized (lowercased) email the link was sent to.

        Raises:
            ValidationError: missing email/password, or a local account
                             already owns the email
        """
        if not email or not password:
            raise ValidationError("Email and password are required")
        lower = str(email).strip().lower()
        safe_name = name.strip() if isinstance(name, str) and name.strip() else None

        existing = await self.get_user_by_email(db, lower)
        # A Google-only account may add a password; the merge happens on verify
        if existing is not None and existing.provider == PROVIDER_LOCAL:
            raise ValidationError("An account with this email already exists. Please login instead.")

        # One pending registration per email: a new sign-up replaces the old token
        await db.execute(
            delete(PendingRegistration).where(func.lower(PendingRegistration.email) == lower)
        )

        token = str(uuid.uuid4())
        db.add(
            PendingRegistration(
                id=uuid.uuid4(),
                email=lower,
                password_hash=self.hash_password(password),
                name=safe_name,
                token=token,
                expires_at=_utcnow() + timedelta(seconds=settings.email_verification_ttl_seconds),
            )
        )
        await db.flush()

        await email_service.send_verification_email(lower, token)
        logger.info("Registration pending email verification for %s", lower)
        return lower

    # ── Login ─────────────────────────────────────────────────────────────

    async def login(
        self,
        db: AsyncSession,
        email: Optional[str],
        password: Optional[str],
    ) -> User:
        if not email or not password:
            raise ValidationError("Email and password are required")
        lower = str(email).strip().lower()

        pending = await db.execute(
            select(PendingRegistration.id).where(
                func.lower(PendingRegistration.email) == lower,
                PendingRegistration.expires_at > _utcnow(),
            )
        )
        if pending.first() is not None:
            raise ValidationError(
                "Please verify your email first. Check your inbox for the verification link."
            )

        result = await db.execute(
            select(User).where(func.lower(User.email) == lower, User.deleted_at.is_(None))
        )
        user = result.scalar_one_or_none()

        block_reason = ensure_local_allowed(user)
        if block_reason:
            raise ValidationError(block_reason)
        if not self.verify_password(password, user.password_hash):
            raise ValidationError("Invalid credentials")

        logger.info("User %s logged in", user.id)
        return user

    # ── Email Verification ────────────────────────────────────────────────

    async def verify_email(self, db: AsyncSession, token: Optional[str]) -> Optional[User]:
        """
        Consume a verification token.

        Pending registrations are checked first; tokens from the legacy
        email_verification_tokens table are still honoured afterwards.

        Returns:
            The verified user. The legacy flow may return None when the
            token's user no longer exists.

        Raises:
            ValidationError: missing, unknown or expired token, or a local
                             account was created for the email meanwhile
        """
        if not token:
            raise ValidationError("Missing token")
        now = _utcnow()

        result = await db.execute(
            select(PendingRegistration).where(
                PendingRegistration.token == token,
                PendingRegistration.expires_at > now,
            )
        )
        pending = result.scalar_one_or_none()
        if pending is not None:
            return await self._complete_pending_registration(db, pending)

        result = await db.execute(
            select(EmailVerificationToken).where(
                EmailVerificationToken.token == token,
                EmailVerificationToken.consumed_at.is_(None),
                EmailVerificationToken.expires_at > now,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise ValidationError("Invalid or expired token")

        await db.execute(
            update(User)
            .where(cast(User.id, String) == record.user_id)
            .values(verified=True, updated_at=func.now())
        )
        record.consumed_at = now
        await db.flush()

        result = await db.execute(select(User).where(cast(User.id, String) == record.user_id))
        return result.scalar_one_or_none()

    async def _complete_pending_registration(
        self, db: AsyncSession, pending: PendingRegistration
    ) -> User:
        existing = await self.get_user_by_email(db, pending.email)

        if existing is not None and existing.provider != PROVIDER_GOOGLE:
            # The token is spent either way; commit the delete before rejecting
            await db.delete(pending)
            await db.commit()
            raise ValidationError("User already exists. Please login instead.")

        if existing is not None:
            existing.password_hash = pending.password_hash
            existing.provider = PROVIDER_LOCAL
            existing.verified = True
            existing.name = pending.name or existing.name
            user = existing
            logger.info("Merged password sign-up into Google account %s", user.id)
        else:
            user = User(
                id=uuid.uuid4(),
                email=pending.email.lower(),
                password_hash=pending.password_hash,
                provider=PROVIDER_LOCAL,
                verified=True,
                name=pending.name,
            )
            db.add(user)
            logger.info("Created verified local account for %s", user.email)

        await db.delete(pending)
        await db.flush()
        return user

    # ── Google ────────────────────────────────────────────────────────────

    async def upsert_google_user(self, db: AsyncSession, profile: GoogleProfile) -> Optional[User]:
        """
        Resolve the account for a Google sign-in.

        Order: by google_id, then by email (a local account gets the
        google_id linked and stays local), else a verified Google account is
        created. Returns None when Google did not share an email.
        """
        if not profile.email:
            return None
        email = profile.email.lower()

        result = await db.execute(select(User).where(User.google_id == profile.google_id))
        user = result.scalar_one_or_none()
        if user is not None:
            user.name = user.name or profile.name
            user.avatar_url = profile.avatar_url
            await db.flush()
            return user

        existing = await self.get_user_by_email(db, email)
        if existing is not None:
            if existing.provider == PROVIDER_LOCAL:
                existing.google_id = profile.google_id
                existing.avatar_url = profile.avatar_url or existing.avatar_url
                existing.name = existing.name or profile.name
            elif not existing.google_id or existing.avatar_url != profile.avatar_url:
                existing.google_id = profile.google_id
                existing.avatar_url = profile.avatar_url
                existing.name = existing.name or profile.name
            await db.flush()
            return existing

        user = User(
            id=uuid.uuid4(),
            email=email,
            password_hash=None,
            provider=PROVIDER_GOOGLE,
            google_id=profile.google_id,
            verified=True,
            name=profile.name,
            avatar_url=profile.avatar_url,
        )
        db.add(user)
        await db.flush()
        logger.info("Created Google account for %s", email)
        return user

    # ── Maintenance ───────────────────────────────────────────────────────

    async def cleanup_expired_registrations(self, db: AsyncSession) -> int:
        result = await db.execute(
            delete(PendingRegistration).where(PendingRegistration.expires_at < _utcnow())
        )
        return result.rowcount or 0


# Module-level singleton
auth_service = AuthService()
