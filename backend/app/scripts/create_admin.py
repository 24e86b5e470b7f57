"""
Bootstrap the first admin account.

Usage:
    peakself-create-admin [--email admin@test.com] [--name "Test Admin"]

Does nothing when an admin already exists. Otherwise the user with --email is
promoted, or a verified local admin without a password is created (sign in
with Google on the same email, or register to set a password).
"""

import argparse
import asyncio
import logging
import sys
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import dispose_engine, session_scope
from app.models.user import PROVIDER_LOCAL, ROLE_ADMIN, User
from app.services.auth_service import auth_service

logger = logging.getLogger("peakself.create_admin")

DEFAULT_ADMIN_EMAIL = "admin@test.com"
DEFAULT_ADMIN_NAME = "Test Admin"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create or promote the first admin user.")
    p.add_argument("--email", default=DEFAULT_ADMIN_EMAIL, help="Admin email address.")
    p.add_argument("--name", default=DEFAULT_ADMIN_NAME, help="Display name for a new account.")
    return p.parse_args(argv)


async def ensure_admin(db: AsyncSession, email: str, name: str) -> Optional[User]:
    """
    Returns the promoted/created admin, or None when admins already exist.
    """
    result = await db.execute(select(User).where(User.role == ROLE_ADMIN))
    admins = result.scalars().all()
    if admins:
        logger.info("Admin users already exist: %s", ", ".join(a.email for a in admins))
        return None

    existing = await auth_service.get_user_by_email(db, email)
    if existing is not None:
        existing.role = ROLE_ADMIN
        await db.flush()
        logger.info("Promoted existing user %s to admin", existing.email)
        return existing

    user = User(
        id=uuid.uuid4(),
        email=email.lower(),
        password_hash=None,
        provider=PROVIDER_LOCAL,
        verified=True,
        role=ROLE_ADMIN,
        name=name,
    )
    db.add(user)
    await db.flush()
    logger.info("Created admin user %s", user.email)
    return user


async def run(email: str, name: str) -> Optional[User]:
    try:
        async with session_scope() as db:
            return await ensure_admin(db, email, name)
    finally:
        await dispose_engine()


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    args = _parse_args(argv)
    try:
        asyncio.run(run(args.email, args.name))
    except SQLAlchemyError as e:
        logger.error("Error creating admin: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
