"""
PeakSelf Backend — User SQLAlchemy Model
==========================================

What:  ORM model for the `users` table.
Who:   Used by AuthService (register/login/OAuth upsert), the admin guard's
       role recheck, and the create-admin script.

Table Design Rationale:
    - email uniqueness is case-insensitive (unique index on LOWER(email),
      created by migration 001); the service lowercases before writing.
    - provider is 'local' or 'google'. A Google account that later verifies
      a password sign-up is switched to 'local' and keeps its google_id.
    - role is constrained to 'user' / 'admin'.
    - deleted_at marks soft-deleted rows; the cleanup script purges them
      after the retention period.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Index, Text, func, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"
PROVIDER_LOCAL = "local"
PROVIDER_GOOGLE = "google"


class User(Base):
    """A registered account (local password or Google sign-in)."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    email: Mapped[str] = mapped_column(Text, nullable=False)

    # NULL for Google-only accounts and for admins created by the script
    password_hash: Mapped[str | None] = mapped_column(Text, nullable=True)

    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    google_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider: Mapped[str] = mapped_column(
        Text, nullable=False, default=PROVIDER_LOCAL, server_default=text("'local'")
    )
    role: Mapped[str] = mapped_column(
        Text, nullable=False, default=ROLE_USER, server_default=text("'user'")
    )
    verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("FALSE")
    )

    # Attribution captured by the tracking flow at sign-up
    source: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    landing_path: Mapped[str | None] = mapped_column(Text, nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("role IN ('user','admin')", name="users_role_check"),
        Index("users_email_unique_idx", func.lower(email), unique=True),
        Index(
            "users_google_id_unique_idx",
            google_id,
            unique=True,
            postgresql_where=text("google_id IS NOT NULL"),
        ),
    )

    def to_public_dict(self) -> dict:
        """Fields safe to return to the browser (never the password hash)."""
        return {
            "id": str(self.id),
            "email": self.email,
            "provider": self.provider,
            "verified": self.verified,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "role": self.role,
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
