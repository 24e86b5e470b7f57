"""
Pending registrations: local sign-ups held until the email is verified.

A row is created by POST /api/auth/register and consumed by
GET /api/auth/verify-email, which turns it into a `users` row. Expired rows
are purged hourly by the maintenance task.
"""

import uuid
from datetime import datetime

from sqlalchemy import Index, Text, func, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class PendingRegistration(Base):
    __tablename__ = "pending_registrations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    email: Mapped[str] = mapped_column(Text, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    token: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_pending_registrations_token", token),
        Index("idx_pending_registrations_email_unique", func.lower(email), unique=True),
        Index("idx_pending_registrations_expires", expires_at),
    )

    def __repr__(self) -> str:
        return f"<PendingRegistration(email='{self.email}', expires_at='{self.expires_at}')>"
