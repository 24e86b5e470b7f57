"""Add pending registrations

Revision ID: 002
Revises: 001
Create Date: 2025-02-03 00:00:00.000000+00:00

What:  Sign-ups waiting for email verification. A `users` row is only created
       once the link is opened.
Indexes:
    - token lookup (verify-email)
    - one pending row per email, case-insensitive
    - expires_at for the hourly cleanup

Rollback: downgrade() drops the table; unverified sign-ups are lost.
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS pending_registrations (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          email TEXT NOT NULL,
          password_hash TEXT NOT NULL,
          name TEXT NULL,
          token TEXT NOT NULL UNIQUE,
          expires_at TIMESTAMPTZ NOT NULL,
          created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_pending_registrations_token "
        "ON pending_registrations(token)"
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_pending_registrations_email_unique "
        "ON pending_registrations(LOWER(email))"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_pending_registrations_expires "
        "ON pending_registrations(expires_at)"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_pending_registrations_expires")
    op.execute("DROP INDEX IF EXISTS idx_pending_registrations_email_unique")
    op.execute("DROP INDEX IF EXISTS idx_pending_registrations_token")
    op.execute("DROP TABLE IF EXISTS pending_registrations")
