"""Add soft deletes

Revision ID: 003
Revises: 002
Create Date: 2025-03-12 00:00:00.000000+00:00

What:  deleted_at on users, visitors and newsletter_subscriptions, plus
       partial indexes over the rows that are still active.
Purge: peakself-cleanup-soft-deleted removes rows soft-deleted longer than
       SOFT_DELETE_RETENTION_DAYS.
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers
revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SOFT_DELETE_TABLES = ("users", "visitors", "newsletter_subscriptions")

INDEXES = (
    ("idx_users_active", "users(id) WHERE deleted_at IS NULL"),
    ("idx_users_email_active", "users(email) WHERE deleted_at IS NULL"),
    ("idx_visitors_active", "visitors(id) WHERE deleted_at IS NULL"),
    ("idx_newsletter_active", "newsletter_subscriptions(email) WHERE deleted_at IS NULL"),
    ("idx_users_deleted_at", "users(deleted_at) WHERE deleted_at IS NOT NULL"),
)


def upgrade() -> None:
    for table in SOFT_DELETE_TABLES:
        op.execute(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS deleted_at TIMESTAMPTZ")
    for name, definition in INDEXES:
        op.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {definition}")


def downgrade() -> None:
    for name, _ in reversed(INDEXES):
        op.execute(f"DROP INDEX IF EXISTS {name}")
    for table in reversed(SOFT_DELETE_TABLES):
        op.execute(f"ALTER TABLE {table} DROP COLUMN IF EXISTS deleted_at")
