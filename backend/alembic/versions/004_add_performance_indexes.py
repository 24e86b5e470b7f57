"""Add performance indexes

Revision ID: 004
Revises: 003
Create Date: 2025-04-02 00:00:00.000000+00:00

What:  Composite and partial indexes for the admin and analytics queries:
       traffic by source and time, users by role/verification, session
       lookups per visitor and user, newsletter email lookups.
       blog_posts is owned by the blog feature; its index is only created
       when that table exists.
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers
revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INDEXES = (
    ("idx_traffic_events_source_time", "traffic_events(source, occurred_at DESC)"),
    ("idx_users_role_verified", "users(role, verified) WHERE deleted_at IS NULL"),
    ("idx_users_verified", "users(id) WHERE verified = TRUE AND deleted_at IS NULL"),
    ("idx_user_sessions_visitor_time", "user_sessions(visitor_id, started_at DESC)"),
    (
        "idx_user_sessions_user_time",
        "user_sessions(user_id, started_at DESC) WHERE user_id IS NOT NULL",
    ),
    ("idx_session_events_session_time", "session_events(session_id, occurred_at DESC)"),
    ("idx_traffic_events_time", "traffic_events(occurred_at DESC)"),
    ("idx_newsletter_email", "newsletter_subscriptions(email) WHERE deleted_at IS NULL"),
)


def upgrade() -> None:
    for name, definition in INDEXES:
        op.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {definition}")

    op.execute(
        """
        DO $$
        BEGIN
          IF EXISTS (
            SELECT 1 FROM information_schema.tables WHERE table_name = 'blog_posts'
          ) THEN
            CREATE INDEX IF NOT EXISTS idx_blog_posts_status_time
              ON blog_posts(status, created_at DESC);
          END IF;
        END $$;
        """
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_blog_posts_status_time")
    for name, _ in reversed(INDEXES):
        op.execute(f"DROP INDEX IF EXISTS {name}")
