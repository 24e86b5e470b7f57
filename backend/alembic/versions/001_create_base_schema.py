"""Create base schema

Revision ID: 001
Revises: None
Create Date: 2025-01-10 00:00:00.000000+00:00

What:  Users, legacy verification tokens, newsletter subscriptions and the
       visitor/session/traffic tracking tables.
How:   Raw SQL with IF NOT EXISTS so the revision can be applied to a
       database that was created by hand from the same schema.

Notes:
    - Email uniqueness is case-insensitive (unique index on LOWER(email)).
    - google_id is unique only when present (partial index).
    - visitors keeps the first_* / current_* attribution columns here;
      revision 005 renames them.

Rollback: downgrade() drops every table created here (destructive).
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # gen_random_uuid() is built in from PostgreSQL 13; pgcrypto provides it before that
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # ── users ─────────────────────────────────────────────────────────────
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          email TEXT NOT NULL,
          password_hash TEXT,
          name TEXT,
          avatar_url TEXT,
          google_id TEXT,
          provider TEXT NOT NULL DEFAULT 'local',
          role TEXT NOT NULL DEFAULT 'user',
          verified BOOLEAN NOT NULL DEFAULT FALSE,
          source TEXT,
          referrer TEXT,
          landing_path TEXT,
          created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          CONSTRAINT users_role_check CHECK (role IN ('user','admin'))
        )
        """
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS users_email_unique_idx ON users (LOWER(email))"
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS users_google_id_unique_idx "
        "ON users (google_id) WHERE google_id IS NOT NULL"
    )

    # ── email_verification_tokens (legacy verification flow) ─────────────
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS email_verification_tokens (
          id BIGSERIAL PRIMARY KEY,
          user_id TEXT NOT NULL,
          token TEXT NOT NULL UNIQUE,
          expires_at TIMESTAMPTZ NOT NULL,
          consumed_at TIMESTAMPTZ
        )
        """
    )

    # ── newsletter_subscriptions ──────────────────────────────────────────
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS newsletter_subscriptions (
          id BIGSERIAL PRIMARY KEY,
          email TEXT NOT NULL UNIQUE,
          verified BOOLEAN NOT NULL DEFAULT FALSE,
          created_at TIMESTAMPTZ DEFAULT NOW()
        )
        """
    )

    # ── visitors / sessions / events ──────────────────────────────────────
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS visitors (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          user_id UUID NULL,
          first_source TEXT NOT NULL DEFAULT 'other',
          first_referrer TEXT NULL,
          first_landing_path TEXT NULL,
          current_source TEXT NULL,
          current_referrer TEXT NULL,
          first_seen_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          last_seen_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          sessions_count INTEGER DEFAULT 0
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_visitors_user_id ON visitors(user_id)")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS user_sessions (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          visitor_id UUID NOT NULL,
          user_id UUID NULL,
          source TEXT NOT NULL DEFAULT 'other',
          landing_path TEXT NULL,
          user_agent TEXT NULL,
          ip TEXT NULL,
          started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          last_seen_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          ended_at TIMESTAMPTZ NULL,
          page_count INTEGER DEFAULT 0
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_user_sessions_visitor_id ON user_sessions(visitor_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_user_sessions_user_id ON user_sessions(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_user_sessions_started_at ON user_sessions(started_at)")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS session_events (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          session_id UUID NOT NULL,
          path TEXT NOT NULL,
          referrer TEXT NULL,
          occurred_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_session_events_session_id ON session_events(session_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_session_events_occurred_at ON session_events(occurred_at)")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS traffic_events (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          occurred_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          source TEXT NOT NULL DEFAULT 'other',
          referrer TEXT NULL,
          path TEXT NOT NULL,
          user_agent TEXT NULL,
          ip TEXT NULL
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_traffic_events_occurred_at ON traffic_events(occurred_at)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_traffic_events_source ON traffic_events(source)")


def downgrade() -> None:
    for table in (
        "traffic_events",
        "session_events",
        "user_sessions",
        "visitors",
        "newsletter_subscriptions",
        "email_verification_tokens",
        "users",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
