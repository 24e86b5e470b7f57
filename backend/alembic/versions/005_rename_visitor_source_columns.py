"""Rename visitor attribution columns

Revision ID: 005
Revises: 004
Create Date: 2025-05-20 00:00:00.000000+00:00

What:  Visitors keep only their first-touch attribution:
       first_source → source, first_referrer → referrer,
       first_landing_path → landing_path; current_source and
       current_referrer are dropped.
How:   Each rename checks information_schema first, so a database that is
       already migrated is left untouched.

Rollback: downgrade() restores the first_* names and re-adds the current_*
columns empty (their old values are not recoverable).
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers
revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RENAMES = (
    ("first_source", "source"),
    ("first_referrer", "referrer"),
    ("first_landing_path", "landing_path"),
)


def _rename_if_present(old: str, new: str) -> str:
    return f"""
        DO $$
        BEGIN
          IF EXISTS (
            SELECT 1 FROM information_schema.columns
            WHERE table_name = 'visitors' AND column_name = '{old}'
          ) AND NOT EXISTS (
            SELECT 1 FROM information_schema.columns
            WHERE table_name = 'visitors' AND column_name = '{new}'
          ) THEN
            ALTER TABLE visitors RENAME COLUMN {old} TO {new};
          END IF;
        END $$;
    """


def upgrade() -> None:
    for old, new in RENAMES:
        op.execute(_rename_if_present(old, new))
    op.execute("ALTER TABLE visitors DROP COLUMN IF EXISTS current_source")
    op.execute("ALTER TABLE visitors DROP COLUMN IF EXISTS current_referrer")
    op.execute("CREATE INDEX IF NOT EXISTS idx_visitors_source ON visitors(source)")


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_visitors_source")
    for old, new in RENAMES:
        op.execute(_rename_if_present(new, old))
    op.execute("ALTER TABLE visitors ADD COLUMN IF NOT EXISTS current_source TEXT NULL")
    op.execute("ALTER TABLE visitors ADD COLUMN IF NOT EXISTS current_referrer TEXT NULL")
