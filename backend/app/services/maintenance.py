"""
Periodic and on-demand data cleanup.

- Expired pending registrations are deleted hourly by a task started in the
  application lifespan.
- Rows soft-deleted (deleted_at set) longer than the retention period are
  purged by the peakself-cleanup-soft-deleted script.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import session_scope
from app.services.auth_service import auth_service

logger = logging.getLogger(__name__)

# Table names are interpolated into SQL; only these are accepted
SOFT_DELETE_TABLES = ("users", "visitors", "newsletter_subscriptions")


# ── Pending Registrations ─────────────────────────────────────────────────

async def purge_expired_registrations() -> int:
    async with session_scope() as db:
        removed = await auth_service.cleanup_expired_registrations(db)
    if removed:
        logger.info("Removed %d expired pending registrations", removed)
    return removed


async def run_pending_cleanup_loop(interval_seconds: Optional[int] = None) -> None:
    """Run purge_expired_registrations every interval until cancelled."""
    interval = interval_seconds or settings.pending_cleanup_interval_seconds
    while True:
        await asyncio.sleep(interval)
        try:
            await purge_expired_registrations()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Failed to clean up expired pending registrations: %s", e)


# ── Soft-Deleted Rows ─────────────────────────────────────────────────────

@dataclass
class SoftDeleteCleanupResult:
    retention_days: int
    cutoff: datetime
    dry_run: bool
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def retention_cutoff(days: int, now: Optional[datetime] = None) -> datetime:
    if days < 1:
        raise ValueError("Invalid retention days. Must be a positive integer.")
    return (now or datetime.now(timezone.utc)) - timedelta(days=days)


async def count_soft_deleted(db: AsyncSession, table: str, cutoff: datetime) -> int:
    if table not in SOFT_DELETE_TABLES:
        raise ValueError(f"Unsupported table: {table}")
    result = await db.execute(
        text(
            f"SELECT COUNT(*) FROM {table} "
            "WHERE deleted_at IS NOT NULL AND deleted_at < :cutoff"
        ),
        {"cutoff": cutoff},
    )
    return int(result.scalar_one())


async def purge_soft_deleted_table(
    db: AsyncSession, table: str, cutoff: datetime, dry_run: bool = False
) -> int:
    count = await count_soft_deleted(db, table, cutoff)
    if count == 0:
        logger.info("No old soft-deleted records found in %s", table)
        return 0
    if dry_run:
        logger.info("[DRY RUN] Would delete %d records from %s", count, table)
        return count

    result = await db.execute(
        text(
            f"DELETE FROM {table} "
            "WHERE deleted_at IS NOT NULL AND deleted_at < :cutoff"
        ),
        {"cutoff": cutoff},
    )
    deleted = result.rowcount or 0
    logger.info("Permanently deleted %d records from %s", deleted, table)
    return deleted


async def purge_soft_deleted(
    db: AsyncSession, retention_days: int, dry_run: bool = False
) -> SoftDeleteCleanupResult:
    """Purge (or with dry_run, only count) old soft-deleted rows in every supported table."""
    cutoff = retention_cutoff(retention_days)
    outcome = SoftDeleteCleanupResult(retention_days=retention_days, cutoff=cutoff, dry_run=dry_run)
    for table in SOFT_DELETE_TABLES:
        outcome.counts[table] = await purge_soft_deleted_table(db, table, cutoff, dry_run)
    return outcome
