"""
Permanently delete rows that were soft-deleted longer ago than the retention
period (users, visitors, newsletter_subscriptions).

Usage:
    peakself-cleanup-soft-deleted [--dry-run] [--days N]

    --dry-run   only count what would be deleted
    --days N    retention period, default SOFT_DELETE_RETENTION_DAYS (90)

Exit codes: 0 success, 2 invalid arguments, 1 database failure.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import dispose_engine, session_scope
from app.services.maintenance import SoftDeleteCleanupResult, purge_soft_deleted

logger = logging.getLogger("peakself.cleanup")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Purge old soft-deleted records.")
    p.add_argument(
        "--days",
        type=int,
        default=settings.soft_delete_retention_days,
        help="Retention period in days (default SOFT_DELETE_RETENTION_DAYS or 90).",
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Only count candidates, do not delete.",
    )
    return p.parse_args(argv)


def _log_summary(outcome: SoftDeleteCleanupResult) -> None:
    verb = "would be deleted" if outcome.dry_run else "deleted"
    logger.info("=" * 60)
    logger.info("Cleanup Summary")
    for table, count in outcome.counts.items():
        logger.info("  %-26s %d %s", table, count, verb)
    logger.info("  %-26s %d %s", "total", outcome.total, verb)
    logger.info("=" * 60)
    if outcome.dry_run:
        logger.info("This was a DRY RUN. Run without --dry-run to delete.")


async def run(days: int, dry_run: bool) -> SoftDeleteCleanupResult:
    try:
        async with session_scope() as db:
            return await purge_soft_deleted(db, days, dry_run=dry_run)
    finally:
        await dispose_engine()


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    args = _parse_args(argv)
    if args.days < 1:
        logger.error("Invalid retention days. Must be a positive integer.")
        return 2

    logger.info("Mode: %s", "DRY RUN" if args.dry_run else "LIVE")
    logger.info("Retention period: %d days", args.days)

    try:
        outcome = asyncio.run(run(args.days, args.dry_run))
    except SQLAlchemyError as e:
        logger.error("Cleanup failed: %s", e)
        return 1

    logger.info("Cutoff: %s", outcome.cutoff.isoformat())
    _log_summary(outcome)
    return 0


if __name__ == "__main__":
    sys.exit(main())
