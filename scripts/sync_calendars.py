# scripts/sync_calendars.py
"""
Calendar sync "tick".

Meant to run from cron (or any scheduler) every few minutes:
refreshes the busy-interval cache of every host with a connected calendar.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import timedelta

from app.db.session import SessionLocal, engine
from app.logging_config import configure_logging
from app.models import Base
from app.services.calendar_client import get_calendar_provider
from app.services.calendar_sync_service import sync_hosts
from app.timeutils import utcnow

logger = logging.getLogger("scripts.sync_calendars")


def run_once(days: int | None = None, timeout: float | None = None) -> int:
    """Returns the number of hosts whose sync failed."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        range_start = utcnow()
        range_end = range_start + timedelta(days=days) if days else None
        report = asyncio.run(
            sync_hosts(
                db,
                get_calendar_provider(),
                range_start=range_start,
                range_end=range_end,
                timeout_seconds=timeout,
            )
        )
        for host_id, reason in report.failed.items():
            logger.warning("host=%s failed: %s", host_id, reason)
        logger.info("synced=%d failed=%d", len(report.synced), len(report.failed))
        return len(report.failed)
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="How many days ahead to refresh (defaults to CALENDAR_SYNC_LOOKAHEAD_DAYS)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-host timeout in seconds (defaults to CALENDAR_SYNC_TIMEOUT_SECONDS)",
    )
    args = parser.parse_args()

    configure_logging()
    failed = run_once(days=args.days, timeout=args.timeout)
    raise SystemExit(1 if failed else 0)


if __name__ == "__main__":
    main()
