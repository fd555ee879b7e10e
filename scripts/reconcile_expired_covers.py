#!/usr/bin/env python3
"""Expire unanswered cover requests — cron wrapper around the reaper.

Designed to run hourly when the in-process scheduler is disabled:
    0 * * * *

Usage:
    python scripts/reconcile_expired_covers.py           # expire and commit
    python scripts/reconcile_expired_covers.py --dry-run # report, then roll back
    python scripts/reconcile_expired_covers.py --json    # machine-readable summary

Exit codes:
    0 = run completed with no per-record errors
    1 = one or more records failed
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from leavedesk.config import settings
from leavedesk.database import async_session_factory, engine
from leavedesk.leave.reaper import reconcile_expired_cover_requests
from leavedesk.leave.schemas import ReconciliationSummary

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("reconcile_expired_covers")


async def run(dry_run: bool) -> ReconciliationSummary:
    try:
        async with async_session_factory() as session:
            summary = await reconcile_expired_cover_requests(session)
            if dry_run:
                await session.rollback()
                logger.info("Dry run: rolled back %d expiry(ies)", summary.cleaned)
            else:
                await session.commit()
        return summary
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Expire unanswered cover requests")
    parser.add_argument("--dry-run", action="store_true", help="Roll back instead of committing")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    args = parser.parse_args()

    summary = asyncio.run(run(args.dry_run))

    if args.json:
        print(summary.model_dump_json(indent=2))
    else:
        print(
            f"found={summary.total_expired} cleaned={summary.cleaned} "
            f"notified={summary.notifications_sent} errors={summary.errors}"
        )
        for detail in summary.error_details:
            print(f"  ! {detail}")
    return 1 if summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())
