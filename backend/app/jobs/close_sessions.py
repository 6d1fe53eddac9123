"""
Run the end-of-day closure once.

For external schedulers (cron, Kubernetes CronJob) instead of the in-process
scheduler:

    python -m backend.app.jobs.close_sessions --cutoff 21:00

Exits non-zero when any session failed to close or another run held the lock.
"""

import argparse
import asyncio
import logging
import sys

from backend.app.core.config import settings
from backend.app.core.observability import configure_logging
from backend.app.core.redis_client import redis_client
from backend.app.core.timeutils import parse_clock
from backend.app.db.session import AsyncSessionLocal
from backend.app.services.auto_close import SessionAutoCloser

logger = logging.getLogger("fieldtrack.jobs")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Close working sessions left open past their cutoff.")
    parser.add_argument(
        "--cutoff",
        type=parse_clock,
        default=None,
        help=f"Local close time HH:MM (default {settings.auto_close_time})"
    )
    parser.add_argument(
        "--no-lock",
        action="store_true",
        help="Skip the Redis run lock (single-instance deployments without Redis)"
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    closer = SessionAutoCloser(
        AsyncSessionLocal,
        redis=None if args.no_lock else redis_client
    )
    report = await closer.run_daily_closure(cutoff=args.cutoff)

    if not report.lock_acquired:
        logger.warning("Another closure run holds the lock for %s", report.run_date)
        return 2

    for failure in report.failed:
        logger.error("Session %s (user %s) not closed: %s", failure.session_id, failure.user_id, failure.reason)

    print(
        f"{report.run_date}: closed={len(report.closed)} "
        f"failed={len(report.failed)} skipped={len(report.skipped)}"
    )
    return 1 if report.failed else 0


def main(argv=None) -> int:
    configure_logging()
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
