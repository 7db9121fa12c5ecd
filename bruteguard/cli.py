#!/usr/bin/env python3
"""
Operator commands for the failure counter store.

Usage:
    bruteguard init-db
    bruteguard check ip=203.0.113.5 user=alice
    bruteguard unblock ip 203.0.113.5
    bruteguard list-blocked --min-fails 10 --max-age 86400
    bruteguard cleanup --min-age 3600 --max-fails 50
    bruteguard health
    bruteguard run-scheduler

The database comes from DATABASE_URL (or --database-url), thresholds from
THRESHOLDS. `check` exits 2 when any check is blocked, 1 on errors.
`run-scheduler` runs the periodic cleanup until interrupted.
"""

import argparse
import asyncio
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from bruteguard.core.config import settings
from bruteguard.core.db_utils import check_db_connection
from bruteguard.core.errors import BruteGuardError, StoreError
from bruteguard.core.logging_config import get_logger
from bruteguard.core.scheduler import start_scheduler
from bruteguard.db import create_db_and_tables, create_db_engine
from bruteguard.services.failure_tracker import FailureTracker

logger = get_logger(__name__)


def _parse_check(raw: str) -> tuple[str, str]:
    check_type, sep, value = raw.partition("=")
    if not sep or not check_type:
        raise argparse.ArgumentTypeError(f"expected TYPE=VALUE, got {raw!r}")
    return check_type, value


async def run_cleanup_scheduler(
    tracker: FailureTracker,
    target: AsyncIOScheduler | None = None,
    stop: asyncio.Event | None = None,
) -> None:
    """Run the cleanup job on its interval until ``stop`` is set."""
    sched = start_scheduler(tracker, settings, target=target or AsyncIOScheduler())
    try:
        await (stop or asyncio.Event()).wait()
    finally:
        sched.shutdown(wait=False)
        logger.info("cleanup scheduler stopped")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bruteguard", description="Manage brute-force failure counters")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the counter table if missing")

    check = sub.add_parser("check", help="Report whether the given checks are blocked")
    check.add_argument("checks", nargs="+", type=_parse_check, metavar="TYPE=VALUE")

    unblock = sub.add_parser("unblock", help="Clear the counter for a type/value")
    unblock.add_argument("type")
    unblock.add_argument("value")

    listing = sub.add_parser("list-blocked", help="List counters over a fail count")
    listing.add_argument(
        "--min-fails",
        type=int,
        default=None,
        help="Fail count to exceed (default: each type's own threshold)",
    )
    listing.add_argument("--max-age", type=int, default=settings.BLOCKED_MAX_AGE_SECONDS, help="Seconds")

    cleanup = sub.add_parser("cleanup", help="Expire stale low-failure counters")
    cleanup.add_argument("--min-age", type=int, default=settings.CLEANUP_MIN_AGE_SECONDS, help="Seconds")
    cleanup.add_argument("--max-fails", type=int, default=settings.CLEANUP_MAX_FAILS)

    sub.add_parser("health", help="Check database connectivity")
    sub.add_parser("run-scheduler", help="Run periodic cleanup in the foreground")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    engine = create_db_engine(args.database_url or settings.DATABASE_URL)

    try:
        if args.command == "init-db":
            print("Creating failure counter table...")
            create_db_and_tables(engine)
            print("Tables created successfully!")
            return 0

        if args.command == "health":
            healthy = check_db_connection(engine)
            print("ok" if healthy else "unreachable")
            return 0 if healthy else 1

        tracker = FailureTracker.from_settings(settings, engine=engine)

        if args.command == "check":
            blocked = tracker.is_blocked(dict(args.checks))
            print("blocked" if blocked else "allowed")
            return 2 if blocked else 0

        if args.command == "unblock":
            tracker.unblock(args.type, args.value)
            print(f"Cleared {args.type}:{args.value}")
            return 0

        if args.command == "list-blocked":
            if args.min_fails is None:
                entries = tracker.get_blocked_values(args.max_age)
            else:
                entries = tracker.list_blocked(args.min_fails, args.max_age)
            for entry in entries:
                print(f"{entry.last_update.isoformat()}\t{entry.type}\t{entry.value}\t{entry.fail_count}")
            print(f"{len(entries)} blocked value(s)")
            return 0

        if args.command == "cleanup":
            deleted = tracker.clean_up(args.min_age, args.max_fails)
            print(f"Deleted {deleted} counter(s)")
            return 0

        if args.command == "run-scheduler":
            try:
                asyncio.run(run_cleanup_scheduler(tracker))
            except KeyboardInterrupt:
                print("Scheduler interrupted")
            return 0
    except StoreError as e:
        print(f"Store error: {e}", file=sys.stderr)
        return 1
    except BruteGuardError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()

    return 1


if __name__ == "__main__":
    sys.exit(main())
