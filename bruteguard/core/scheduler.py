"""
Periodic maintenance for the counter store.

Runs the cleanup pass on an interval, independent of request traffic:

    tracker = FailureTracker.from_settings(settings)
    start_scheduler(tracker)          # inside a running asyncio loop
"""

import asyncio
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bruteguard.core.config import Settings, settings as default_settings
from bruteguard.core.errors import StoreError
from bruteguard.core.logging_config import get_logger
from bruteguard.services.failure_tracker import FailureTracker

logger = get_logger(__name__)

CLEANUP_JOB_ID = "bruteguard_cleanup"

scheduler = AsyncIOScheduler()


async def job_clean_up(tracker: FailureTracker, min_age: timedelta, max_fails: int) -> int | None:
    """Run one cleanup pass off the event loop.

    Store errors are logged and the job returns None so the next interval
    still fires; the counters are untouched by a failed pass.
    """
    try:
        return await asyncio.to_thread(tracker.clean_up, min_age, max_fails)
    except StoreError as e:
        logger.error(
            "scheduled cleanup failed",
            operation=e.operation,
            transient=e.transient,
            error=str(e),
        )
        return None


def start_scheduler(
    tracker: FailureTracker,
    settings: Settings = default_settings,
    target: AsyncIOScheduler | None = None,
    start: bool = True,
) -> AsyncIOScheduler:
    """Register the cleanup job and start the scheduler."""
    sched = target or scheduler
    min_age = timedelta(seconds=settings.CLEANUP_MIN_AGE_SECONDS)

    # replace_existing is not applied to jobs queued before start()
    if sched.get_job(CLEANUP_JOB_ID):
        sched.remove_job(CLEANUP_JOB_ID)

    sched.add_job(
        job_clean_up,
        IntervalTrigger(minutes=settings.CLEANUP_INTERVAL_MINUTES),
        args=[tracker, min_age, settings.CLEANUP_MAX_FAILS],
        id=CLEANUP_JOB_ID,
        name="Expire low-failure counters",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if start and not sched.running:
        sched.start()
    logger.info(
        "cleanup job scheduled",
        interval_minutes=settings.CLEANUP_INTERVAL_MINUTES,
        min_age_seconds=settings.CLEANUP_MIN_AGE_SECONDS,
        max_fails=settings.CLEANUP_MAX_FAILS,
    )
    return sched
