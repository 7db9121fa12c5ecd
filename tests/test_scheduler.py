"""
Tests for scheduled maintenance.

Tests cover:
1. Job registration and trigger configuration
2. Cleanup job execution against a real store
3. Error handling during job execution
"""

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bruteguard.core.config import Settings
from bruteguard.core.errors import StoreError
from bruteguard.core.scheduler import CLEANUP_JOB_ID, job_clean_up, scheduler, start_scheduler

from conftest import START_TIME


class TestSchedulerInitialization:

    def test_scheduler_is_asyncio_scheduler(self):
        assert isinstance(scheduler, AsyncIOScheduler)

    def test_start_scheduler_registers_cleanup_job(self, tracker):
        test_scheduler = AsyncIOScheduler()
        settings = Settings(
            CLEANUP_INTERVAL_MINUTES=15,
            CLEANUP_MIN_AGE_SECONDS=7200,
            CLEANUP_MAX_FAILS=8,
        )

        start_scheduler(tracker, settings=settings, target=test_scheduler, start=False)

        job = test_scheduler.get_job(CLEANUP_JOB_ID)
        assert job is not None
        assert isinstance(job.trigger, IntervalTrigger)
        assert job.trigger.interval == timedelta(minutes=15)
        assert job.args == (tracker, timedelta(hours=2), 8)
        assert test_scheduler.running is False

    def test_registration_is_idempotent(self, tracker):
        test_scheduler = AsyncIOScheduler()

        start_scheduler(tracker, target=test_scheduler, start=False)
        start_scheduler(tracker, target=test_scheduler, start=False)

        assert len(test_scheduler.get_jobs()) == 1


class TestCleanupJob:

    def test_job_deletes_stale_counters(self, tracker, store, add_counter):
        add_counter("ip:stale", 2, START_TIME - timedelta(hours=3))
        add_counter("ip:busy", 40, START_TIME - timedelta(hours=3))

        deleted = asyncio.run(job_clean_up(tracker, timedelta(hours=1), 5))

        assert deleted == 1
        assert set(store.get_counts({"ip:stale", "ip:busy"})) == {"ip:busy"}

    def test_job_survives_store_errors(self):
        tracker = MagicMock()
        tracker.clean_up.side_effect = StoreError("down", operation="delete_where", transient=True)

        result = asyncio.run(job_clean_up(tracker, timedelta(hours=1), 5))

        assert result is None
        tracker.clean_up.assert_called_once_with(timedelta(hours=1), 5)
