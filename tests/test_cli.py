"""Tests for the operator CLI."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from bruteguard.cli import build_parser, main, run_cleanup_scheduler
from bruteguard.core.scheduler import CLEANUP_JOB_ID
from bruteguard.services.failure_tracker import FailureTracker


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    monkeypatch.setattr("bruteguard.cli.settings.THRESHOLDS", {"ip": 2, "user": 1})
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    assert main(["--database-url", url, "init-db"]) == 0
    return url


def record(url, check_type, value, times):
    from bruteguard.db import create_db_engine
    from bruteguard.services.failure_store import SqlFailureStore

    engine = create_db_engine(url)
    store = SqlFailureStore(engine)
    for _ in range(times):
        store.upsert_increment(f"{check_type}:{value}")
    engine.dispose()


class TestParser:

    def test_check_requires_type_value_pairs(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["check", "no-equals-sign"])

    def test_check_parses_pairs(self):
        args = build_parser().parse_args(["check", "ip=2001:db8::1", "user=a=b"])
        assert args.checks == [("ip", "2001:db8::1"), ("user", "a=b")]


class TestCommands:

    def test_init_db(self, capsys, db_url):
        assert "Tables created successfully!" in capsys.readouterr().out

    def test_health(self, db_url, capsys):
        assert main(["--database-url", db_url, "health"]) == 0
        assert "ok" in capsys.readouterr().out

    def test_check_allowed_then_blocked(self, db_url, capsys):
        assert main(["--database-url", db_url, "check", "ip=10.0.0.1"]) == 0
        assert "allowed" in capsys.readouterr().out

        record(db_url, "ip", "10.0.0.1", 3)

        assert main(["--database-url", db_url, "check", "ip=10.0.0.1"]) == 2
        assert "blocked" in capsys.readouterr().out

    def test_check_unknown_type_fails(self, db_url, capsys):
        assert main(["--database-url", db_url, "check", "email=a@example.com"]) == 1
        assert "No threshold configured" in capsys.readouterr().err

    def test_unblock(self, db_url, capsys):
        record(db_url, "user", "alice", 5)

        assert main(["--database-url", db_url, "unblock", "user", "alice"]) == 0
        assert main(["--database-url", db_url, "check", "user=alice"]) == 0

    def test_list_blocked_uses_type_thresholds(self, db_url, capsys):
        record(db_url, "ip", "10.0.0.1", 3)
        record(db_url, "ip", "10.0.0.2", 2)
        record(db_url, "user", "alice", 2)
        capsys.readouterr()

        assert main(["--database-url", db_url, "list-blocked"]) == 0

        out = capsys.readouterr().out
        assert "10.0.0.1" in out
        assert "10.0.0.2" not in out
        assert "alice" in out
        assert "2 blocked value(s)" in out

    def test_list_blocked_with_min_fails(self, db_url, capsys):
        record(db_url, "ip", "10.0.0.2", 2)
        capsys.readouterr()

        assert main(["--database-url", db_url, "list-blocked", "--min-fails", "1"]) == 0
        assert "1 blocked value(s)" in capsys.readouterr().out

    def test_cleanup_keeps_fresh_counters(self, db_url, capsys):
        record(db_url, "ip", "10.0.0.1", 1)

        assert main(["--database-url", db_url, "cleanup", "--min-age", "3600", "--max-fails", "5"]) == 0
        assert "Deleted 0 counter(s)" in capsys.readouterr().out

    def test_cleanup_with_zero_age_expires_low_counters(self, db_url, capsys):
        record(db_url, "ip", "10.0.0.1", 1)

        assert main(["--database-url", db_url, "cleanup", "--min-age", "0", "--max-fails", "5"]) == 0
        assert "Deleted 1 counter(s)" in capsys.readouterr().out

    def test_cleanup_rejects_negative_age(self, db_url, capsys):
        assert main(["--database-url", db_url, "cleanup", "--min-age", "-5"]) == 1
        assert "min_age" in capsys.readouterr().err

    def test_store_error_exit_code(self, tmp_path, capsys):
        url = f"sqlite:///{tmp_path / 'empty.db'}"

        assert main(["--database-url", url, "check", "ip=1.2.3.4"]) == 1
        assert "Store error" in capsys.readouterr().err

    def test_list_blocked_huge_max_age(self, db_url, capsys):
        record(db_url, "ip", "10.0.0.1", 3)

        assert main(["--database-url", db_url, "list-blocked", "--max-age", "99999999999"]) == 0
        assert "1 blocked value(s)" in capsys.readouterr().out


class TestRunScheduler:

    def test_runs_scheduler_with_tracker(self, db_url):
        with patch("bruteguard.cli.run_cleanup_scheduler", new_callable=AsyncMock) as run:
            assert main(["--database-url", db_url, "run-scheduler"]) == 0

        run.assert_awaited_once()
        assert isinstance(run.await_args.args[0], FailureTracker)

    def test_interrupt_exits_cleanly(self, db_url, capsys):
        with patch("bruteguard.cli.run_cleanup_scheduler", MagicMock()), \
             patch("bruteguard.cli.asyncio.run", side_effect=KeyboardInterrupt):
            assert main(["--database-url", db_url, "run-scheduler"]) == 0

        assert "Scheduler interrupted" in capsys.readouterr().out

    def test_registers_job_until_stopped(self, tracker):
        sched = AsyncIOScheduler()
        seen = {}

        async def run():
            stop = asyncio.Event()

            async def inspect_then_stop():
                seen["running"] = sched.running
                seen["job"] = sched.get_job(CLEANUP_JOB_ID)
                stop.set()

            asyncio.get_running_loop().create_task(inspect_then_stop())
            await run_cleanup_scheduler(tracker, target=sched, stop=stop)

        asyncio.run(run())

        assert seen["running"] is True
        assert seen["job"] is not None
        assert sched.running is False
