"""
Failure tracking and block decisions.

FailureTracker sits between an authentication layer and the counter store:

    if tracker.is_blocked({TYPE_IP: ip, TYPE_USER: username}):
        deny()
    elif not password_ok:
        tracker.record_failures({TYPE_IP: ip, TYPE_USER: username})

A maintenance pass (``clean_up`` or ``expire_low_failures``) runs on its own
schedule to drop stale counters that never got near a threshold.

The tracker keeps no in-process state; the store is the only source of truth,
so one instance can be shared freely across threads and workers.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping

from sqlalchemy.engine import Engine

from bruteguard.core.config import Settings
from bruteguard.core.errors import InvalidArgumentError, MalformedKeyError
from bruteguard.core.logging_config import get_logger
from bruteguard.core.typing import Clock, ensure_utc, utc_now
from bruteguard.services import key_codec
from bruteguard.services.failure_store import FailureStore, SqlFailureStore
from bruteguard.services.thresholds import TypeThresholds

logger = get_logger(__name__)

__all__ = ["BlockedEntry", "FailureTracker"]

DEFAULT_MIN_AGE_SECONDS = 3600
DEFAULT_MAX_FAIL_PERCENTAGE = 0.5
DEFAULT_BLOCKED_MAX_AGE_SECONDS = 2419200  # 4 weeks

# Cutoff used when an age reaches back past the first representable date
EARLIEST_CUTOFF = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class BlockedEntry:
    """One counter as reported to operators."""

    type: str
    value: str
    fail_count: int
    last_update: datetime


def _as_timedelta(name: str, value: timedelta | int | float) -> timedelta:
    if isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be a duration, got {value!r}")
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidArgumentError(f"{name} must be finite, got {value!r}")
        try:
            value = timedelta(seconds=value)
        except OverflowError:
            raise InvalidArgumentError(f"{name} is out of range, got {value!r}") from None
    if not isinstance(value, timedelta):
        raise InvalidArgumentError(f"{name} must be a timedelta or seconds, got {value!r}")
    if value < timedelta(0):
        raise InvalidArgumentError(f"{name} must be non-negative, got {value}")
    return value


def _as_count(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def _cutoff(now: datetime, age: timedelta) -> datetime:
    """`now - age` in UTC, floored at EARLIEST_CUTOFF."""
    try:
        return ensure_utc(now) - age
    except OverflowError:
        return EARLIEST_CUTOFF


class FailureTracker:
    """
    Counter-threshold gate over a FailureStore.

    Args:
        store: Persistence backend for the counters
        thresholds: Per-type maximum fail counts (mapping or TypeThresholds)
        clock: Source of "now" for age computations; defaults to UTC wall time
    """

    def __init__(
        self,
        store: FailureStore,
        thresholds: TypeThresholds | Mapping[str, int],
        clock: Clock = utc_now,
    ):
        if not isinstance(thresholds, TypeThresholds):
            thresholds = TypeThresholds(thresholds)
        self._store = store
        self._thresholds = thresholds
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        engine: Engine | None = None,
        clock: Clock = utc_now,
    ) -> "FailureTracker":
        """Build a SQL-backed tracker from configuration."""
        if engine is None:
            from bruteguard.db import create_db_engine

            engine = create_db_engine(settings.DATABASE_URL)
        return cls(
            SqlFailureStore(engine, clock=clock),
            TypeThresholds.from_settings(settings),
            clock=clock,
        )

    @property
    def thresholds(self) -> TypeThresholds:
        return self._thresholds

    @property
    def store(self) -> FailureStore:
        return self._store

    # ------------------------------------------------------------------
    # Block evaluation
    # ------------------------------------------------------------------

    def is_blocked(self, checks: Mapping[str, str]) -> bool:
        """
        Return True if any check's counter exceeds its type's threshold.

        Every type must have a configured threshold (UnknownTypeError
        otherwise). All counters are fetched in a single store query.
        """
        if not checks:
            return False

        limits: dict[str, tuple[str, str, int]] = {}
        for check_type, value in checks.items():
            limit = self._thresholds[check_type]
            limits[key_codec.encode(check_type, value)] = (check_type, value, limit)

        counts = self._store.get_counts(limits.keys())

        for key, (check_type, value, limit) in limits.items():
            fail_count = counts[key][0] if key in counts else 0
            if fail_count > limit:
                logger.info(
                    "check blocked",
                    type=check_type,
                    value=value,
                    fail_count=fail_count,
                )
                return True
        return False

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_failure(self, check_type: str, value: str) -> None:
        """Atomically add one failure to the (type, value) counter."""
        key = key_codec.encode(check_type, value)
        if check_type not in self._thresholds:
            logger.warning("recording failure for type without threshold", type=check_type)
        self._store.upsert_increment(key)
        logger.debug("failure recorded", type=check_type, value=value)

    def record_failures(self, checks: Mapping[str, str]) -> None:
        """
        Record one failure per check.

        Pairs are validated up front; store writes are independent, so a
        StoreError on one pair leaves the earlier pairs committed.
        """
        for check_type, value in checks.items():
            key_codec.encode(check_type, value)
        for check_type, value in checks.items():
            self.record_failure(check_type, value)

    def unblock(self, check_type: str, value: str) -> None:
        """Drop the counter for (type, value). Unknown keys are fine."""
        self._store.delete(key_codec.encode(check_type, value))
        logger.info("counter cleared", type=check_type, value=value)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clean_up(self, min_age: timedelta | int | float, max_fails: int) -> int:
        """
        Delete counters older than ``min_age`` with fewer than ``max_fails``.

        Counters at or above ``max_fails`` are kept regardless of age.
        Returns the number of counters deleted.
        """
        min_age = _as_timedelta("min_age", min_age)
        max_fails = _as_count("max_fails", max_fails)

        cutoff = _cutoff(self._clock(), min_age)
        deleted = self._store.delete_where(older_than=cutoff, count_less_than=max_fails)
        logger.info(
            "expired low-failure counters",
            deleted=deleted,
            min_age_seconds=int(min_age.total_seconds()),
            max_fails=max_fails,
        )
        return deleted

    def expire_low_failures(
        self,
        min_age: timedelta | int | float = DEFAULT_MIN_AGE_SECONDS,
        max_fail_percentage: float = DEFAULT_MAX_FAIL_PERCENTAGE,
    ) -> int:
        """
        Clean up counters below a percentage of the smallest threshold.

        With thresholds {"ip": 10000} and the default 0.5%, counters older
        than an hour with fewer than 50 failures are removed.
        """
        if (
            isinstance(max_fail_percentage, bool)
            or not isinstance(max_fail_percentage, (int, float))
            or not 0 <= max_fail_percentage <= 100
        ):
            raise InvalidArgumentError(
                f"max_fail_percentage must be between 0 and 100, got {max_fail_percentage!r}"
            )
        max_fails = math.ceil(self._thresholds.smallest * (max_fail_percentage / 100))
        return self.clean_up(min_age, max_fails)

    def list_blocked(
        self,
        min_fail_count: int,
        max_age: timedelta | int | float,
    ) -> list[BlockedEntry]:
        """Counters above ``min_fail_count`` updated within ``max_age``, newest first."""
        min_fail_count = _as_count("min_fail_count", min_fail_count)
        max_age = _as_timedelta("max_age", max_age)

        newer_than = _cutoff(self._clock(), max_age)
        rows = self._store.query_blocked(count_greater_than=min_fail_count, newer_than=newer_than)

        entries = []
        for key, fail_count, last_update in rows:
            check_type, value = key_codec.decode(key)
            entries.append(BlockedEntry(check_type, value, fail_count, last_update))
        return entries

    def get_blocked_values(
        self,
        max_age: timedelta | int | float = DEFAULT_BLOCKED_MAX_AGE_SECONDS,
    ) -> list[BlockedEntry]:
        """
        Values currently over their own type's threshold, newest first.

        Rows whose type is no longer configured, or whose key cannot be
        decoded, are skipped with a warning.
        """
        max_age = _as_timedelta("max_age", max_age)
        newer_than = _cutoff(self._clock(), max_age)
        rows = self._store.query_blocked(
            count_greater_than=self._thresholds.smallest,
            newer_than=newer_than,
        )

        entries = []
        for key, fail_count, last_update in rows:
            try:
                check_type, value = key_codec.decode(key)
            except MalformedKeyError:
                logger.warning("skipping undecodable counter key", key=key)
                continue
            limit = self._thresholds.get(check_type)
            if limit is None:
                logger.warning("skipping counter for unconfigured type", type=check_type)
                continue
            if fail_count > limit:
                entries.append(BlockedEntry(check_type, value, fail_count, last_update))
        return entries
