"""
Test fixtures for bruteguard tests.

Provides database engine fixtures, a controllable clock, and ready-made
store/tracker instances.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Generator
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from bruteguard.models import FailureCounter
from bruteguard.services.failure_store import SqlFailureStore
from bruteguard.services.failure_tracker import FailureTracker


# Use in-memory SQLite for unit tests (fast, isolated)
TEST_DATABASE_URL = "sqlite:///:memory:"

START_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="function")
def test_engine() -> Generator[Engine, None, None]:
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(test_engine, clock) -> SqlFailureStore:
    return SqlFailureStore(test_engine, clock=clock)


@pytest.fixture
def tracker(store, clock) -> FailureTracker:
    """Tracker with small thresholds so boundaries are easy to reach."""
    return FailureTracker(store, {"ip": 10, "user": 3, "token": 0}, clock=clock)


# ============================================
# Test Data Factory
# ============================================

@pytest.fixture
def add_counter(test_session: Session):
    """Insert a counter row directly, bypassing the tracker."""

    def _add(key: str, fail_count: int, last_update: datetime) -> FailureCounter:
        row = FailureCounter(value=key, fail_count=fail_count, last_update=last_update)
        test_session.add(row)
        test_session.commit()
        return row

    return _add
