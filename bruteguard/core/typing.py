"""
Type helpers for SQLAlchemy/SQLModel compatibility with type checkers.

SQLModel fields are declared with Python types (e.g., `fail_count: int`) but
at the class level they're actually InstrumentedAttribute descriptors with
SQLAlchemy column methods like .desc(), .in_(), etc.

Type checkers see them as plain Python types and report errors when column
methods are called. This module provides helpers to bridge that gap, plus
the UTC clock helpers shared by the store and the tracker.
"""

from typing import TYPE_CHECKING, Any, Callable, Sequence, TypeVar
from datetime import datetime, timezone

if TYPE_CHECKING:
    from sqlalchemy.orm.attributes import InstrumentedAttribute

T = TypeVar("T")

# Zero-arg callable returning the current time; injected for tests
Clock = Callable[[], datetime]


def col(attr: T) -> "InstrumentedAttribute[T]":
    """
    Type helper for SQLAlchemy column operations in queries.

    At runtime this is a no-op - it just returns the input unchanged.

    Usage:
        select(FailureCounter).order_by(col(FailureCounter.last_update).desc())
    """
    return attr  # type: ignore[return-value]


def seq(items: Any) -> Sequence[Any]:
    """
    Type helper for sequences (lists, tuples) in SQLAlchemy contexts.

    Usage:
        query.where(col(FailureCounter.value).in_(seq(keys)))
    """
    return items


def utc_now() -> datetime:
    """
    Get current UTC time (timezone-aware).

    Use as default_factory in SQLModel fields and as the default Clock.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Applied to every timestamp before it is bound: SQLite drops tzinfo on the
    way in, so an offset clock would otherwise be stored as local wall time.
    Naive values, including everything SQLite reads back, are taken as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = [
    "Clock",
    "col",
    "seq",
    "utc_now",
    "ensure_utc",
]
