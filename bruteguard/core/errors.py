"""
Error taxonomy for the failure tracker.

Validation errors (bad keys, unknown types, bad maintenance arguments) are
raised before any store access. Anything the persistence layer raises is
wrapped in StoreError by the ``store_errors`` boundary, logged with its
context, and propagated; nothing here retries or swallows.

Usage:
    with store_errors("upsert_increment", key=key):
        session.execute(stmt)
        session.commit()
"""

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.exc import SQLAlchemyError

from bruteguard.core.db_utils import is_transient_error
from bruteguard.core.logging_config import get_logger

logger = get_logger(__name__)

__all__ = [
    "BruteGuardError",
    "InvalidKeyError",
    "MalformedKeyError",
    "UnknownTypeError",
    "InvalidArgumentError",
    "StoreError",
    "store_errors",
]


class BruteGuardError(Exception):
    """Base for all bruteguard errors."""


class InvalidKeyError(BruteGuardError, ValueError):
    """Raised when a check type contains the key separator."""


class MalformedKeyError(BruteGuardError, ValueError):
    """Raised when a stored key cannot be split into type and value."""


class UnknownTypeError(BruteGuardError, LookupError):
    """Raised when a checked type has no configured threshold."""

    def __init__(self, check_type: str):
        super().__init__(f"No threshold configured for type {check_type!r}")
        self.check_type = check_type


class InvalidArgumentError(BruteGuardError, ValueError):
    """Raised for out-of-range maintenance or configuration arguments."""


class StoreError(BruteGuardError):
    """
    Wraps a failure of the persistence backend.

    Attributes:
        operation: Store operation that failed (e.g. "upsert_increment")
        transient: True when the cause looks like a dropped/refused connection
            or lock contention; callers may choose to retry those.
    """

    def __init__(self, message: str, operation: str, transient: bool = False):
        super().__init__(message)
        self.operation = operation
        self.transient = transient


@contextmanager
def store_errors(operation: str, **context: Any) -> Iterator[None]:
    """
    Error boundary around a store call.

    Logs any SQLAlchemy error with the operation and context, then re-raises
    it as StoreError chained to the original exception.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        transient = is_transient_error(exc)
        logger.error(
            "store operation failed",
            operation=operation,
            error_type=type(exc).__name__,
            error=str(exc),
            transient=transient,
            **context,
        )
        raise StoreError(
            f"{operation} failed: {exc}",
            operation=operation,
            transient=transient,
        ) from exc
