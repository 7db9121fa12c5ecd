"""Database utilities for classifying and probing store failures.

The tracker never retries a store call itself: a failed read or write on a
throttle has to surface to the caller. These helpers let callers tell a
transient connection failure (worth retrying on their side) from a hard one.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import Session

from bruteguard.core.logging_config import get_logger

logger = get_logger(__name__)

# Errors that indicate a transient connection failure (worth retrying)
TRANSIENT_ERRORS = (
    "server closed the connection unexpectedly",
    "connection refused",
    "connection reset by peer",
    "SSL connection has been closed unexpectedly",
    "terminating connection due to administrator command",
    "connection timed out",
    "could not connect to server",
    "the database system is starting up",
    "the database system is shutting down",
    "database is locked",
    "lost connection to mysql server",
    "mysql server has gone away",
    "deadlock detected",
    "deadlock found when trying to get lock",
)


def is_transient_error(error: BaseException) -> bool:
    """Check if an error is a transient connection failure."""
    error_msg = str(error).lower()
    return any(msg.lower() in error_msg for msg in TRANSIENT_ERRORS)


def check_db_connection(engine: Engine) -> bool:
    """
    Check if database connection is healthy.
    Returns True if connection is good, False otherwise.
    """
    try:
        with Session(engine) as session:
            session.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error("database health check failed", error=str(e))
        return False
