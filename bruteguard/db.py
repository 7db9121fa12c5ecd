from sqlmodel import create_engine, SQLModel
from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url

from bruteguard.core.config import settings
from bruteguard.core.logging_config import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def create_db_engine(database_url: str | None = None, echo: bool = False) -> Engine:
    """Create an engine for the counter store.

    SQLite gets a busy timeout so concurrent writers queue on the file lock
    instead of failing immediately; server databases get a pooled engine.
    """
    url = make_url(database_url or settings.DATABASE_URL)

    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,  # Verify connections before use
            pool_recycle=300,
            pool_timeout=30,
        )

    if url.get_backend_name() == "postgresql":
        event.listen(engine, "connect", _set_statement_timeout)

    logger.debug("engine created", backend=url.get_backend_name(), database=url.database)
    return engine


def _set_statement_timeout(dbapi_connection, connection_record):
    """Cap query time so a stuck cleanup cannot hold connections forever."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("SET statement_timeout = '30s'")
    except Exception as e:
        logger.warning("could not set statement timeout", error=str(e))
    finally:
        cursor.close()


def get_engine() -> Engine:
    """Return the process-wide engine, creating it from settings on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def create_db_and_tables(engine: Engine | None = None) -> None:
    # Import registers the table on SQLModel.metadata
    from bruteguard.models import FailureCounter  # noqa: F401

    SQLModel.metadata.create_all(engine or get_engine())
