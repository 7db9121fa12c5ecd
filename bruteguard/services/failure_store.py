"""
Failure counter storage.

Defines the contract the tracker needs from its persistence backend and the
SQL implementation over the ``brute_force_log`` table.

Every write is a single statement so concurrent recorders never lose an
increment:

    PostgreSQL / SQLite:  INSERT ... ON CONFLICT (value) DO UPDATE
                          SET fail_count = fail_count + 1
    MySQL / MariaDB:      INSERT ... ON DUPLICATE KEY UPDATE
                          fail_count = fail_count + 1
    anything else:        UPDATE ... SET fail_count = fail_count + 1,
                          INSERT when no row matched

Usage:
    store = SqlFailureStore(engine)
    store.upsert_increment("ip:203.0.113.5")
    store.get_counts({"ip:203.0.113.5", "user:alice"})
"""

from datetime import datetime
from typing import Iterable, Protocol

from sqlalchemy import delete, insert, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from bruteguard.core.errors import store_errors
from bruteguard.core.typing import Clock, col, ensure_utc, seq, utc_now
from bruteguard.models.failure_counter import FailureCounter

__all__ = ["FailureStore", "SqlFailureStore"]

_table = FailureCounter.__table__  # type: ignore[attr-defined]


class FailureStore(Protocol):
    """Operations the tracker requires from a counter store."""

    def upsert_increment(self, key: str) -> None: ...

    def get_counts(self, keys: Iterable[str]) -> dict[str, tuple[int, datetime]]: ...

    def delete(self, key: str) -> None: ...

    def delete_where(self, older_than: datetime, count_less_than: int) -> int: ...

    def query_blocked(
        self, count_greater_than: int, newer_than: datetime
    ) -> list[tuple[str, int, datetime]]: ...


class SqlFailureStore:
    """
    Counter store backed by a SQLAlchemy engine.

    Args:
        engine: Engine for the database holding ``brute_force_log``
        clock: Source of "now" for ``last_update``; defaults to UTC wall time
    """

    def __init__(self, engine: Engine, clock: Clock = utc_now):
        self._engine = engine
        self._clock = clock

    @property
    def engine(self) -> Engine:
        return self._engine

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def upsert_increment(self, key: str) -> None:
        """Create the counter at 1 or add 1 to it, refreshing last_update."""
        now = ensure_utc(self._clock())
        dialect = self._engine.dialect.name

        with store_errors("upsert_increment", key=key):
            with self._engine.begin() as conn:
                if dialect in ("postgresql", "sqlite"):
                    dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
                    stmt = dialect_insert(_table).values(value=key, fail_count=1, last_update=now)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[_table.c.value],
                        set_={
                            "fail_count": _table.c.fail_count + 1,
                            "last_update": stmt.excluded.last_update,
                        },
                    )
                    conn.execute(stmt)
                elif dialect in ("mysql", "mariadb"):
                    stmt = mysql.insert(_table).values(value=key, fail_count=1, last_update=now)
                    stmt = stmt.on_duplicate_key_update(
                        fail_count=_table.c.fail_count + 1,
                        last_update=stmt.inserted.last_update,
                    )
                    conn.execute(stmt)
                else:
                    self._update_or_insert(conn, key, now)

    @staticmethod
    def _update_or_insert(conn: Connection, key: str, now: datetime) -> None:
        bump = (
            update(_table)
            .where(_table.c.value == key)
            .values(fail_count=_table.c.fail_count + 1, last_update=now)
        )
        if conn.execute(bump).rowcount:
            return
        try:
            with conn.begin_nested():
                conn.execute(insert(_table).values(value=key, fail_count=1, last_update=now))
        except IntegrityError:
            # Another recorder created the row between our UPDATE and INSERT
            conn.execute(bump)

    def delete(self, key: str) -> None:
        with store_errors("delete", key=key):
            with self._engine.begin() as conn:
                conn.execute(delete(_table).where(_table.c.value == key))

    def delete_where(self, older_than: datetime, count_less_than: int) -> int:
        """Delete counters last updated before ``older_than`` with fewer fails than given."""
        older_than = ensure_utc(older_than)
        with store_errors(
            "delete_where",
            older_than=older_than.isoformat(),
            count_less_than=count_less_than,
        ):
            with self._engine.begin() as conn:
                result = conn.execute(
                    delete(_table).where(
                        _table.c.last_update < older_than,
                        _table.c.fail_count < count_less_than,
                    )
                )
                return max(result.rowcount or 0, 0)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_counts(self, keys: Iterable[str]) -> dict[str, tuple[int, datetime]]:
        """Fetch counters for all keys in one query; absent keys are omitted."""
        wanted = sorted(set(keys))
        if not wanted:
            return {}

        with store_errors("get_counts", keys=len(wanted)):
            with Session(self._engine) as session:
                rows = session.exec(
                    select(FailureCounter).where(col(FailureCounter.value).in_(seq(wanted)))
                ).all()
                return {row.value: (row.fail_count, ensure_utc(row.last_update)) for row in rows}

    def query_blocked(
        self, count_greater_than: int, newer_than: datetime
    ) -> list[tuple[str, int, datetime]]:
        """Counters above a count and updated after a point in time, newest first."""
        newer_than = ensure_utc(newer_than)
        with store_errors(
            "query_blocked",
            count_greater_than=count_greater_than,
            newer_than=newer_than.isoformat(),
        ):
            with Session(self._engine) as session:
                rows = session.exec(
                    select(FailureCounter)
                    .where(
                        col(FailureCounter.fail_count) > count_greater_than,
                        col(FailureCounter.last_update) > newer_than,
                    )
                    .order_by(col(FailureCounter.last_update).desc(), col(FailureCounter.value))
                ).all()
                return [(row.value, row.fail_count, ensure_utc(row.last_update)) for row in rows]
