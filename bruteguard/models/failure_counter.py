"""
Failure counter persistence model.

One row per composite ``type:value`` key. Rows are created by the first
recorded failure, incremented in place, and removed by unblock or cleanup.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from bruteguard.core.typing import utc_now

TABLE_NAME = "brute_force_log"
KEY_MAX_LENGTH = 160


class FailureCounter(SQLModel, table=True):
    """Persisted failure tally for one (type, value) key."""

    __tablename__ = TABLE_NAME

    value: str = Field(primary_key=True, max_length=KEY_MAX_LENGTH)  # "ip:203.0.113.5"
    fail_count: int = Field(default=1, ge=0)
    last_update: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
