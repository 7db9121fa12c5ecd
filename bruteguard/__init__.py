"""Failure counting and block decisions for brute-force throttling.

Basic usage::

    from bruteguard import FailureTracker, SqlFailureStore, TYPE_IP
    from bruteguard.db import create_db_engine, create_db_and_tables

    engine = create_db_engine("sqlite:///bruteguard.db")
    create_db_and_tables(engine)
    tracker = FailureTracker(SqlFailureStore(engine), {TYPE_IP: 10})

    if not tracker.is_blocked({TYPE_IP: "203.0.113.5"}):
        ...
"""

from bruteguard.core.errors import (
    BruteGuardError,
    InvalidArgumentError,
    InvalidKeyError,
    MalformedKeyError,
    StoreError,
    UnknownTypeError,
)
from bruteguard.services.failure_store import FailureStore, SqlFailureStore
from bruteguard.services.failure_tracker import BlockedEntry, FailureTracker
from bruteguard.services.key_codec import SEPARATOR, TYPE_IP, TYPE_TOKEN, TYPE_USER, decode, encode
from bruteguard.services.thresholds import TypeThresholds

__all__ = [
    "BlockedEntry",
    "BruteGuardError",
    "FailureStore",
    "FailureTracker",
    "InvalidArgumentError",
    "InvalidKeyError",
    "MalformedKeyError",
    "SEPARATOR",
    "SqlFailureStore",
    "StoreError",
    "TYPE_IP",
    "TYPE_TOKEN",
    "TYPE_USER",
    "TypeThresholds",
    "UnknownTypeError",
    "decode",
    "encode",
]
