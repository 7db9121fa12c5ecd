"""
Composite key encoding for failure counters.

A counter key is ``type + ":" + value``. The type may never contain the
separator; the value may, since decoding splits on the first occurrence only.
"""

from bruteguard.core.errors import InvalidKeyError, MalformedKeyError
from bruteguard.models.failure_counter import KEY_MAX_LENGTH

SEPARATOR = ":"

# Well-known check types. The set is open: any separator-free string works.
TYPE_IP = "ip"
TYPE_USER = "user"
TYPE_TOKEN = "token"


def validate_type(check_type: str) -> None:
    if SEPARATOR in check_type:
        raise InvalidKeyError(f"Check type must not contain {SEPARATOR!r}: {check_type!r}")


def encode(check_type: str, value: str) -> str:
    """Join a (type, value) pair into a storage key."""
    validate_type(check_type)
    key = f"{check_type}{SEPARATOR}{value}"
    if len(key) > KEY_MAX_LENGTH:
        raise InvalidKeyError(f"Key exceeds {KEY_MAX_LENGTH} characters: {key[:32]!r}...")
    return key


def decode(key: str) -> tuple[str, str]:
    """Split a storage key back into (type, value)."""
    check_type, sep, value = key.partition(SEPARATOR)
    if not sep:
        raise MalformedKeyError(f"Stored key has no {SEPARATOR!r} separator: {key!r}")
    return check_type, value
