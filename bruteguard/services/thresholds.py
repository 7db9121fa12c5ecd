"""Per-type failure thresholds."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping

from bruteguard.core.config import Settings
from bruteguard.core.errors import InvalidArgumentError, UnknownTypeError
from bruteguard.services.key_codec import SEPARATOR


@dataclass(frozen=True, eq=False)
class TypeThresholds(Mapping[str, int]):
    """
    Validated mapping of check type -> maximum allowed fail_count.

    A check is blocked once its counter is strictly greater than the
    threshold of its type. Types missing from the mapping are an error at
    lookup time, never an implicit default.
    """

    limits: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        if not self.limits:
            raise InvalidArgumentError("At least one type threshold must be configured")
        for check_type, limit in self.limits.items():
            if not isinstance(check_type, str) or not check_type:
                raise InvalidArgumentError(f"Type must be a non-empty string, got {check_type!r}")
            if SEPARATOR in check_type:
                raise InvalidArgumentError(f"Type must not contain {SEPARATOR!r}: {check_type!r}")
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
                raise InvalidArgumentError(
                    f"Threshold for {check_type!r} must be a non-negative integer, got {limit!r}"
                )
        object.__setattr__(self, "limits", MappingProxyType(dict(self.limits)))

    @classmethod
    def from_settings(cls, settings: Settings) -> "TypeThresholds":
        return cls(settings.THRESHOLDS)

    def __getitem__(self, check_type: str) -> int:
        try:
            return self.limits[check_type]
        except KeyError:
            raise UnknownTypeError(check_type) from None

    def __contains__(self, check_type: object) -> bool:
        return check_type in self.limits

    def get(self, check_type: str, default: int | None = None) -> int | None:
        return self.limits.get(check_type, default)

    def __iter__(self) -> Iterator[str]:
        return iter(self.limits)

    def __len__(self) -> int:
        return len(self.limits)

    @property
    def smallest(self) -> int:
        return min(self.limits.values())
