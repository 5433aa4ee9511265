"""Clock sources and the hex encoding used for block times."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

LOCK_TIME_THRESHOLD = 500_000_000
_MAX_U32 = 0xFFFFFFFF
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_HEX_U32 = re.compile(r"\+?[0-9a-fA-F]+")


def _check_block_time(value: int) -> int:
    """Return ``value`` if it is a valid block timestamp, else raise ValueError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Invalid timestamp: {value!r} is not an integer")
    if not LOCK_TIME_THRESHOLD <= value <= _MAX_U32:
        raise ValueError(
            f"Invalid timestamp: {value} is outside "
            f"[{LOCK_TIME_THRESHOLD}, {_MAX_U32}]"
        )
    return value


def _seconds_since_epoch(moment: datetime) -> int:
    delta = moment - _EPOCH
    if delta < timedelta(0):
        raise ValueError(f"{moment.isoformat()} is before the Unix epoch")
    return delta // timedelta(seconds=1)


class TimeProvider(ABC):
    """Source of the current time, replaceable in tests."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""

    @abstractmethod
    def set_time(self, time: int) -> None:
        """Set the current time from a block timestamp."""

    @abstractmethod
    def seconds_since_epoch(self) -> int:
        """Return whole seconds since the Unix epoch."""


class SystemTimeProvider(TimeProvider):
    """Time provider backed by the system clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def set_time(self, time: int) -> None:
        """Ignored: the system clock cannot be set."""

    def seconds_since_epoch(self) -> int:
        return _seconds_since_epoch(self.now())

    def __repr__(self) -> str:
        return "SystemTimeProvider()"


@dataclass
class FixedTimeProvider(TimeProvider):
    """Time provider that always reports a chosen moment."""

    moment: datetime

    def __post_init__(self) -> None:
        if self.moment.tzinfo is None:
            self.moment = self.moment.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.moment

    def set_time(self, time: int) -> None:
        seconds = _check_block_time(time)
        self.moment = _EPOCH + timedelta(seconds=seconds)

    def seconds_since_epoch(self) -> int:
        return _seconds_since_epoch(self.moment)


def serialize_time(time: int) -> str:
    """Encode a block timestamp as eight lower-case hex digits."""
    return f"{_check_block_time(time):08x}"


def deserialize_time(text: str) -> int:
    """Decode a hex block timestamp, raising ValueError when it is invalid."""
    if not isinstance(text, str) or not _HEX_U32.fullmatch(text):
        raise ValueError(f"Invalid time format: {text!r}")
    value = int(text.lstrip("+"), 16)
    if value > _MAX_U32:
        raise ValueError(f"Invalid time format: {text!r} does not fit in 32 bits")
    return _check_block_time(value)