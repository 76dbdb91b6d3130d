"""
Injectable time source.

Engines never read the wall clock themselves: movement ``created_at``,
opname numbers (``OP-YYYYMMDD-NNNN``) and ``finalized_at`` all come from the
Clock handed to them, so tests can pin time and replay runs exactly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` returns a timezone-aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.  Time only moves through ``advance``, ``tick``
    or ``set_time``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = _aware(fixed_time or DEFAULT_TEST_TIME)

    def now(self) -> datetime:
        return self._now

    def set_time(self, time: datetime) -> None:
        self._now = _aware(time)

    def advance(self, seconds: int | float | timedelta = 1) -> None:
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        self._now += step

    def tick(self) -> datetime:
        """Move one second forward and return the new time."""
        self.advance(1)
        return self._now


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"Clock times must be timezone-aware, got {value!r}")
    return value.astimezone(timezone.utc)
