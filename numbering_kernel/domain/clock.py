"""
Clock -- injectable time source.

Responsibility:
    The coordinator stamps ``issued_at`` and the registry defaults a missing
    onboarding date from a Clock, never from ``datetime.now()`` or
    ``date.today()``, so allocation tests can pin both.

Failure modes:
    - DeterministicClock rejects naive datetimes (ValueError); every stored
      timestamp is UTC-aware.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current UTC time."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Calendar date of ``now()``, used when a request omits its date."""
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    ``now()`` keeps returning the same instant until ``advance()``,
    ``tick()`` or ``set_time()`` moves it.
    """

    _DEFAULT = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = self._checked(fixed_time or self._DEFAULT)

    @staticmethod
    def _checked(value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")
        return value.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = self._checked(time)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Advance by one second and return the new time."""
        self.advance(1)
        return self._current
