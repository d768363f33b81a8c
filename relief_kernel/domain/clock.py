"""
Clock -- deterministic time abstraction.

Responsibility:
    Injectable clock so that engines and services never call
    ``datetime.now()`` directly.  Cooked dates, status-log timestamps and
    terminal locks all come from an injected Clock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Production clock returning the actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Each ``now()`` call returns the current instant; ``advance()`` moves it
    forward.  Used by tests to assert exact cooked dates and log ordering.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)
        if self._current.tzinfo is None:
            self._current = self._current.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1.0) -> datetime:
        self._current = self._current + timedelta(seconds=seconds)
        return self._current

    def set(self, instant: datetime) -> None:
        self._current = instant if instant.tzinfo else instant.replace(tzinfo=timezone.utc)
