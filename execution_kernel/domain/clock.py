"""
Clock -- Injectable time abstraction.

Responsibility:
    Provides the clock interface through which services resolve the current
    fiscal quarter and measure verification debounce windows.  Domain and
    engine code never call ``datetime.now()`` or ``date.today()`` directly.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Failure modes:
    - DeterministicClock.advance() rejects negative offsets.

Audit relevance:
    Debounced verification and quarter locking are reproducible in tests
    because every timestamp comes from an injected Clock instance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services that need the current time receive a Clock instance via
        constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``today()`` returns the calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self) -> date:
        """Get the current calendar date."""
        return self.now().date()


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic tests.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - ``advance_ms()`` supports sub-second steps for debounce tests.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 8, 15, 9, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._offset += timedelta(seconds=seconds)

    def advance_ms(self, milliseconds: int) -> None:
        """Advance the clock by the specified milliseconds."""
        self.advance(milliseconds / 1000)
