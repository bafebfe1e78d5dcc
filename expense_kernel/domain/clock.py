"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that domain and service code
    never call ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Invariants enforced:
    - Every instant handed out is timezone-aware UTC truncated to whole
      milliseconds.  ``signedAt`` is encoded into signed payloads with
      millisecond precision, so a timestamp carrying microseconds would
      round-trip through storage with digits the signature never covered.

Failure modes:
    - None.  ``DeterministicClock`` never runs out of time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


def truncate_to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond digits and normalize to UTC."""
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time must receive a Clock instance
        via constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime`` with
          millisecond precision.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic replay or testing.
    """

    def now(self) -> datetime:
        """Get current system time (UTC, millisecond precision)."""
        return truncate_to_millis(datetime.now(timezone.utc))


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until ``advance()``
          or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None):
        """
        Initialize with optional fixed time.

        Args:
            fixed_time: If provided, clock starts at this time.
                       If None, uses a default epoch time.
        """
        self._fixed_time = truncate_to_millis(
            fixed_time or datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
        )
        self._advance = timedelta(0)

    def now(self) -> datetime:
        """Get the fixed/controlled time."""
        return truncate_to_millis(self._fixed_time + self._advance)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = truncate_to_millis(time)
        self._advance = timedelta(0)

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
