"""Time sources for rate limiting.

Limiters read time through a Clock so tests and simulations can drive it
explicitly. All values are integer milliseconds since the epoch.
"""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Abstract millisecond clock."""

    @abstractmethod
    def now_ms(self) -> int:
        """Return the current time in milliseconds."""
        pass


class SystemClock(Clock):
    """Wall-clock time from the host."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


class ManualClock(Clock):
    """Clock that only moves when told to.

    Example:
        >>> clock = ManualClock(start_ms=0)
        >>> clock.advance(1500)
        >>> clock.now_ms()
        1500
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def advance(self, ms: int) -> None:
        if ms < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += ms

    def set(self, ms: int) -> None:
        self._now = ms
