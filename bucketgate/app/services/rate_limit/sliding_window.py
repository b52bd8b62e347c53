"""Sliding window log rate limiting.

Each key keeps an ordered log of timestamped request counts. A request is
allowed while the counts inside the half-open window (now - window_size, now]
stay within max_requests.
"""

import asyncio
from typing import Dict, List, Optional

from bucketgate.app.core.clock import Clock, SystemClock
from bucketgate.app.core.logging import get_log_context, get_logger
from bucketgate.app.services.rate_limit.housekeeping import Housekeeper
from bucketgate.app.services.rate_limit.models import (
    RateLimitResult,
    SlidingWindowConfig,
    WindowEntry,
    seconds_until,
)
from bucketgate.app.services.rate_limit.token_bucket import validate_cost

logger = get_logger(__name__)


class WindowLogStore:
    """Per-key window logs owned by one SlidingWindowLimiter."""

    def __init__(self) -> None:
        self._logs: Dict[str, List[WindowEntry]] = {}

    def get(self, key: str) -> List[WindowEntry]:
        return self._logs.get(key, [])

    def put(self, key: str, entries: List[WindowEntry]) -> None:
        if entries:
            self._logs[key] = entries
        else:
            self._logs.pop(key, None)

    def delete(self, key: str) -> None:
        self._logs.pop(key, None)

    def evict_idle(self, cutoff_ms: int) -> int:
        """Drop whole logs whose newest entry is older than cutoff_ms."""
        expired = [
            key for key, entries in self._logs.items()
            if not entries or entries[-1].timestamp < cutoff_ms
        ]
        for key in expired:
            del self._logs[key]
        return len(expired)

    def clear(self) -> None:
        self._logs.clear()

    def __len__(self) -> int:
        return len(self._logs)

    def __contains__(self, key: str) -> bool:
        return key in self._logs


class SlidingWindowLimiter:
    """In-memory sliding window log limiter.

    More precise than the token bucket at the cost of one log entry per
    distinct request timestamp.
    """

    ALGORITHM = "sliding_window"
    BACKEND = "memory"

    def __init__(
        self,
        config: SlidingWindowConfig,
        clock: Optional[Clock] = None,
        housekeeping_interval: float = Housekeeper.DEFAULT_INTERVAL_SECONDS,
        idle_ms: int = Housekeeper.DEFAULT_IDLE_MS,
    ):
        self.config = config
        self._clock = clock or SystemClock()
        self._store = WindowLogStore()
        self._lock = asyncio.Lock()
        # A log idle for a whole window has nothing left that counts.
        self._housekeeper = Housekeeper(
            self._store,
            self._clock,
            interval_seconds=housekeeping_interval,
            idle_ms=max(idle_ms, config.window_size),
            name="sliding window",
        )

    @property
    def store(self) -> WindowLogStore:
        return self._store

    @property
    def housekeeper(self) -> Housekeeper:
        return self._housekeeper

    def _surviving(self, key: str, now: int) -> List[WindowEntry]:
        window_start = now - self.config.window_size
        return [entry for entry in self._store.get(key) if entry.timestamp > window_start]

    def _denied(self, entries: List[WindowEntry], now: int) -> RateLimitResult:
        if entries:
            reset_at = entries[0].timestamp + self.config.window_size
        else:
            reset_at = now + self.config.window_size
        return RateLimitResult(
            allowed=False,
            limit=self.config.max_requests,
            remaining=0,
            reset_at=reset_at,
            retry_after=seconds_until(reset_at, now),
        )

    async def limit(self, key: str, cost: int = 1) -> RateLimitResult:
        """Record cost requests for key if the window has room.

        Raises:
            ValueError: If cost is not a positive integer
        """
        validate_cost(cost)
        async with self._lock:
            now = self._clock.now_ms()
            entries = self._surviving(key, now)
            total = sum(entry.count for entry in entries)

            if total + cost > self.config.max_requests:
                self._store.put(key, entries)
                result = self._denied(entries, now)
                logger.debug(
                    f"Rate limit exceeded, retry after {result.retry_after}s",
                    extra=get_log_context(
                        rate_limit_key=key, algorithm=self.ALGORITHM, backend=self.BACKEND
                    ),
                )
                return result

            if entries and entries[-1].timestamp == now:
                entries[-1].count += cost
            else:
                entries.append(WindowEntry(timestamp=now, count=cost))
            self._store.put(key, entries)

            return RateLimitResult(
                allowed=True,
                limit=self.config.max_requests,
                remaining=self.config.max_requests - total - cost,
                reset_at=now + self.config.window_size,
            )

    async def status(self, key: str) -> RateLimitResult:
        """Report the current window for key without recording a request."""
        now = self._clock.now_ms()
        entries = self._surviving(key, now)
        total = sum(entry.count for entry in entries)
        if total >= self.config.max_requests:
            return self._denied(entries, now)
        reset_at = (
            entries[0].timestamp + self.config.window_size
            if entries
            else now + self.config.window_size
        )
        return RateLimitResult(
            allowed=True,
            limit=self.config.max_requests,
            remaining=self.config.max_requests - total,
            reset_at=reset_at,
        )

    async def reset(self, key: str) -> None:
        self._store.delete(key)

    async def start(self) -> None:
        await self._housekeeper.start()

    async def destroy(self) -> None:
        """Stop housekeeping and drop all window logs."""
        await self._housekeeper.stop()
        self._store.clear()

    async def __aenter__(self) -> "SlidingWindowLimiter":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.destroy()
