"""Periodic eviction of idle rate limit state.

Local limiters hand their state container to a Housekeeper, which sweeps it
from a background asyncio task. The task must be stopped explicitly.
"""

import asyncio
from typing import Optional, Protocol

from bucketgate.app.core.clock import Clock
from bucketgate.app.core.logging import get_logger

logger = get_logger(__name__)


class Sweepable(Protocol):
    """State container that can drop entries idle since before a cutoff."""

    def evict_idle(self, cutoff_ms: int) -> int:
        ...


class Housekeeper:
    """Background sweeper for one limiter's state.

    Every interval_seconds it removes entries idle for longer than idle_ms.
    Sweeps run on the event loop that owns the state, so they never
    interleave with a limit() call mid-decision.
    """

    DEFAULT_INTERVAL_SECONDS = 60.0
    DEFAULT_IDLE_MS = 5 * 60 * 1000

    def __init__(
        self,
        target: Sweepable,
        clock: Clock,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        idle_ms: int = DEFAULT_IDLE_MS,
        name: str = "rate-limit",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if idle_ms <= 0:
            raise ValueError("idle_ms must be positive")
        self._target = target
        self._clock = clock
        self._interval = interval_seconds
        self._idle_ms = idle_ms
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    @property
    def idle_ms(self) -> int:
        return self._idle_ms

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self) -> int:
        """Evict idle entries now.

        Returns:
            Number of entries removed.
        """
        cutoff = self._clock.now_ms() - self._idle_ms
        removed = self._target.evict_idle(cutoff)
        if removed:
            logger.debug(f"Housekeeping evicted {removed} idle {self._name} entries")
        return removed

    async def start(self) -> None:
        """Start the periodic sweep task."""
        if self._task is not None:
            return
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started {self._name} housekeeping task")

    async def stop(self) -> None:
        """Stop the periodic sweep task."""
        if self._task is None:
            return
        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info(f"Stopped {self._name} housekeeping task")

    async def _run(self) -> None:
        """Background loop for periodic sweeps."""
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self._interval,
                )
            except asyncio.TimeoutError:
                pass
            if self._shutdown_event.is_set():
                break
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Error during {self._name} housekeeping: {e}")
