"""Token bucket rate limiting.

The decision algorithm lives in TokenBucketLimiter and is parameterized by a
BucketStore. DistributedTokenBucketLimiter runs the same algorithm over an
external key-value store.

Refill is quantized: tokens are credited only for whole refill intervals,
and the partial remainder is dropped when a refill happens.
"""

import asyncio
import math
from typing import Optional

from bucketgate.app.core.clock import Clock, SystemClock
from bucketgate.app.core.config import settings
from bucketgate.app.core.logging import get_log_context, get_logger
from bucketgate.app.exceptions import StoreUnavailableError
from bucketgate.app.services.rate_limit.housekeeping import Housekeeper
from bucketgate.app.services.rate_limit.kv_store import KeyValueStore
from bucketgate.app.services.rate_limit.models import (
    RateLimitConfig,
    RateLimitResult,
    TokenBucket,
    seconds_until,
)
from bucketgate.app.services.rate_limit.stores import (
    BucketStore,
    InMemoryBucketStore,
    RemoteBucketStore,
)

logger = get_logger(__name__)


def validate_cost(cost: int) -> None:
    if isinstance(cost, bool) or not isinstance(cost, int) or cost < 1:
        raise ValueError(f"cost must be an integer >= 1, got {cost!r}")


class TokenBucketLimiter:
    """Token bucket limiter with a pluggable state store.

    With the default in-memory store, limit() calls are serialized by an
    asyncio.Lock so refill and consume happen as one step, and idle buckets
    are swept by a Housekeeper once start() has been awaited.

    Example:
        >>> limiter = TokenBucketLimiter(RateLimitConfig(max_tokens=5, refill_rate=1, refill_interval=1000))
        >>> async with limiter:
        ...     result = await limiter.limit("user:42")
    """

    ALGORITHM = "token_bucket"
    BACKEND = "memory"

    def __init__(
        self,
        config: RateLimitConfig,
        store: Optional[BucketStore] = None,
        clock: Optional[Clock] = None,
        housekeeping_interval: float = Housekeeper.DEFAULT_INTERVAL_SECONDS,
        idle_ms: int = Housekeeper.DEFAULT_IDLE_MS,
    ):
        """Initialize token bucket limiter.

        Args:
            config: Bucket capacity and refill cadence
            store: Bucket state store (defaults to a private in-memory map)
            clock: Time source (defaults to SystemClock)
            housekeeping_interval: Seconds between idle sweeps
            idle_ms: Minimum idle time before a bucket is evicted
        """
        self.config = config
        self._clock = clock or SystemClock()
        self._store = store if store is not None else InMemoryBucketStore()
        self._lock = asyncio.Lock()

        self._housekeeper: Optional[Housekeeper] = None
        if isinstance(self._store, InMemoryBucketStore):
            # A bucket idle for a full refill would be full anyway, so evicting
            # it never changes a decision.
            self._housekeeper = Housekeeper(
                self._store,
                self._clock,
                interval_seconds=housekeeping_interval,
                idle_ms=max(idle_ms, config.full_refill_ms),
                name="token bucket",
            )

    @property
    def store(self) -> BucketStore:
        return self._store

    @property
    def housekeeper(self) -> Optional[Housekeeper]:
        return self._housekeeper

    def _refill(self, bucket: TokenBucket, now: int) -> None:
        """Credit whole elapsed intervals to the bucket in place."""
        elapsed = max(0, now - bucket.last_refill)
        intervals = elapsed // self.config.refill_interval
        if intervals > 0:
            bucket.tokens = min(
                float(self.config.max_tokens),
                bucket.tokens + intervals * self.config.refill_rate,
            )
            bucket.last_refill = now

    def _retry_after(self, bucket: TokenBucket, cost: int, now: int) -> int:
        """Seconds until enough whole intervals have passed to cover cost."""
        deficit = min(cost, self.config.max_tokens) - bucket.tokens
        intervals_needed = max(1, math.ceil(deficit / self.config.refill_rate))
        ready_at = bucket.last_refill + intervals_needed * self.config.refill_interval
        return seconds_until(ready_at, now)

    def _decide(self, bucket: TokenBucket, cost: int, now: int) -> RateLimitResult:
        reset_at = bucket.last_refill + self.config.refill_interval
        if bucket.tokens >= cost:
            bucket.tokens -= cost
            return RateLimitResult(
                allowed=True,
                limit=self.config.max_tokens,
                remaining=math.floor(bucket.tokens),
                reset_at=reset_at,
            )
        return RateLimitResult(
            allowed=False,
            limit=self.config.max_tokens,
            remaining=0,
            reset_at=reset_at,
            retry_after=self._retry_after(bucket, cost, now),
        )

    async def _limit(self, key: str, cost: int) -> RateLimitResult:
        now = self._clock.now_ms()
        bucket = await self._store.get(key)
        if bucket is None:
            bucket = TokenBucket(tokens=float(self.config.max_tokens), last_refill=now)

        self._refill(bucket, now)
        result = self._decide(bucket, cost, now)
        await self._store.set(key, bucket, self.config.state_ttl_ms)

        if not result.allowed:
            logger.debug(
                f"Rate limit exceeded, retry after {result.retry_after}s",
                extra=get_log_context(
                    rate_limit_key=key, algorithm=self.ALGORITHM, backend=self.BACKEND
                ),
            )
        return result

    async def limit(self, key: str, cost: int = 1) -> RateLimitResult:
        """Consume cost tokens for key if available.

        Args:
            key: Rate limit key
            cost: Number of tokens to consume

        Returns:
            RateLimitResult with allowed status and metadata

        Raises:
            ValueError: If cost is not a positive integer
        """
        validate_cost(cost)
        async with self._lock:
            return await self._limit(key, cost)

    async def status(self, key: str) -> RateLimitResult:
        """Report the current state of key without consuming tokens."""
        now = self._clock.now_ms()
        bucket = await self._store.get(key)
        if bucket is None:
            return RateLimitResult(
                allowed=True,
                limit=self.config.max_tokens,
                remaining=self.config.max_tokens,
                reset_at=now + self.config.refill_interval,
            )

        probe = bucket.copy()
        self._refill(probe, now)
        allowed = probe.tokens >= 1
        return RateLimitResult(
            allowed=allowed,
            limit=self.config.max_tokens,
            remaining=math.floor(probe.tokens),
            reset_at=probe.last_refill + self.config.refill_interval,
            retry_after=None if allowed else self._retry_after(probe, 1, now),
        )

    async def reset(self, key: str) -> None:
        """Forget key; its next request sees a full bucket."""
        await self._store.delete(key)

    async def start(self) -> None:
        """Start background housekeeping (in-memory store only)."""
        if self._housekeeper is not None:
            await self._housekeeper.start()

    async def destroy(self) -> None:
        """Stop housekeeping and drop all local state."""
        if self._housekeeper is not None:
            await self._housekeeper.stop()
        if isinstance(self._store, InMemoryBucketStore):
            self._store.clear()

    async def __aenter__(self) -> "TokenBucketLimiter":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.destroy()


class DistributedTokenBucketLimiter(TokenBucketLimiter):
    """Token bucket limiter whose state lives in an external key-value store.

    Each call reads the bucket, applies the same refill/decision as the
    local limiter and writes it back with a TTL of two refill intervals.

    The read-modify-write is not atomic: two processes limiting the same
    key concurrently can both read the same token count and both be
    allowed. Calls are not serialized even within one process.

    Store failures never reach the caller of limit() or status(); they are
    resolved by fail_closed (default False: fail open).

    The asyncio.Lock inherited from TokenBucketLimiter is never taken here,
    and no Housekeeper is created: idle state expires through the store TTL.
    destroy() closes the key-value store.
    """

    BACKEND = "remote"

    def __init__(
        self,
        config: RateLimitConfig,
        kv_store: KeyValueStore,
        clock: Optional[Clock] = None,
        fail_closed: Optional[bool] = None,
        key_prefix: str = "ratelimit:",
    ):
        """Initialize distributed limiter.

        Args:
            config: Bucket capacity and refill cadence
            kv_store: External store holding serialized bucket state
            clock: Time source (defaults to SystemClock)
            fail_closed: Deny when the store fails (None = settings.rate_limit_fail_closed)
            key_prefix: Prefix for store keys
        """
        super().__init__(config, store=RemoteBucketStore(kv_store, key_prefix), clock=clock)
        self._kv_store = kv_store
        self.fail_closed = (
            settings.rate_limit_fail_closed if fail_closed is None else fail_closed
        )

    @property
    def kv_store(self) -> KeyValueStore:
        return self._kv_store

    def _log_context(self, key: str) -> dict:
        return get_log_context(
            rate_limit_key=key, algorithm=self.ALGORITHM, backend=self.BACKEND
        )

    async def limit(self, key: str, cost: int = 1) -> RateLimitResult:
        validate_cost(cost)
        try:
            return await self._limit(key, cost)
        except StoreUnavailableError as e:
            logger.warning(
                f"Rate limit store unavailable: {e}", extra=self._log_context(key)
            )
            return self._handle_store_failure("store_unavailable", cost)
        except Exception as e:
            logger.exception(
                f"Unexpected rate limit error: {e}", extra=self._log_context(key)
            )
            return self._handle_store_failure("unexpected", cost)

    async def status(self, key: str) -> RateLimitResult:
        try:
            return await super().status(key)
        except StoreUnavailableError as e:
            logger.warning(
                f"Rate limit store unavailable during status: {e}",
                extra=self._log_context(key),
            )
            return self._handle_store_failure("store_unavailable", 1)
        except Exception as e:
            logger.exception(
                f"Unexpected rate limit error during status: {e}",
                extra=self._log_context(key),
            )
            return self._handle_store_failure("unexpected", 1)

    async def destroy(self) -> None:
        """Release the key-value store's connections."""
        await self._kv_store.close()

    def _handle_store_failure(self, error_type: str, cost: int) -> RateLimitResult:
        """Resolve a store failure with the fail-open/fail-closed policy.

        Args:
            error_type: Type of error for logging purposes
            cost: Tokens the failed call asked for

        Returns:
            RateLimitResult based on fail_closed configuration
        """
        now = self._clock.now_ms()
        if self.fail_closed:
            logger.warning(
                f"Rate limiting fail-closed triggered due to {error_type}. "
                "Request denied."
            )
            return RateLimitResult(
                allowed=False,
                limit=self.config.max_tokens,
                remaining=0,
                reset_at=now + self.config.refill_interval,
                retry_after=seconds_until(now + self.config.refill_interval, now),
            )

        logger.warning(
            f"Rate limiting fail-open triggered due to {error_type}. "
            "Request allowed without rate limit check."
        )
        return RateLimitResult(
            allowed=True,
            limit=self.config.max_tokens,
            remaining=max(0, self.config.max_tokens - cost),
            reset_at=now + self.config.refill_interval,
        )
