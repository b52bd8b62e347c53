"""Key-value store collaborators for the distributed token bucket.

The distributed limiter only needs keyed get/set with a TTL (and delete for
resets). Values are opaque strings; TTLs are milliseconds.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import redis
import redis.asyncio as aioredis

from bucketgate.app.core.clock import Clock, SystemClock
from bucketgate.app.core.config import settings
from bucketgate.app.core.logging import get_logger
from bucketgate.app.exceptions import StoreUnavailableError

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """Abstract base class for the external keyed store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Retrieve a value.

        Args:
            key: Store key

        Returns:
            The stored value, or None if absent or expired.
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        """Store a value with a time-to-live in milliseconds."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a value. Missing keys are ignored."""
        pass

    async def close(self) -> None:
        """Release any connections held by the store."""
        pass


@dataclass
class _StoredValue:
    """Internal entry with TTL tracking."""

    value: str
    expires_at: Optional[int] = None

    def is_expired(self, now_ms: int) -> bool:
        if self.expires_at is None:
            return False
        return now_ms >= self.expires_at


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory key-value store with TTL support.

    Expiry is evaluated against the injected clock, so it stays in step
    with a ManualClock driving the limiter.

    Note: This store is not distributed and data is lost when the
    process exits.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or SystemClock()
        self._data: dict[str, _StoredValue] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock.now_ms()):
                del self._data[key]
                return None
            return entry.value

    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        async with self._lock:
            expires_at = self._clock.now_ms() + ttl_ms if ttl_ms > 0 else None
            self._data[key] = _StoredValue(value=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed key-value store.

    Redis errors are logged here and re-raised as StoreUnavailableError so
    the limiter can apply its fail-open/fail-closed policy.

    Example:
        >>> store = RedisKeyValueStore(redis_url="redis://localhost:6379/0")
        >>> await store.set("ratelimit:user:1", '{"tokens": 4, "lastRefill": 0}', 2000)
    """

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: Optional[str] = None,
    ) -> None:
        """Initialize Redis store.

        Args:
            redis_client: Optional Redis client instance
            redis_url: Redis connection URL, defaults to settings.redis_url
        """
        self._redis = redis_client
        self._redis_url = redis_url or settings.redis_url
        self._owns_client = redis_client is None

    def _get_redis(self) -> Any:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    def _unavailable(self, operation: str, key: str, exc: Exception) -> StoreUnavailableError:
        if isinstance(exc, redis.TimeoutError):
            logger.warning(f"Redis timeout during {operation} for {key}: {exc}")
        elif isinstance(exc, redis.ConnectionError):
            logger.error(f"Redis connection failed during {operation} for {key}: {exc}")
        else:
            logger.error(f"Redis error during {operation} for {key}: {exc}")
        return StoreUnavailableError(operation)

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._get_redis().get(key)
        except redis.RedisError as e:
            raise self._unavailable("get", key, e) from e
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        try:
            await self._get_redis().set(key, value, px=ttl_ms)
        except redis.RedisError as e:
            raise self._unavailable("set", key, e) from e

    async def delete(self, key: str) -> None:
        try:
            await self._get_redis().delete(key)
        except redis.RedisError as e:
            raise self._unavailable("delete", key, e) from e

    async def close(self) -> None:
        """Close the Redis connection if this store opened it."""
        if self._redis is not None and self._owns_client:
            try:
                await self._redis.aclose()
            except redis.RedisError as e:
                logger.warning(f"Error closing Redis connection: {e}")
            self._redis = None
