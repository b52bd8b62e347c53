"""Token bucket state stores.

The token bucket decision is written once against BucketStore. Local
limiters keep buckets in process memory; the distributed limiter reads and
writes them through a KeyValueStore collaborator.
"""

import json
from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional

from bucketgate.app.core.logging import get_logger
from bucketgate.app.services.rate_limit.kv_store import KeyValueStore
from bucketgate.app.services.rate_limit.models import TokenBucket

logger = get_logger(__name__)


class BucketStore(ABC):
    """Abstract base class for token bucket state access."""

    @abstractmethod
    async def get(self, key: str) -> Optional[TokenBucket]:
        """Load bucket state for a key, or None if there is none."""
        pass

    @abstractmethod
    async def set(self, key: str, bucket: TokenBucket, ttl_ms: int) -> None:
        """Persist bucket state for a key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Drop bucket state for a key."""
        pass


class InMemoryBucketStore(BucketStore):
    """Process-local bucket map owned by a single limiter.

    The TTL passed to set() is ignored; idle buckets are removed by
    housekeeping through evict_idle().
    """

    def __init__(self) -> None:
        self._buckets: Dict[str, TokenBucket] = {}

    async def get(self, key: str) -> Optional[TokenBucket]:
        return self._buckets.get(key)

    async def set(self, key: str, bucket: TokenBucket, ttl_ms: int) -> None:
        self._buckets[key] = bucket

    async def delete(self, key: str) -> None:
        self._buckets.pop(key, None)

    def evict_idle(self, cutoff_ms: int) -> int:
        """Remove buckets whose last refill is older than cutoff_ms.

        Returns:
            Number of buckets removed.
        """
        expired = [
            key for key, bucket in self._buckets.items()
            if bucket.last_refill < cutoff_ms
        ]
        for key in expired:
            del self._buckets[key]
        return len(expired)

    def clear(self) -> None:
        self._buckets.clear()

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, key: str) -> bool:
        return key in self._buckets

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._buckets))


class RemoteBucketStore(BucketStore):
    """Bucket state kept in an external key-value store as JSON.

    Key format: {key_prefix}{key}, value {"tokens": ..., "lastRefill": ...}.
    Unreadable values are treated as absent.
    """

    def __init__(self, kv_store: KeyValueStore, key_prefix: str = "ratelimit:") -> None:
        self._kv = kv_store
        self._key_prefix = key_prefix

    def make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def get(self, key: str) -> Optional[TokenBucket]:
        raw = await self._kv.get(self.make_key(key))
        if raw is None:
            return None
        try:
            return TokenBucket.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable bucket state for {key}: {e}")
            return None

    async def set(self, key: str, bucket: TokenBucket, ttl_ms: int) -> None:
        await self._kv.set(self.make_key(key), json.dumps(bucket.to_dict()), ttl_ms)

    async def delete(self, key: str) -> None:
        await self._kv.delete(self.make_key(key))
