"""Rate limiting services.

Token bucket (local and distributed) and sliding window log limiters,
their state stores and background housekeeping.
"""

from .factory import Limiter, create_limiter
from .housekeeping import Housekeeper
from .kv_store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from .models import (
    RateLimitConfig,
    RateLimitResult,
    SlidingWindowConfig,
    TokenBucket,
    WindowEntry,
)
from .sliding_window import SlidingWindowLimiter, WindowLogStore
from .stores import BucketStore, InMemoryBucketStore, RemoteBucketStore
from .token_bucket import DistributedTokenBucketLimiter, TokenBucketLimiter

__all__ = [
    # Models
    "RateLimitConfig",
    "SlidingWindowConfig",
    "RateLimitResult",
    "TokenBucket",
    "WindowEntry",
    # Stores
    "BucketStore",
    "InMemoryBucketStore",
    "RemoteBucketStore",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "WindowLogStore",
    # Limiters
    "TokenBucketLimiter",
    "DistributedTokenBucketLimiter",
    "SlidingWindowLimiter",
    "Housekeeper",
    "Limiter",
    "create_limiter",
]
