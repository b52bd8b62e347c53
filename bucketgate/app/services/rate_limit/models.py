"""Rate limiting data models.

This module contains dataclasses for limiter configuration, per-key state
and decision results. Timestamps are integer milliseconds.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from bucketgate.app.exceptions import ConfigurationError


def _require_positive_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(name, value)


@dataclass(frozen=True)
class RateLimitConfig:
    """Token bucket configuration.

    Attributes:
        max_tokens: Bucket capacity
        refill_rate: Tokens credited per refill interval
        refill_interval: Refill cadence in milliseconds
    """
    max_tokens: int
    refill_rate: int
    refill_interval: int

    def __post_init__(self) -> None:
        _require_positive_int("max_tokens", self.max_tokens)
        _require_positive_int("refill_rate", self.refill_rate)
        _require_positive_int("refill_interval", self.refill_interval)

    @property
    def full_refill_ms(self) -> int:
        """Time for an empty bucket to refill completely."""
        return math.ceil(self.max_tokens / self.refill_rate) * self.refill_interval

    @property
    def state_ttl_ms(self) -> int:
        """TTL applied to persisted bucket state."""
        return 2 * self.refill_interval


@dataclass(frozen=True)
class SlidingWindowConfig:
    """Sliding window log configuration.

    Attributes:
        window_size: Trailing window length in milliseconds
        max_requests: Requests allowed inside the window
    """
    window_size: int
    max_requests: int

    def __post_init__(self) -> None:
        _require_positive_int("window_size", self.window_size)
        _require_positive_int("max_requests", self.max_requests)


@dataclass
class TokenBucket:
    """Token bucket state for one key."""
    tokens: float
    last_refill: int

    def copy(self) -> "TokenBucket":
        return TokenBucket(tokens=self.tokens, last_refill=self.last_refill)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"tokens": self.tokens, "lastRefill": self.last_refill}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenBucket":
        """Create from dictionary."""
        return cls(tokens=float(data["tokens"]), last_refill=int(data["lastRefill"]))


@dataclass
class WindowEntry:
    """One timestamped burst inside a sliding window log."""
    timestamp: int
    count: int = field(default=1)


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetAt": self.reset_at,
        }
        if self.retry_after is not None:
            data["retryAfter"] = self.retry_after
        return data

    def headers(self) -> Dict[str, str]:
        """Standard rate limit response headers.

        X-RateLimit-Reset is expressed in epoch seconds.
        """
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at / 1000)),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def seconds_until(target_ms: int, now_ms: int) -> int:
    """Whole seconds until target_ms, never less than 1."""
    return max(1, math.ceil((target_ms - now_ms) / 1000))
