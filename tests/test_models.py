"""Tests for rate limit models and exceptions."""

import pytest

from bucketgate.app.exceptions import ConfigurationError, RateLimitExceededError
from bucketgate.app.services.rate_limit import (
    RateLimitConfig,
    RateLimitResult,
    SlidingWindowConfig,
    TokenBucket,
)


class TestRateLimitConfig:
    """Construction-time validation."""

    @pytest.mark.parametrize(
        "field, kwargs",
        [
            ("max_tokens", {"max_tokens": 0, "refill_rate": 1, "refill_interval": 1000}),
            ("refill_rate", {"max_tokens": 5, "refill_rate": -1, "refill_interval": 1000}),
            ("refill_interval", {"max_tokens": 5, "refill_rate": 1, "refill_interval": 0}),
            ("max_tokens", {"max_tokens": 2.5, "refill_rate": 1, "refill_interval": 1000}),
            ("refill_rate", {"max_tokens": 5, "refill_rate": True, "refill_interval": 1000}),
        ],
    )
    def test_rejects_invalid_values(self, field, kwargs):
        with pytest.raises(ConfigurationError) as exc_info:
            RateLimitConfig(**kwargs)
        assert exc_info.value.field == field

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            RateLimitConfig(max_tokens=0, refill_rate=1, refill_interval=1000)

    def test_full_refill_time(self):
        config = RateLimitConfig(max_tokens=5, refill_rate=2, refill_interval=1000)
        assert config.full_refill_ms == 3000
        assert config.state_ttl_ms == 2000

    def test_is_immutable(self):
        config = RateLimitConfig(max_tokens=5, refill_rate=1, refill_interval=1000)
        with pytest.raises(AttributeError):
            config.max_tokens = 10


class TestSlidingWindowConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"window_size": 0, "max_requests": 10},
            {"window_size": 60000, "max_requests": 0},
            {"window_size": -5, "max_requests": 10},
        ],
    )
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            SlidingWindowConfig(**kwargs)


class TestTokenBucket:
    def test_serialization_uses_wire_names(self):
        bucket = TokenBucket(tokens=3.0, last_refill=1500)
        assert bucket.to_dict() == {"tokens": 3.0, "lastRefill": 1500}
        assert TokenBucket.from_dict({"tokens": 3, "lastRefill": 1500}) == bucket

    def test_copy_is_independent(self):
        bucket = TokenBucket(tokens=3.0, last_refill=0)
        probe = bucket.copy()
        probe.tokens = 0
        assert bucket.tokens == 3.0


class TestRateLimitResult:
    """Tests for RateLimitResult dataclass."""

    def test_allowed_dict_omits_retry_after(self):
        result = RateLimitResult(allowed=True, limit=10, remaining=9, reset_at=2000)
        assert result.to_dict() == {
            "allowed": True,
            "limit": 10,
            "remaining": 9,
            "resetAt": 2000,
        }

    def test_denied_headers(self):
        result = RateLimitResult(
            allowed=False, limit=10, remaining=0, reset_at=1500, retry_after=2
        )
        assert result.to_dict()["retryAfter"] == 2
        assert result.headers() == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": "2",
            "Retry-After": "2",
        }

    def test_exceeded_error_response(self):
        result = RateLimitResult(
            allowed=False, limit=10, remaining=0, reset_at=1500, retry_after=2
        )
        error = RateLimitExceededError(result)
        assert error.status_code == 429
        assert error.to_response() == {
            "error": "rate_limit_exceeded",
            "message": "Rate limit exceeded. Please try again later.",
            "retryAfter": 2,
            "resetAt": 1500,
        }
