"""Tests for settings and limiter construction."""

import pytest
from pydantic import ValidationError
from unittest.mock import AsyncMock

from bucketgate.app.core.clock import ManualClock
from bucketgate.app.core.config import Settings
from bucketgate.app.exceptions import ConfigurationError
from bucketgate.app.services.rate_limit import (
    DistributedTokenBucketLimiter,
    RedisKeyValueStore,
    SlidingWindowLimiter,
    TokenBucketLimiter,
    create_limiter,
)


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.rate_limit_algorithm == "token_bucket"
        assert settings.rate_limit_fail_closed is False
        assert settings.housekeeping_idle_seconds == 300

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ALGORITHM", "sliding_window")
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "25")
        monkeypatch.setenv("RATE_LIMIT_FAIL_CLOSED", "true")
        monkeypatch.setenv("LOG_FORMAT", "JSON")

        settings = Settings(_env_file=None)

        assert settings.rate_limit_algorithm == "sliding_window"
        assert settings.rate_limit_max_requests == 25
        assert settings.rate_limit_fail_closed is True
        assert settings.log_format == "json"

    @pytest.mark.parametrize(
        "env, value",
        [
            ("RATE_LIMIT_MAX_TOKENS", "0"),
            ("RATE_LIMIT_REFILL_INTERVAL_MS", "-1"),
            ("RATE_LIMIT_ALGORITHM", "leaky_bucket"),
            ("HOUSEKEEPING_INTERVAL_SECONDS", "0"),
            ("LOG_FORMAT", "xml"),
        ],
    )
    def test_rejects_invalid_values(self, monkeypatch, env, value):
        monkeypatch.setenv(env, value)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestCreateLimiter:
    """Tests for backend selection logic."""

    def test_in_memory_token_bucket_by_default(self):
        settings = Settings(
            _env_file=None,
            rate_limit_max_tokens=7,
            rate_limit_refill_rate=2,
            rate_limit_refill_interval_ms=500,
        )
        limiter = create_limiter(settings=settings)

        assert type(limiter) is TokenBucketLimiter
        assert limiter.config.max_tokens == 7
        assert limiter.config.refill_rate == 2
        assert limiter.config.refill_interval == 500

    def test_sliding_window(self):
        settings = Settings(
            _env_file=None,
            rate_limit_window_size_ms=30000,
            rate_limit_max_requests=3,
        )
        limiter = create_limiter(algorithm="sliding_window", settings=settings)

        assert isinstance(limiter, SlidingWindowLimiter)
        assert limiter.config.window_size == 30000
        assert limiter.config.max_requests == 3

    def test_sliding_window_ignores_redis(self):
        settings = Settings(_env_file=None, rate_limit_algorithm="sliding_window")
        limiter = create_limiter(use_redis=True, settings=settings)
        assert isinstance(limiter, SlidingWindowLimiter)

    def test_uses_redis_when_enabled(self):
        settings = Settings(
            _env_file=None,
            redis_enabled=True,
            rate_limit_fail_closed=True,
            rate_limit_key_prefix="rl:",
        )
        limiter = create_limiter(settings=settings, redis_client=AsyncMock())

        assert isinstance(limiter, DistributedTokenBucketLimiter)
        assert isinstance(limiter.kv_store, RedisKeyValueStore)
        assert limiter.fail_closed is True
        assert limiter.store.make_key("user") == "rl:user"

    def test_use_redis_overrides_settings(self):
        settings = Settings(_env_file=None, redis_enabled=True)
        limiter = create_limiter(use_redis=False, settings=settings)
        assert type(limiter) is TokenBucketLimiter

    def test_housekeeping_settings_applied(self):
        settings = Settings(
            _env_file=None,
            housekeeping_interval_seconds=5,
            housekeeping_idle_seconds=900,
        )
        limiter = create_limiter(settings=settings)
        assert limiter.housekeeper.idle_ms == 900_000

    def test_unknown_algorithm(self):
        with pytest.raises(ConfigurationError):
            create_limiter(algorithm="fixed_window", settings=Settings(_env_file=None))

    @pytest.mark.asyncio
    async def test_injected_clock_used(self):
        clock = ManualClock(start_ms=5000)
        limiter = create_limiter(settings=Settings(_env_file=None), clock=clock)
        result = await limiter.limit("user")
        assert result.reset_at == 6000
