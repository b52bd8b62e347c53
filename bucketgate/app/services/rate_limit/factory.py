"""Build a limiter from settings.

Selects the algorithm and, for the token bucket, the Redis backend when
Redis is enabled.
"""

from typing import Any, Optional, Union

from bucketgate.app.core.clock import Clock
from bucketgate.app.core.config import Settings, settings as default_settings
from bucketgate.app.core.logging import get_logger
from bucketgate.app.exceptions import ConfigurationError
from bucketgate.app.services.rate_limit.kv_store import RedisKeyValueStore
from bucketgate.app.services.rate_limit.models import RateLimitConfig, SlidingWindowConfig
from bucketgate.app.services.rate_limit.sliding_window import SlidingWindowLimiter
from bucketgate.app.services.rate_limit.token_bucket import (
    DistributedTokenBucketLimiter,
    TokenBucketLimiter,
)

logger = get_logger(__name__)

Limiter = Union[TokenBucketLimiter, SlidingWindowLimiter]


def create_limiter(
    algorithm: Optional[str] = None,
    use_redis: Optional[bool] = None,
    settings: Optional[Settings] = None,
    redis_client: Optional[Any] = None,
    clock: Optional[Clock] = None,
) -> Limiter:
    """Create a limiter with the appropriate backend.

    Args:
        algorithm: token_bucket or sliding_window (None = settings.rate_limit_algorithm)
        use_redis: Force Redis usage (None = auto-detect from settings)
        settings: Settings to read from (defaults to the global settings)
        redis_client: Optional Redis client for the distributed backend
        clock: Time source passed to the limiter

    Returns:
        A TokenBucketLimiter, DistributedTokenBucketLimiter or SlidingWindowLimiter

    Raises:
        ConfigurationError: If the algorithm is unknown
    """
    cfg = settings or default_settings
    algorithm = algorithm or cfg.rate_limit_algorithm
    should_use_redis = use_redis if use_redis is not None else cfg.redis_enabled
    idle_ms = cfg.housekeeping_idle_seconds * 1000

    if algorithm == SlidingWindowLimiter.ALGORITHM:
        if should_use_redis:
            logger.warning("Sliding window has no distributed backend. Using in-memory.")
        limiter: Limiter = SlidingWindowLimiter(
            SlidingWindowConfig(
                window_size=cfg.rate_limit_window_size_ms,
                max_requests=cfg.rate_limit_max_requests,
            ),
            clock=clock,
            housekeeping_interval=cfg.housekeeping_interval_seconds,
            idle_ms=idle_ms,
        )
        logger.debug("Using in-memory sliding window rate limiter")
        return limiter

    if algorithm != TokenBucketLimiter.ALGORITHM:
        raise ConfigurationError(
            "rate_limit_algorithm",
            algorithm,
            f"Unknown rate limit algorithm: {algorithm!r}",
        )

    config = RateLimitConfig(
        max_tokens=cfg.rate_limit_max_tokens,
        refill_rate=cfg.rate_limit_refill_rate,
        refill_interval=cfg.rate_limit_refill_interval_ms,
    )
    if should_use_redis:
        limiter = DistributedTokenBucketLimiter(
            config,
            RedisKeyValueStore(redis_client=redis_client, redis_url=cfg.redis_url),
            clock=clock,
            fail_closed=cfg.rate_limit_fail_closed,
            key_prefix=cfg.rate_limit_key_prefix,
        )
        logger.info("Using Redis rate limiter backend")
        return limiter

    limiter = TokenBucketLimiter(
        config,
        clock=clock,
        housekeeping_interval=cfg.housekeeping_interval_seconds,
        idle_ms=idle_ms,
    )
    logger.debug("Using in-memory token bucket rate limiter")
    return limiter
