"""Middleware package for the rate limiter."""

from bucketgate.app.middleware.rate_limit import RateLimitMiddleware, rate_limit_lifespan

__all__ = [
    "RateLimitMiddleware",
    "rate_limit_lifespan",
]
