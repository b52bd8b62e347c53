"""Custom exceptions for the rate limiter."""

from typing import Any, Dict, Optional


class RateLimiterError(Exception):
    """Base class for rate limiter exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Rate limiter error"):
        self.message = message
        super().__init__(message)


class ConfigurationError(RateLimiterError, ValueError):
    """Raised when a limiter is constructed with an invalid configuration.

    Raised at construction time; values are never clamped.
    """
    status_code = 500

    def __init__(self, field: str, value: Any, detail: Optional[str] = None):
        self.field = field
        self.value = value
        super().__init__(detail or f"{field} must be a positive integer, got {value!r}")


class StoreUnavailableError(RateLimiterError):
    """Raised by a key-value store when the backing service fails.

    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503

    def __init__(self, operation: str, detail: str = "Rate limit store unavailable"):
        self.operation = operation
        super().__init__(f"{detail} ({operation})")


class RateLimitExceededError(RateLimiterError):
    """Raised by callers that prefer exceptions over inspecting a denied result.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(self, result: Any, detail: str = "Rate limit exceeded. Please try again later."):
        self.result = result
        super().__init__(detail)

    def to_response(self) -> Dict[str, Any]:
        """Convert to API response body."""
        return {
            "error": "rate_limit_exceeded",
            "message": self.message,
            "retryAfter": self.result.retry_after,
            "resetAt": self.result.reset_at,
        }
