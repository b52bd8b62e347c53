from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Rate limiter settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Algorithm selection
    rate_limit_algorithm: Literal["token_bucket", "sliding_window"] = "token_bucket"

    # Token bucket settings
    rate_limit_max_tokens: int = 10  # Bucket capacity
    rate_limit_refill_rate: int = 1  # Tokens credited per interval
    rate_limit_refill_interval_ms: int = 1000  # Refill cadence

    # Sliding window settings
    rate_limit_window_size_ms: int = 60000
    rate_limit_max_requests: int = 100

    rate_limit_fail_closed: bool = (
        False  # If True, deny requests when the store is unavailable
    )
    rate_limit_key_prefix: str = "ratelimit:"

    # Housekeeping settings (local limiters only)
    housekeeping_interval_seconds: float = 60.0
    housekeeping_idle_seconds: int = 300  # 5 minutes

    # Redis settings (optional)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator(
        "rate_limit_max_tokens",
        "rate_limit_refill_rate",
        "rate_limit_refill_interval_ms",
        "rate_limit_window_size_ms",
        "rate_limit_max_requests",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("housekeeping_interval_seconds")
    @classmethod
    def validate_housekeeping_interval(cls, v: float) -> float:
        """Validate housekeeping interval is positive."""
        if v <= 0:
            raise ValueError("housekeeping_interval_seconds must be positive")
        return v

    @field_validator("housekeeping_idle_seconds")
    @classmethod
    def validate_idle_seconds(cls, v: int) -> int:
        if v < 1:
            raise ValueError("housekeeping_idle_seconds must be at least 1")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
