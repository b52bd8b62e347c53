"""Core utilities for the rate limiter."""

from bucketgate.app.core.clock import Clock, ManualClock, SystemClock
from bucketgate.app.core.config import Settings, settings
from bucketgate.app.core.logging import get_logger, setup_logging

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
]
