"""Services package for the rate limiter."""
