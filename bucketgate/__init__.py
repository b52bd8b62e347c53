"""bucketgate: token bucket and sliding window rate limiting."""
