"""Resilience components for the crawl engine."""

from trendcrawl.resilience.error_classifier import (
    ClassifiedError,
    ErrorClassifier,
    ErrorKind,
    retry_delay,
)
from trendcrawl.resilience.rate_limiter import SlidingWindowRateLimiter

__all__ = [
    "ClassifiedError",
    "ErrorClassifier",
    "ErrorKind",
    "SlidingWindowRateLimiter",
    "retry_delay",
]
