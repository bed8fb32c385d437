"""Middleware package — error hierarchy, auth, and request ID."""

from trendcrawl.middleware.auth import ServiceKeyAuthMiddleware
from trendcrawl.middleware.error_handler import (
    AuthenticationError,
    CrawlAttemptError,
    CrawlEngineError,
    InvalidTaskError,
    NoActiveProxiesError,
    ScheduleNotFoundError,
    TaskNotFoundError,
    TaskRunningError,
    ValidationError,
    register_error_handlers,
)
from trendcrawl.middleware.request_id import RequestIdLogFilter, RequestIdMiddleware

__all__ = [
    "AuthenticationError",
    "CrawlAttemptError",
    "CrawlEngineError",
    "InvalidTaskError",
    "NoActiveProxiesError",
    "RequestIdLogFilter",
    "RequestIdMiddleware",
    "ScheduleNotFoundError",
    "ServiceKeyAuthMiddleware",
    "TaskNotFoundError",
    "TaskRunningError",
    "ValidationError",
    "register_error_handlers",
]
