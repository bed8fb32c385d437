"""Global error hierarchy and FastAPI exception handlers.

All crawl-engine errors extend CrawlEngineError. The FastAPI exception handlers
catch these errors (plus Pydantic's RequestValidationError and unhandled exceptions)
and return a consistent JSON envelope: { success, data, error, meta }.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class CrawlEngineError(Exception):
    """Base error for all crawl-engine errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(CrawlEngineError):
    """Pydantic / payload validation failures — includes field-level details."""

    status_code = 422
    message = "Validation error"


class AuthenticationError(CrawlEngineError):
    """Invalid or missing service key."""

    status_code = 401
    message = "Invalid or missing service key"


class InvalidTaskError(CrawlEngineError):
    """Task submission rejected (bad priority or retry budget)."""

    status_code = 422
    message = "Invalid task"


class TaskNotFoundError(CrawlEngineError):
    """Task not found."""

    status_code = 404
    message = "Task not found"


class TaskRunningError(CrawlEngineError):
    """Task is running and cannot be cancelled."""

    status_code = 409
    message = "Task is running and cannot be cancelled"


class ScheduleNotFoundError(CrawlEngineError):
    """No recurring schedule configured for the platform."""

    status_code = 404
    message = "Schedule not found"


class NoActiveProxiesError(CrawlEngineError):
    """Proxies were configured but none are active any more."""

    status_code = 503
    message = "No active proxies available"


class CrawlAttemptError(CrawlEngineError):
    """A crawl request failed after exhausting its attempts.

    Carries the ``ClassifiedError`` of the final attempt so callers do not
    classify (and record) the same failure twice.
    """

    status_code = 502
    message = "Crawl request failed"

    def __init__(self, message: str | None = None, *, classified: object | None = None) -> None:
        super().__init__(message)
        self.classified = classified


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _envelope(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON envelope error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "meta": meta,
        },
    )


async def _engine_error_handler(_request: Request, exc: CrawlEngineError) -> JSONResponse:
    """Handle CrawlEngineError subclasses."""
    meta = exc.details if exc.details else None
    return _envelope(exc.status_code, exc.message, meta=meta)


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI / Pydantic RequestValidationError (422)."""
    field_errors = [
        {
            "field": " -> ".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return _envelope(
        status_code=422,
        error="Validation error",
        meta={"fields": field_errors},
    )


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log traceback, return generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _envelope(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(CrawlEngineError, _engine_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
