"""Request ID middleware.

Generates (or propagates) a UUID request ID for every incoming request,
stores it in ``request.state.request_id`` and in a context variable that
``RequestIdLogFilter`` copies onto log records, and adds an ``X-Request-ID``
response header.
"""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

_current_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def current_request_id() -> str | None:
    """Return the request ID bound to the current context, if any."""
    return _current_request_id.get()


class RequestIdLogFilter(logging.Filter):
    """Attach the current request ID to every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = _current_request_id.get()
        return True


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that assigns a unique request ID to each request.

    If the incoming request already carries an ``X-Request-ID`` header the
    provided value is reused; otherwise a new UUID4 is generated.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = _current_request_id.set(request_id)
        try:
            response: Response = await call_next(request)
        finally:
            _current_request_id.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response
