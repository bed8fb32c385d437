"""X-Service-Key authentication middleware.

Validates the X-Service-Key header against the configured service key from
CrawlerSettings. Health endpoints (/health, /readiness, /metrics) stay open so
a monitoring UI can poll them without credentials.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from trendcrawl.middleware.error_handler import AuthenticationError, _envelope

logger = logging.getLogger(__name__)

_PUBLIC_PATHS: frozenset[str] = frozenset({"/health", "/readiness", "/metrics"})


class ServiceKeyAuthMiddleware(BaseHTTPMiddleware):
    """Rejects non-public requests that lack a matching ``X-Service-Key``.

    The key is compared with ``hmac.compare_digest``.
    """

    def __init__(self, app, service_key: str) -> None:  # noqa: ANN001
        super().__init__(app)
        self._service_key = service_key

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in _PUBLIC_PATHS:
            return await call_next(request)

        provided_key = request.headers.get("x-service-key")
        if provided_key and hmac.compare_digest(provided_key, self._service_key):
            return await call_next(request)

        logger.warning(
            "Rejected request to %s: %s service key",
            request.url.path,
            "missing" if not provided_key else "invalid",
            extra={
                "event": "auth_failure",
                "source_ip": request.client.host if request.client else "unknown",
            },
        )
        return _envelope(
            status_code=AuthenticationError.status_code,
            error=AuthenticationError.message,
        )
