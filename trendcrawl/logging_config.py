"""Structured JSON logging configuration.

Configures Python logging to emit JSON-formatted log entries with required
fields: request_id, level, timestamp. Task-specific fields are added
contextually (task_id, platform, error_kind, retry_count for failures;
duration_ms, items_collected for completions; proxy_used for egress).

SECURITY: Never logs service keys, webhook secrets, or proxy credentials.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

from trendcrawl.middleware.request_id import RequestIdLogFilter


# Patterns that should be redacted from log output
_SENSITIVE_PATTERNS = re.compile(
    r"(service.key|api.key|secret|password|token|credential|authorization)"
    r"[\s]*[=:]\s*\S+",
    re.IGNORECASE,
)

# user:pass@ embedded in proxy URLs
_URL_CREDENTIALS = re.compile(r"(?<=://)[^/\s:@]+:[^/\s@]+@")

_TASK_FIELDS = (
    "task_id",
    "platform",
    "error_kind",
    "retry_count",
    "duration_ms",
    "items_collected",
    "target_url",
)


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON with structured fields.

    Each entry contains at minimum: request_id, level, timestamp, message.
    Additional fields can be attached via the ``extra`` dict on log calls.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize(record.getMessage()),
            "request_id": getattr(record, "request_id", None),
        }

        for name in _TASK_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)

        if hasattr(record, "proxy_used"):
            entry["proxy_used"] = self._sanitize(str(getattr(record, "proxy_used")))
        if hasattr(record, "error_reason"):
            entry["error_reason"] = self._sanitize(
                str(getattr(record, "error_reason"))
            )

        # Exception info
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self._sanitize(
                self.formatException(record.exc_info)
            )

        return json.dumps(entry, default=str)

    @staticmethod
    def _sanitize(text: str) -> str:
        """Remove sensitive values from log text."""
        text = _URL_CREDENTIALS.sub("[REDACTED]@", text)
        return _SENSITIVE_PATTERNS.sub("[REDACTED]", text)


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger with JSON formatting.

    Parameters
    ----------
    level:
        Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdLogFilter())
    root.addHandler(handler)
