"""Crawl error classification and retry backoff.

Maps raw crawl failures (exceptions or error strings) onto a small taxonomy
by matching known markers in the error text, and records each classified
error in a bounded history used for aggregate statistics.

Classification order (first match wins):
- network    → connection refused / DNS failure / reset      (retryable)
- timeout    → explicit timeout markers                      (retryable)
- parse      → selector / parse / missing-value markers      (not retryable)
- rate_limit → HTTP 429 / "too many requests"                (retryable)
- blocked    → HTTP 403 / captcha / access denied            (not retryable)
- unknown    → anything else                                 (retryable)
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY_MS = 30000


class ErrorKind(str, Enum):
    """Crawl error categories."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    PARSE = "parse"
    RATE_LIMIT = "rate_limit"
    BLOCKED = "blocked"
    UNKNOWN = "unknown"


# Lower-case markers per kind, checked in this order.
_MARKERS: tuple[tuple[ErrorKind, tuple[str, ...], bool], ...] = (
    (
        ErrorKind.NETWORK,
        (
            "econnrefused",
            "enotfound",
            "etimedout",
            "econnreset",
            "net::err",
            "connection refused",
            "connection reset",
            "connecterror",
            "name or service not known",
            "nodename nor servname",
            "temporary failure in name resolution",
            "network is unreachable",
        ),
        True,
    ),
    (ErrorKind.TIMEOUT, ("timeout", "timed out"), True),
    (ErrorKind.PARSE, ("parse", "selector", "undefined", "nonetype"), False),
    (ErrorKind.RATE_LIMIT, ("429", "rate limit", "too many requests"), True),
    (ErrorKind.BLOCKED, ("403", "blocked", "captcha", "access denied", "forbidden"), False),
)


@dataclass
class ClassifiedError:
    """A crawl failure after classification."""

    kind: ErrorKind
    message: str
    retryable: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source_url: str | None = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
            "source_url": self.source_url,
        }


def retry_delay(attempt: int, base_delay_ms: int = 1000) -> int:
    """Exponential backoff in milliseconds: ``base * 2**attempt``, capped at 30s."""
    if attempt < 0:
        attempt = 0
    # Avoid building huge integers for large attempt counts
    if attempt >= 32:
        return MAX_RETRY_DELAY_MS if base_delay_ms > 0 else 0
    return min(base_delay_ms * (2**attempt), MAX_RETRY_DELAY_MS)


def _error_text(error: BaseException | str) -> tuple[str, str]:
    """Return (message, haystack) for an error.

    For exceptions the class name joins the haystack so that messageless
    errors such as ``httpx.ReadTimeout()`` still classify.
    """
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
        return message, f"{type(error).__name__} {message}".lower()
    message = str(error)
    return message, message.lower()


class ErrorClassifier:
    """Classifies crawl errors and keeps a bounded history for statistics.

    Args:
        history_size: Maximum number of classified errors retained; the
            oldest entry is evicted once the buffer is full.
    """

    def __init__(self, history_size: int = 100) -> None:
        self._history: deque[ClassifiedError] = deque(maxlen=max(1, history_size))

    def classify(
        self, error: BaseException | str, url: str | None = None
    ) -> ClassifiedError:
        """Classify *error*, record it in the history, and log it."""
        message, haystack = _error_text(error)

        kind, retryable = ErrorKind.UNKNOWN, True
        for candidate, markers, candidate_retryable in _MARKERS:
            if any(marker in haystack for marker in markers):
                kind, retryable = candidate, candidate_retryable
                break

        return self.record(
            ClassifiedError(kind=kind, message=message, retryable=retryable, source_url=url)
        )

    def record(self, classified: ClassifiedError) -> ClassifiedError:
        """Add an already classified error to the history and log it."""
        self._history.append(classified)

        logger.log(
            logging.WARNING if classified.retryable else logging.ERROR,
            "[%s] %s (%s)",
            classified.kind.value,
            classified.message,
            "retryable" if classified.retryable else "not retryable",
            extra={"error_kind": classified.kind.value, "target_url": classified.source_url},
        )
        return classified

    def get_stats(self) -> dict:
        """Aggregate counts over the retained history."""
        by_kind: dict[str, int] = {}
        retryable = 0
        for entry in self._history:
            by_kind[entry.kind.value] = by_kind.get(entry.kind.value, 0) + 1
            if entry.retryable:
                retryable += 1

        return {
            "total": len(self._history),
            "by_kind": by_kind,
            "retryable": retryable,
            "non_retryable": len(self._history) - retryable,
        }

    def recent_errors(self, count: int = 10) -> list[ClassifiedError]:
        """The *count* most recent classified errors, oldest first."""
        if count <= 0:
            return []
        return list(self._history)[-count:]

    def clear(self) -> None:
        self._history.clear()

    @staticmethod
    def should_retry(error: ClassifiedError, attempt: int, max_attempts: int) -> bool:
        """Retry only retryable errors while attempts remain."""
        if attempt >= max_attempts:
            return False
        return error.retryable

    @staticmethod
    def retry_delay(attempt: int, base_delay_ms: int = 1000) -> int:
        return retry_delay(attempt, base_delay_ms)
