"""Crawl log notifications for terminal task outcomes.

After a task completes or fails permanently, the scheduler hands a
``CrawlLogEntry`` to a ``CrawlLogSink``. Delivery is fire-and-forget: sink
failures are logged and never affect task state.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_SUMMARY_TYPES = (str, int, float, bool)


def summarize_parameters(parameters: dict[str, Any]) -> dict[str, Any]:
    """Scalar (and short list-of-scalar) parameters only, for logging."""
    summary: dict[str, Any] = {}
    for key, value in parameters.items():
        if value is None or isinstance(value, _SUMMARY_TYPES):
            summary[key] = value
        elif isinstance(value, (list, tuple)) and all(
            isinstance(v, _SUMMARY_TYPES) for v in value
        ):
            summary[key] = list(value)[:10]
    return summary


@dataclass
class CrawlLogEntry:
    """Terminal outcome of one crawl task."""

    task_id: str
    parameters: dict[str, Any]
    success: bool
    item_count: int
    error_message: str | None
    duration_ms: float
    retry_count: int = 0
    error_kind: str | None = None
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["finished_at"] = self.finished_at.isoformat()
        return payload


class CrawlLogSink(Protocol):
    """Receiver of terminal crawl outcomes."""

    async def record(self, entry: CrawlLogEntry) -> None: ...


class LoggingCrawlLog:
    """Writes each crawl outcome as a structured log line."""

    def __init__(self, logger_name: str = "trendcrawl.crawl_log") -> None:
        self._logger = logging.getLogger(logger_name)

    async def record(self, entry: CrawlLogEntry) -> None:
        extra = {
            "task_id": entry.task_id,
            "platform": entry.parameters.get("platform"),
            "duration_ms": round(entry.duration_ms, 2),
            "retry_count": entry.retry_count,
        }
        if entry.success:
            self._logger.info(
                "Crawl task %s completed: %d items",
                entry.task_id,
                entry.item_count,
                extra={**extra, "items_collected": entry.item_count},
            )
        else:
            self._logger.error(
                "Crawl task %s failed: %s",
                entry.task_id,
                entry.error_message,
                extra={
                    **extra,
                    "error_kind": entry.error_kind,
                    "error_reason": entry.error_message,
                },
            )


class CompositeCrawlLog:
    """Fans an entry out to several sinks; one failing sink does not stop the rest."""

    def __init__(self, sinks: list[CrawlLogSink]) -> None:
        self._sinks = list(sinks)

    async def record(self, entry: CrawlLogEntry) -> None:
        for sink in self._sinks:
            try:
                await sink.record(entry)
            except Exception:
                logger.exception("Crawl log sink %r failed for task %s", sink, entry.task_id)
