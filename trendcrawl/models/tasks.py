"""In-memory state models for scheduled crawl tasks and executor results."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskPriority(IntEnum):
    """Dispatch preference. Higher values are dispatched first."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    URGENT = 3

    @classmethod
    def parse(cls, value: TaskPriority | int | str) -> TaskPriority:
        """Accept an enum member, its integer value, or its name (any case).

        Raises ``ValueError`` for anything else.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown task priority: {value!r}") from None
        if isinstance(value, bool):
            raise ValueError(f"Unknown task priority: {value!r}")
        return cls(value)


class TaskStatus(str, Enum):
    """Lifecycle status of a scheduled crawl task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CrawlResult:
    """Outcome of a single executor invocation."""

    success: bool
    data: Any = None
    error: str | None = None
    item_count: int = 0


@dataclass
class CrawlTask:
    """In-memory state for a single scheduled crawl task."""

    id: str
    priority: TaskPriority
    parameters: dict[str, Any]
    sequence: int  # insertion order, FIFO tie-break within a priority
    max_retries: int = 3
    scheduled_at: datetime | None = None
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = 0
    result: CrawlResult | None = None
    last_error: str | None = None
    last_error_kind: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def is_admissible(self, now: datetime) -> bool:
        """Pending and not scheduled for a later instant."""
        if self.status != TaskStatus.PENDING:
            return False
        return self.scheduled_at is None or self.scheduled_at <= now

    def snapshot(self) -> CrawlTask:
        """Copy of the scheduler-owned state handed to callers.

        Parameter values and result data are opaque and shared, not copied.
        """
        return replace(
            self,
            parameters=dict(self.parameters),
            result=copy.copy(self.result),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation for API responses."""
        return {
            "task_id": self.id,
            "priority": self.priority.name.lower(),
            "parameters": self.parameters,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "result": (
                {"data": self.result.data, "item_count": self.result.item_count}
                if self.result is not None
                else None
            ),
            "last_error": self.last_error,
            "last_error_kind": self.last_error_kind,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
