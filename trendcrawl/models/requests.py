"""Pydantic request models for the crawl task and scheduler endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

from trendcrawl.models.tasks import TaskPriority


class CreateTaskRequest(BaseModel):
    """Request model for submitting a single crawl task."""

    parameters: dict[str, Any] = Field(..., min_length=1)
    priority: TaskPriority = TaskPriority.NORMAL
    scheduled_at: datetime | None = None
    max_retries: int | None = Field(default=None, ge=0)

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, value: Any) -> TaskPriority:
        return TaskPriority.parse(value)

    @field_validator("scheduled_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class BatchCreateTasksRequest(BaseModel):
    """Request model for a batch of crawl tasks (max 100)."""

    tasks: list[CreateTaskRequest] = Field(..., min_length=1, max_length=100)


class ConcurrencyRequest(BaseModel):
    """New concurrency bound; values below 1 are clamped to 1."""

    max_concurrent: int


class ManualCrawlRequest(BaseModel):
    """Manually trigger a high-priority crawl for a platform."""

    platform: str = Field(..., min_length=1)
    category: str | None = None
    keywords: list[str] | None = None


class ScheduleUpdateRequest(BaseModel):
    """Partial update of a recurring crawl schedule."""

    categories: list[str] | None = None
    interval_minutes: int | None = Field(default=None, ge=1)
    enabled: bool | None = None
    keywords: list[str] | None = None
    max_pages: int | None = Field(default=None, ge=1)
