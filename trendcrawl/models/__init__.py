"""Public models for the crawl engine."""

from trendcrawl.models.requests import (
    BatchCreateTasksRequest,
    ConcurrencyRequest,
    CreateTaskRequest,
    ManualCrawlRequest,
    ScheduleUpdateRequest,
)
from trendcrawl.models.responses import ApiResponse
from trendcrawl.models.tasks import CrawlResult, CrawlTask, TaskPriority, TaskStatus

__all__ = [
    "ApiResponse",
    "BatchCreateTasksRequest",
    "ConcurrencyRequest",
    "CrawlResult",
    "CrawlTask",
    "CreateTaskRequest",
    "ManualCrawlRequest",
    "ScheduleUpdateRequest",
    "TaskPriority",
    "TaskStatus",
]
