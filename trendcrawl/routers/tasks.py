"""Crawl task endpoints.

- POST   /api/v1/crawl/tasks — submit a crawl task
- POST   /api/v1/crawl/tasks/batch — submit up to 100 tasks at once
- GET    /api/v1/crawl/tasks — list tasks (optionally filtered by status)
- GET    /api/v1/crawl/tasks/{task_id} — get one task
- DELETE /api/v1/crawl/tasks/{task_id} — cancel a task that is not running
- POST   /api/v1/crawl/tasks/clear-completed — drop completed tasks
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from trendcrawl.middleware.error_handler import TaskNotFoundError, TaskRunningError
from trendcrawl.models.requests import BatchCreateTasksRequest, CreateTaskRequest
from trendcrawl.models.responses import ApiResponse
from trendcrawl.models.tasks import TaskStatus

logger = logging.getLogger(__name__)


def create_tasks_router(*, scheduler: Any) -> APIRouter:
    """Factory that creates the tasks router with injected dependencies.

    Parameters
    ----------
    scheduler:
        CrawlScheduler that owns every task.
    """
    tasks_router = APIRouter(prefix="/api/v1/crawl/tasks", tags=["tasks"])

    @tasks_router.post("")
    async def create_task(body: CreateTaskRequest) -> dict:
        """Submit a crawl task. Returns its ID and initial status."""
        task_id = scheduler.add_task(
            body.parameters,
            priority=body.priority,
            scheduled_at=body.scheduled_at,
            max_retries=body.max_retries,
        )
        task = scheduler.get_task(task_id)

        return ApiResponse(
            success=True,
            data={"task_id": task_id, "status": task.status.value if task else None},
        ).model_dump()

    @tasks_router.post("/batch")
    async def create_batch(body: BatchCreateTasksRequest) -> dict:
        """Submit several crawl tasks. Either all are accepted or none."""
        task_ids = scheduler.add_tasks(
            {
                "parameters": item.parameters,
                "priority": item.priority,
                "scheduled_at": item.scheduled_at,
                "max_retries": item.max_retries,
            }
            for item in body.tasks
        )

        return ApiResponse(
            success=True,
            data={"task_ids": task_ids, "count": len(task_ids)},
        ).model_dump()

    @tasks_router.get("")
    async def list_tasks(status: TaskStatus | None = None) -> dict:
        """List tasks in insertion order."""
        tasks = scheduler.list_tasks()
        if status is not None:
            tasks = [task for task in tasks if task.status == status]

        return ApiResponse(
            success=True,
            data={"tasks": [task.to_dict() for task in tasks], "count": len(tasks)},
        ).model_dump()

    # Registered before "/{task_id}" so the literal path wins
    @tasks_router.post("/clear-completed")
    async def clear_completed() -> dict:
        removed = scheduler.clear_completed()
        return ApiResponse(success=True, data={"removed": removed}).model_dump()

    @tasks_router.get("/{task_id}")
    async def get_task(task_id: str) -> dict:
        """Get task status, result and last error."""
        task = scheduler.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task '{task_id}' not found")

        return ApiResponse(success=True, data=task.to_dict()).model_dump()

    @tasks_router.delete("/{task_id}")
    async def cancel_task(task_id: str) -> dict:
        """Cancel a pending or finished task. Running tasks are refused."""
        if scheduler.cancel_task(task_id):
            return ApiResponse(
                success=True,
                data={"task_id": task_id, "cancelled": True},
            ).model_dump()

        if scheduler.get_task(task_id) is None:
            raise TaskNotFoundError(f"Task '{task_id}' not found")
        raise TaskRunningError(f"Task '{task_id}' is running and cannot be cancelled")

    return tasks_router
