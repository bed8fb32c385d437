"""Scheduler control endpoints.

- GET  /api/v1/crawl/scheduler — scheduler, rate limiter and schedule status
- POST /api/v1/crawl/scheduler/start — start dispatching (and recurring plans)
- POST /api/v1/crawl/scheduler/stop — stop dispatching; running tasks finish
- PUT  /api/v1/crawl/scheduler/concurrency — change the concurrency bound
- POST /api/v1/crawl/scheduler/trigger — manual high-priority crawl
- PUT  /api/v1/crawl/scheduler/schedules/{platform} — update a recurring plan
- GET  /api/v1/crawl/errors — error statistics and recent errors
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query

from trendcrawl.models.requests import (
    ConcurrencyRequest,
    ManualCrawlRequest,
    ScheduleUpdateRequest,
)
from trendcrawl.models.responses import ApiResponse

logger = logging.getLogger(__name__)


def create_scheduler_router(
    *,
    scheduler: Any,
    planner: Any = None,
    rate_limiter: Any = None,
    error_classifier: Any = None,
) -> APIRouter:
    """Factory that creates the scheduler control router."""

    control_router = APIRouter(prefix="/api/v1/crawl", tags=["scheduler"])

    def _status() -> dict:
        return {
            "is_running": scheduler.is_running,
            "queue": scheduler.get_stats(),
            "rate_limiter": rate_limiter.get_stats() if rate_limiter else {},
            "schedules": planner.get_status()["schedules"] if planner else [],
        }

    @control_router.get("/scheduler")
    async def get_status() -> dict:
        return ApiResponse(success=True, data=_status()).model_dump()

    @control_router.post("/scheduler/start")
    async def start() -> dict:
        scheduler.start()
        if planner:
            planner.start()
        return ApiResponse(success=True, data=_status()).model_dump()

    @control_router.post("/scheduler/stop")
    async def stop() -> dict:
        """Stop dispatching. Tasks already running are allowed to complete."""
        scheduler.stop()
        if planner:
            await planner.stop()
        return ApiResponse(success=True, data=_status()).model_dump()

    @control_router.put("/scheduler/concurrency")
    async def set_concurrency(body: ConcurrencyRequest) -> dict:
        scheduler.set_max_concurrent(body.max_concurrent)
        return ApiResponse(
            success=True,
            data={"max_concurrent": scheduler.max_concurrent},
        ).model_dump()

    @control_router.post("/scheduler/trigger")
    async def trigger(body: ManualCrawlRequest) -> dict:
        """Queue a HIGH-priority crawl for a platform outside its schedule."""
        task_id = planner.trigger_manual_crawl(body.platform, body.category, body.keywords)
        return ApiResponse(
            success=True,
            data={"task_id": task_id, "platform": body.platform},
        ).model_dump()

    @control_router.put("/scheduler/schedules/{platform}")
    async def update_schedule(platform: str, body: ScheduleUpdateRequest) -> dict:
        schedule = planner.update_schedule(platform, **body.model_dump(exclude_none=True))
        return ApiResponse(success=True, data=schedule.model_dump()).model_dump()

    @control_router.get("/errors")
    async def get_errors(limit: int = Query(default=10, ge=1, le=100)) -> dict:
        """Classified error statistics over the retained history."""
        return ApiResponse(
            success=True,
            data={
                "stats": error_classifier.get_stats(),
                "recent": [error.to_dict() for error in error_classifier.recent_errors(limit)],
            },
        ).model_dump()

    return control_router
