"""Recurring per-platform crawl planning.

For every enabled ``ScheduleConfig`` a background asyncio task enqueues one
NORMAL-priority crawl task per category immediately, then again every
``interval_minutes``. The planner only submits work; dispatch stays with the
``CrawlScheduler``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError as SchemaValidationError

from trendcrawl.config.schedules import ScheduleConfig
from trendcrawl.middleware.error_handler import ScheduleNotFoundError, ValidationError
from trendcrawl.models.tasks import TaskPriority
from trendcrawl.services.scheduler import CrawlScheduler

logger = logging.getLogger(__name__)


class RecurringCrawlPlanner:
    """Enqueues crawl tasks for each platform on a fixed interval.

    Parameters
    ----------
    scheduler:
        Receives the generated tasks.
    schedules:
        Platform name → schedule, usually from ``load_crawl_schedules``.
    """

    def __init__(
        self,
        *,
        scheduler: CrawlScheduler,
        schedules: dict[str, ScheduleConfig] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._schedules: dict[str, ScheduleConfig] = dict(schedules or {})
        self._loops: dict[str, asyncio.Task[None]] = {}
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        """Start one planning loop per enabled schedule."""
        if self._is_running:
            logger.info("Recurring planner is already running")
            return
        self._is_running = True
        for platform, schedule in self._schedules.items():
            if schedule.enabled:
                self._start_loop(platform)
        logger.info("Recurring planner started (%d schedules)", len(self._loops))

    async def stop(self) -> None:
        """Cancel all planning loops."""
        self._is_running = False
        loops = list(self._loops.values())
        self._loops.clear()
        for loop_task in loops:
            loop_task.cancel()
        if loops:
            await asyncio.gather(*loops, return_exceptions=True)
        logger.info("Recurring planner stopped")

    def _start_loop(self, platform: str) -> None:
        self._cancel_loop(platform)
        self._loops[platform] = asyncio.get_running_loop().create_task(
            self._plan_loop(platform), name=f"recurring-crawl-{platform}"
        )

    def _cancel_loop(self, platform: str) -> None:
        existing = self._loops.pop(platform, None)
        if existing is not None:
            existing.cancel()

    async def _plan_loop(self, platform: str) -> None:
        while True:
            schedule = self._schedules[platform]
            self.enqueue_schedule(schedule)
            await asyncio.sleep(schedule.interval_minutes * 60)

    def enqueue_schedule(self, schedule: ScheduleConfig) -> list[str]:
        """Submit one task per category of *schedule*. Returns the task IDs."""
        task_ids = []
        for category in schedule.categories:
            parameters: dict[str, Any] = {"platform": schedule.platform, "category": category}
            if schedule.keywords:
                parameters["keywords"] = list(schedule.keywords)
            if schedule.max_pages is not None:
                parameters["max_pages"] = schedule.max_pages
            task_id = self._scheduler.add_task(parameters, priority=TaskPriority.NORMAL)
            task_ids.append(task_id)
            logger.info(
                "Created crawl task %s for %s/%s",
                task_id,
                schedule.platform,
                category,
                extra={"task_id": task_id, "platform": schedule.platform},
            )
        return task_ids

    def update_schedule(self, platform: str, **changes: Any) -> ScheduleConfig:
        """Merge *changes* into a platform's schedule and re-plan it.

        Raises
        ------
        ScheduleNotFoundError
            If no schedule exists for *platform*.
        ValidationError
            If the merged schedule is invalid (HTTP 422).
        """
        existing = self._schedules.get(platform)
        if existing is None:
            raise ScheduleNotFoundError(f"No crawl schedule for platform '{platform}'")

        updates = {key: value for key, value in changes.items() if value is not None}
        updates.pop("platform", None)
        try:
            updated = ScheduleConfig.model_validate({**existing.model_dump(), **updates})
        except SchemaValidationError as exc:
            raise ValidationError(
                f"Invalid schedule for platform '{platform}'",
                fields=[".".join(str(loc) for loc in err["loc"]) for err in exc.errors()],
            ) from exc
        self._schedules[platform] = updated

        self._cancel_loop(platform)
        if self._is_running and updated.enabled:
            self._start_loop(platform)

        logger.info(
            "Schedule updated for %s (enabled=%s, interval=%dmin)",
            platform,
            updated.enabled,
            updated.interval_minutes,
        )
        return updated

    def trigger_manual_crawl(
        self,
        platform: str,
        category: str | None = None,
        keywords: list[str] | None = None,
    ) -> str:
        """Submit a single HIGH-priority crawl task outside the schedule."""
        parameters: dict[str, Any] = {"platform": platform}
        if category:
            parameters["category"] = category
        if keywords:
            parameters["keywords"] = list(keywords)

        task_id = self._scheduler.add_task(parameters, priority=TaskPriority.HIGH)
        logger.info(
            "Manual crawl task %s created for %s",
            task_id,
            platform,
            extra={"task_id": task_id, "platform": platform},
        )
        return task_id

    def get_schedule(self, platform: str) -> ScheduleConfig | None:
        return self._schedules.get(platform)

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self._is_running,
            "schedules": [
                {
                    "platform": platform,
                    "enabled": schedule.enabled,
                    "interval_minutes": schedule.interval_minutes,
                    "categories": len(schedule.categories),
                    "active": platform in self._loops,
                }
                for platform, schedule in self._schedules.items()
            ],
            "queue": self._scheduler.get_stats(),
        }
