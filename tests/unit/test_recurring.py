"""Unit tests for the recurring crawl planner."""

from __future__ import annotations

import asyncio

import pytest

from trendcrawl.config.schedules import ScheduleConfig
from trendcrawl.middleware.error_handler import ScheduleNotFoundError, ValidationError
from trendcrawl.models.tasks import CrawlResult, TaskPriority
from trendcrawl.services.recurring import RecurringCrawlPlanner
from trendcrawl.services.scheduler import CrawlScheduler


class _NoopExecutor:
    async def execute(self, parameters: dict) -> CrawlResult:
        return CrawlResult(success=True)


def _schedules() -> dict[str, ScheduleConfig]:
    return {
        "amazon": ScheduleConfig(
            platform="amazon",
            categories=["Electronics", "Home & Kitchen"],
            interval_minutes=60,
            keywords=["gadget"],
        ),
        "ebay": ScheduleConfig(platform="ebay", categories=["Toys"], enabled=False),
    }


def _planner() -> tuple[RecurringCrawlPlanner, CrawlScheduler]:
    scheduler = CrawlScheduler(executor=_NoopExecutor())
    return RecurringCrawlPlanner(scheduler=scheduler, schedules=_schedules()), scheduler


class TestEnqueue:
    def test_one_normal_task_per_category(self) -> None:
        planner, scheduler = _planner()
        ids = planner.enqueue_schedule(_schedules()["amazon"])

        tasks = scheduler.list_tasks()
        assert [t.id for t in tasks] == ids
        assert [t.parameters["category"] for t in tasks] == ["Electronics", "Home & Kitchen"]
        assert all(t.priority == TaskPriority.NORMAL for t in tasks)
        assert tasks[0].parameters == {
            "platform": "amazon",
            "category": "Electronics",
            "keywords": ["gadget"],
        }

    def test_manual_crawl_is_high_priority(self) -> None:
        planner, scheduler = _planner()
        task_id = planner.trigger_manual_crawl("aliexpress", "Toys", ["drone"])

        task = scheduler.get_task(task_id)
        assert task.priority == TaskPriority.HIGH
        assert task.parameters == {
            "platform": "aliexpress",
            "category": "Toys",
            "keywords": ["drone"],
        }


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_enqueues_enabled_schedules_immediately(self) -> None:
        planner, scheduler = _planner()
        planner.start()
        await asyncio.sleep(0.01)

        platforms = [t.parameters["platform"] for t in scheduler.list_tasks()]
        assert platforms == ["amazon", "amazon"]

        status = planner.get_status()
        assert status["is_running"] is True
        assert {s["platform"]: s["active"] for s in status["schedules"]} == {
            "amazon": True,
            "ebay": False,
        }

        await planner.stop()
        assert planner.get_status()["is_running"] is False
        assert all(not s["active"] for s in planner.get_status()["schedules"])

    @pytest.mark.asyncio
    async def test_enabling_a_schedule_starts_its_loop(self) -> None:
        planner, scheduler = _planner()
        planner.start()
        await asyncio.sleep(0.01)

        updated = planner.update_schedule("ebay", enabled=True, interval_minutes=15)
        await asyncio.sleep(0.01)

        assert updated.enabled is True
        assert updated.interval_minutes == 15
        assert "ebay" in [t.parameters["platform"] for t in scheduler.list_tasks()]

        await planner.stop()

    @pytest.mark.asyncio
    async def test_disabling_a_schedule_stops_its_loop(self) -> None:
        planner, _ = _planner()
        planner.start()
        await asyncio.sleep(0.01)

        planner.update_schedule("amazon", enabled=False)

        status = {s["platform"]: s for s in planner.get_status()["schedules"]}
        assert status["amazon"]["active"] is False
        assert status["amazon"]["enabled"] is False

        await planner.stop()

    def test_update_unknown_platform_raises(self) -> None:
        planner, _ = _planner()
        with pytest.raises(ScheduleNotFoundError):
            planner.update_schedule("walmart", enabled=True)

    def test_invalid_update_raises_and_keeps_schedule(self) -> None:
        planner, _ = _planner()

        with pytest.raises(ValidationError) as exc_info:
            planner.update_schedule("amazon", interval_minutes=0)

        assert exc_info.value.status_code == 422
        assert exc_info.value.details == {"fields": ["interval_minutes"]}
        assert planner.get_schedule("amazon").interval_minutes == 60

    def test_update_while_stopped_only_changes_config(self) -> None:
        planner, scheduler = _planner()
        planner.update_schedule("amazon", categories=["Books"])

        assert planner.get_schedule("amazon").categories == ["Books"]
        assert scheduler.list_tasks() == []
