"""Priority crawl scheduler with a bounded number of concurrent executions.

Owns every ``CrawlTask``, selects the next admissible task by priority
(insertion order breaks ties), runs it through the ``CrawlExecutor`` and
applies the retry policy.

There is no background polling loop. A dispatch pass runs when:
- the scheduler is started
- a task is added while running
- a running task finishes (success, retry reschedule, or permanent failure)
- the concurrency bound changes

A pass fills free slots until ``max_concurrent`` tasks are running or no
task is admissible. All task-state mutation happens in synchronous code on
the event loop, so the loop is the single writer of the task map and the
running set.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from trendcrawl.middleware.error_handler import InvalidTaskError
from trendcrawl.models.tasks import CrawlResult, CrawlTask, TaskPriority, TaskStatus
from trendcrawl.resilience.error_classifier import ClassifiedError, ErrorClassifier
from trendcrawl.services.crawl_log import CrawlLogEntry, CrawlLogSink, summarize_parameters
from trendcrawl.services.executor import CrawlExecutor

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _source_url(parameters: dict[str, Any]) -> str | None:
    url = parameters.get("url") or parameters.get("target_url")
    return url if isinstance(url, str) else None


class CrawlScheduler:
    """In-memory priority scheduler for crawl tasks.

    Parameters
    ----------
    executor:
        Performs the crawl for a task's parameters.
    error_classifier:
        Classifies failures; a fresh classifier is created when omitted.
    crawl_log:
        Optional sink notified (fire-and-forget) of terminal outcomes.
    max_concurrent:
        Maximum number of tasks running at once (clamped to >= 1).
    default_max_retries:
        Retry budget for tasks submitted without an explicit one.
    retry_dispatch_delay_ms:
        Pause before the dispatch pass that follows a retry reschedule.
    respect_retryable:
        When True, a failure classified as not retryable fails the task
        immediately instead of consuming the retry budget.
    now:
        Wall-clock source used for ``scheduled_at`` admission.
    """

    def __init__(
        self,
        *,
        executor: CrawlExecutor,
        error_classifier: ErrorClassifier | None = None,
        crawl_log: CrawlLogSink | None = None,
        max_concurrent: int = 2,
        default_max_retries: int = 3,
        retry_dispatch_delay_ms: int = 1000,
        respect_retryable: bool = False,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._executor = executor
        self._classifier = error_classifier or ErrorClassifier()
        self._crawl_log = crawl_log
        self._max_concurrent = max(1, max_concurrent)
        self._default_max_retries = default_max_retries
        self._retry_delay = retry_dispatch_delay_ms / 1000.0
        self._respect_retryable = respect_retryable
        self._now = now

        # Insertion-ordered task map; sequence numbers make FIFO explicit
        self._tasks: dict[str, CrawlTask] = {}
        self._sequence = itertools.count()

        # IDs of tasks currently holding a concurrency slot
        self._running: set[str] = set()

        # Strong references to background asyncio tasks
        self._inflight: set[asyncio.Task[None]] = set()
        self._notifications: set[asyncio.Task[None]] = set()

        self._is_running = False

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def add_task(
        self,
        parameters: dict[str, Any],
        priority: TaskPriority | int | str = TaskPriority.NORMAL,
        scheduled_at: datetime | None = None,
        max_retries: int | None = None,
    ) -> str:
        """Enqueue a pending task and return its ID.

        Raises
        ------
        InvalidTaskError
            For an unknown priority, a negative retry budget, or
            non-dict parameters.
        """
        task = self._build_task(parameters, priority, scheduled_at, max_retries)
        self._insert(task)
        if self._is_running:
            self._dispatch()
        return task.id

    def add_tasks(self, entries: Iterable[dict[str, Any]]) -> list[str]:
        """Enqueue several tasks. All entries are validated before any is added.

        Each entry holds ``add_task`` keyword arguments.
        """
        tasks = [
            self._build_task(
                entry.get("parameters"),  # type: ignore[arg-type]
                entry.get("priority", TaskPriority.NORMAL),
                entry.get("scheduled_at"),
                entry.get("max_retries"),
            )
            for entry in entries
        ]
        for task in tasks:
            self._insert(task)
        if self._is_running and tasks:
            self._dispatch()
        return [task.id for task in tasks]

    def _build_task(
        self,
        parameters: dict[str, Any],
        priority: TaskPriority | int | str,
        scheduled_at: datetime | None,
        max_retries: int | None,
    ) -> CrawlTask:
        if not isinstance(parameters, dict):
            raise InvalidTaskError("Task parameters must be a mapping")

        try:
            resolved_priority = TaskPriority.parse(priority)
        except ValueError as exc:
            raise InvalidTaskError(str(exc)) from None

        retries = self._default_max_retries if max_retries is None else max_retries
        if retries < 0:
            raise InvalidTaskError(f"max_retries must be non-negative, got {retries}")

        if scheduled_at is not None and scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)

        return CrawlTask(
            id=f"task_{uuid4().hex}",
            priority=resolved_priority,
            parameters=dict(parameters),
            sequence=next(self._sequence),
            max_retries=retries,
            scheduled_at=scheduled_at,
        )

    def _insert(self, task: CrawlTask) -> None:
        self._tasks[task.id] = task
        logger.info(
            "Task added: %s (priority=%s)",
            task.id,
            task.priority.name,
            extra={"task_id": task.id, "platform": task.parameters.get("platform")},
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        """Begin dispatching. Must be called from within a running event loop."""
        if self._is_running:
            logger.info("Scheduler is already running")
            return
        self._is_running = True
        logger.info("Scheduler started (max_concurrent=%d)", self._max_concurrent)
        self._dispatch()

    def stop(self) -> None:
        """Stop dispatching new tasks. In-flight executions run to completion."""
        if not self._is_running:
            return
        self._is_running = False
        logger.info("Scheduler stopped (%d tasks still running)", len(self._running))

    async def drain(self, timeout: float = 30.0) -> None:
        """Stop, then wait for in-flight executions and log notifications.

        Executions still running after *timeout* seconds are cancelled and
        their tasks return to pending.
        """
        self.stop()

        if self._inflight:
            logger.info("Draining %d running crawl tasks (timeout=%.1fs)…", len(self._inflight), timeout)
            _done, pending = await asyncio.wait(set(self._inflight), timeout=timeout)
            for aio_task in pending:
                aio_task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if self._notifications:
            await asyncio.wait(set(self._notifications), timeout=timeout)

        logger.info("Scheduler drained")

    def set_max_concurrent(self, max_concurrent: int) -> None:
        """Change the concurrency bound (clamped to >= 1)."""
        self._max_concurrent = max(1, max_concurrent)
        logger.info("Max concurrent tasks set to: %d", self._max_concurrent)
        if self._is_running:
            self._dispatch()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    # ------------------------------------------------------------------
    # Queries and removal
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> CrawlTask | None:
        task = self._tasks.get(task_id)
        return task.snapshot() if task is not None else None

    def list_tasks(self) -> list[CrawlTask]:
        return [task.snapshot() for task in self._tasks.values()]

    def cancel_task(self, task_id: str) -> bool:
        """Remove a pending or finished task. Running tasks are refused."""
        task = self._tasks.get(task_id)
        if task is None:
            return False

        if task.status == TaskStatus.RUNNING:
            logger.info("Cannot cancel running task %s", task_id)
            return False

        del self._tasks[task_id]
        logger.info("Task cancelled: %s", task_id)
        return True

    def clear_completed(self) -> int:
        completed = [
            task_id
            for task_id, task in self._tasks.items()
            if task.status == TaskStatus.COMPLETED
        ]
        for task_id in completed:
            del self._tasks[task_id]
        logger.info("Cleared %d completed tasks", len(completed))
        return len(completed)

    def get_stats(self) -> dict[str, Any]:
        counts = {status: 0 for status in TaskStatus}
        for task in self._tasks.values():
            counts[task.status] += 1
        return {
            "total": len(self._tasks),
            "pending": counts[TaskStatus.PENDING],
            "running": counts[TaskStatus.RUNNING],
            "completed": counts[TaskStatus.COMPLETED],
            "failed": counts[TaskStatus.FAILED],
            "max_concurrent": self._max_concurrent,
            "is_running": self._is_running,
        }

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _select_next(self) -> CrawlTask | None:
        """Highest-priority admissible task; earliest inserted among equals."""
        now = self._now()
        best: CrawlTask | None = None
        for task in self._tasks.values():
            if not task.is_admissible(now):
                continue
            if best is None or task.priority > best.priority:
                best = task
        return best

    def _dispatch(self) -> None:
        while self._is_running and len(self._running) < self._max_concurrent:
            task = self._select_next()
            if task is None:
                if not self._running:
                    logger.debug("No admissible tasks; scheduler idle")
                return
            self._launch(task)

    def _launch(self, task: CrawlTask) -> None:
        task.status = TaskStatus.RUNNING
        task.started_at = self._now()
        self._running.add(task.id)

        logger.info(
            "Executing task %s (attempt %d/%d)",
            task.id,
            task.retry_count + 1,
            task.max_retries + 1,
            extra={"task_id": task.id, "platform": task.parameters.get("platform")},
        )

        aio_task = asyncio.get_running_loop().create_task(
            self._run(task), name=f"crawl-task-{task.id}"
        )
        self._inflight.add(aio_task)
        aio_task.add_done_callback(self._inflight.discard)

    async def _run(self, task: CrawlTask) -> None:
        start = time.monotonic()
        try:
            result = await self._executor.execute(dict(task.parameters))
            if not isinstance(result, CrawlResult):
                raise TypeError(
                    f"Executor returned {type(result).__name__}, expected CrawlResult"
                )
            if not result.success:
                self._on_failure(task, result.error or "Unknown error", start)
                return
        except asyncio.CancelledError:
            # Only happens when drain() gives up on the execution
            self._running.discard(task.id)
            task.status = TaskStatus.PENDING
            task.started_at = None
            raise
        except Exception as exc:
            self._on_failure(task, exc, start)
            return

        self._on_success(task, result, start)

    def _on_success(self, task: CrawlTask, result: CrawlResult, start: float) -> None:
        duration_ms = (time.monotonic() - start) * 1000
        task.status = TaskStatus.COMPLETED
        task.result = result
        task.completed_at = self._now()
        self._running.discard(task.id)

        logger.info(
            "Task completed: %s",
            task.id,
            extra={
                "task_id": task.id,
                "duration_ms": round(duration_ms, 2),
                "items_collected": result.item_count,
            },
        )
        self._notify(task, success=True, item_count=result.item_count, duration_ms=duration_ms)
        self._dispatch()

    def _on_failure(self, task: CrawlTask, error: BaseException | str, start: float) -> None:
        duration_ms = (time.monotonic() - start) * 1000
        classified = getattr(error, "classified", None)
        if not isinstance(classified, ClassifiedError):
            classified = self._classifier.classify(error, _source_url(task.parameters))

        task.last_error = classified.message
        task.last_error_kind = classified.kind.value
        self._running.discard(task.id)

        fail_now = self._respect_retryable and not classified.retryable
        if task.retry_count < task.max_retries and not fail_now:
            task.retry_count += 1
            task.status = TaskStatus.PENDING
            logger.warning(
                "Task will retry: %s (%d/%d)",
                task.id,
                task.retry_count,
                task.max_retries,
                extra={
                    "task_id": task.id,
                    "error_kind": classified.kind.value,
                    "retry_count": task.retry_count,
                },
            )
            self._dispatch_later()
            return

        task.status = TaskStatus.FAILED
        task.completed_at = self._now()
        logger.error(
            "Task failed permanently: %s",
            task.id,
            extra={
                "task_id": task.id,
                "error_kind": classified.kind.value,
                "retry_count": task.retry_count,
                "error_reason": classified.message,
            },
        )
        self._notify(
            task,
            success=False,
            item_count=0,
            duration_ms=duration_ms,
            error_kind=classified.kind.value,
        )
        self._dispatch()

    def _dispatch_later(self) -> None:
        if self._retry_delay <= 0:
            self._dispatch()
            return
        asyncio.get_running_loop().call_later(self._retry_delay, self._dispatch)

    # ------------------------------------------------------------------
    # Crawl log notification
    # ------------------------------------------------------------------

    def _notify(
        self,
        task: CrawlTask,
        *,
        success: bool,
        item_count: int,
        duration_ms: float,
        error_kind: str | None = None,
    ) -> None:
        if self._crawl_log is None:
            return

        entry = CrawlLogEntry(
            task_id=task.id,
            parameters=summarize_parameters(task.parameters),
            success=success,
            item_count=item_count,
            error_message=None if success else task.last_error,
            duration_ms=duration_ms,
            retry_count=task.retry_count,
            error_kind=error_kind,
        )
        notification = asyncio.get_running_loop().create_task(self._deliver(entry))
        self._notifications.add(notification)
        notification.add_done_callback(self._notifications.discard)

    async def _deliver(self, entry: CrawlLogEntry) -> None:
        try:
            await self._crawl_log.record(entry)  # type: ignore[union-attr]
        except Exception:
            logger.exception("Crawl log notification failed for task %s", entry.task_id)
