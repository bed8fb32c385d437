"""FastAPI application entry point with lifespan management.

Startup: load settings, configure logging, build the rate limiter, error
classifier, proxy pool, crawl executor, crawl log sinks, scheduler and
recurring planner, then start dispatching.
Shutdown: stop the recurring planner, then drain the scheduler (running
crawls get ``graceful_shutdown_seconds`` to finish).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from trendcrawl.config.schedules import load_crawl_schedules
from trendcrawl.config.settings import CrawlerSettings
from trendcrawl.integration.webhook import WebhookCrawlLog
from trendcrawl.logging_config import configure_logging
from trendcrawl.middleware.auth import ServiceKeyAuthMiddleware
from trendcrawl.middleware.error_handler import register_error_handlers
from trendcrawl.middleware.request_id import RequestIdMiddleware
from trendcrawl.proxy.pool import ProxyPool
from trendcrawl.proxy.types import ProxyEndpoint
from trendcrawl.resilience.error_classifier import ErrorClassifier
from trendcrawl.resilience.rate_limiter import SlidingWindowRateLimiter
from trendcrawl.routers.health import create_health_router
from trendcrawl.routers.scheduler import create_scheduler_router
from trendcrawl.routers.tasks import create_tasks_router
from trendcrawl.services.crawl_log import CompositeCrawlLog, CrawlLogSink, LoggingCrawlLog
from trendcrawl.services.executor import HttpCrawlExecutor
from trendcrawl.services.recurring import RecurringCrawlPlanner
from trendcrawl.services.scheduler import CrawlScheduler

logger = logging.getLogger(__name__)

# Shared state for the application — populated during lifespan startup
_state: dict = {}


def build_proxy_pool(settings: CrawlerSettings) -> ProxyPool:
    """Proxy pool from ``proxy_endpoints`` plus the single-server settings."""
    pool = ProxyPool.from_urls(settings.proxy_endpoints)
    if settings.proxy_server:
        endpoint = ProxyEndpoint.from_url(settings.proxy_server)
        if settings.proxy_username:
            endpoint.username = settings.proxy_username
            endpoint.password = settings.proxy_password
        pool.add_endpoint(endpoint)
    return pool


def build_crawl_log(settings: CrawlerSettings) -> CrawlLogSink:
    sinks: list[CrawlLogSink] = [LoggingCrawlLog()]
    if settings.crawl_log_webhook_url:
        sinks.append(
            WebhookCrawlLog(
                settings.crawl_log_webhook_url,
                webhook_secret=settings.webhook_secret,
            )
        )
    return CompositeCrawlLog(sinks) if len(sinks) > 1 else sinks[0]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    settings = CrawlerSettings()  # type: ignore[call-arg]

    configure_logging(settings.log_level)
    logger.info("Starting crawl engine on port %d", settings.port)

    rate_limiter = SlidingWindowRateLimiter(
        max_requests_per_minute=settings.max_requests_per_minute,
        max_requests_per_hour=settings.max_requests_per_hour,
        cooldown_ms=settings.cooldown_ms,
        poll_interval_seconds=settings.rate_limit_poll_interval_seconds,
    )

    error_classifier = ErrorClassifier(history_size=settings.error_history_size)

    proxy_pool = build_proxy_pool(settings)

    executor = HttpCrawlExecutor(
        base_url=settings.crawl_api_url,
        rate_limiter=rate_limiter,
        error_classifier=error_classifier,
        proxy_pool=proxy_pool,
        max_attempts=settings.fetch_max_attempts,
        retry_base_delay_ms=settings.retry_base_delay_ms,
        timeout_seconds=settings.crawl_request_timeout_seconds,
    )

    scheduler = CrawlScheduler(
        executor=executor,
        error_classifier=error_classifier,
        crawl_log=build_crawl_log(settings),
        max_concurrent=settings.max_concurrent,
        default_max_retries=settings.default_max_retries,
        retry_dispatch_delay_ms=settings.retry_dispatch_delay_ms,
        respect_retryable=settings.respect_retryable,
    )

    schedules = (
        load_crawl_schedules(settings.schedules_path)
        if settings.recurring_schedules_enabled
        else {}
    )
    planner = RecurringCrawlPlanner(scheduler=scheduler, schedules=schedules)

    # Mount routers
    app.include_router(
        create_health_router(
            scheduler=scheduler,
            rate_limiter=rate_limiter,
            proxy_pool=proxy_pool,
            error_classifier=error_classifier,
            planner=planner,
        )
    )
    app.include_router(create_tasks_router(scheduler=scheduler))
    app.include_router(
        create_scheduler_router(
            scheduler=scheduler,
            planner=planner,
            rate_limiter=rate_limiter,
            error_classifier=error_classifier,
        )
    )

    scheduler.start()
    planner.start()

    _state.update({
        "settings": settings,
        "rate_limiter": rate_limiter,
        "error_classifier": error_classifier,
        "proxy_pool": proxy_pool,
        "scheduler": scheduler,
        "planner": planner,
    })

    logger.info("Crawl engine started successfully")

    yield

    # --- Shutdown ---
    logger.info("Shutting down crawl engine…")

    await planner.stop()
    await scheduler.drain(timeout=settings.graceful_shutdown_seconds)

    logger.info("Crawl engine shut down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Loads ``CrawlerSettings`` eagerly so that a missing ``CRAWLER_SERVICE_KEY``
    environment variable causes an immediate startup failure rather than
    silently falling back to a placeholder value.
    """
    settings = CrawlerSettings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Trendcrawl Crawl Engine",
        version="1.0.0",
        lifespan=lifespan,
    )

    register_error_handlers(app)

    # Starlette applies middleware in reverse order of add_middleware calls
    app.add_middleware(ServiceKeyAuthMiddleware, service_key=settings.service_key)
    app.add_middleware(RequestIdMiddleware)

    return app
