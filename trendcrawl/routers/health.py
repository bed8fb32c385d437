"""Health, readiness, and metrics endpoints.

These endpoints do NOT require X-Service-Key authentication.
- GET /health — service status + scheduler state
- GET /readiness — 200 only when the scheduler is running and, if proxies
  are configured, at least one of them is still active
- GET /metrics — scheduler, rate limiter, proxy pool and error statistics
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Response

from trendcrawl.models.responses import ApiResponse


def create_health_router(
    *,
    scheduler: Any = None,
    rate_limiter: Any = None,
    proxy_pool: Any = None,
    error_classifier: Any = None,
    planner: Any = None,
) -> APIRouter:
    """Factory that creates the health router with injected dependencies."""

    health_router = APIRouter(tags=["health"])

    @health_router.get("/health")
    async def health() -> dict:
        """Service health check with scheduler statistics."""
        queue_stats = scheduler.get_stats() if scheduler else {}

        return ApiResponse(
            success=True,
            data={
                "status": "healthy",
                "scheduler": queue_stats,
            },
        ).model_dump()

    @health_router.get("/readiness")
    async def readiness(response: Response) -> dict:
        """Readiness check — scheduler running and egress available."""
        scheduler_running = bool(scheduler and scheduler.is_running)
        proxies_configured = bool(proxy_pool is not None and len(proxy_pool) > 0)
        active_proxies = proxy_pool.active_count() if proxy_pool is not None else 0

        proxy_ready = not proxies_configured or active_proxies > 0
        is_ready = scheduler_running and proxy_ready

        if not is_ready:
            response.status_code = 503

        error = None
        if not scheduler_running:
            error = "Scheduler not running"
        elif not proxy_ready:
            error = "No active proxies available"

        return ApiResponse(
            success=is_ready,
            data={
                "ready": is_ready,
                "scheduler_running": scheduler_running,
                "active_proxies": active_proxies,
            },
            error=error,
        ).model_dump()

    @health_router.get("/metrics")
    async def metrics() -> dict:
        """Operational metrics endpoint."""
        return ApiResponse(
            success=True,
            data={
                "scheduler": scheduler.get_stats() if scheduler else {},
                "rate_limiter": rate_limiter.get_stats() if rate_limiter else {},
                "proxy_pool": proxy_pool.get_stats() if proxy_pool is not None else {},
                "errors": error_classifier.get_stats() if error_classifier else {},
                "schedules": planner.get_status()["schedules"] if planner else [],
            },
        ).model_dump()

    return health_router
