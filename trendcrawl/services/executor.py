"""Crawl executors — perform one unit of crawl work for the scheduler.

The scheduler only knows the ``CrawlExecutor`` protocol and treats task
parameters and result data as opaque. ``HttpCrawlExecutor`` is the
production implementation: it hands the crawl to the dashboard's platform
crawl API (``POST {base}/api/crawl/{platform}``) through the shared rate
limiter and proxy pool:

rate limiter slot → proxy select → HTTP request → classify failure →
backoff and retry (retryable errors only) → result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from trendcrawl.middleware.error_handler import CrawlAttemptError, NoActiveProxiesError
from trendcrawl.models.tasks import CrawlResult
from trendcrawl.proxy.pool import ProxyPool
from trendcrawl.proxy.types import ProxyEndpoint
from trendcrawl.resilience.error_classifier import (
    ClassifiedError,
    ErrorClassifier,
    ErrorKind,
    retry_delay,
)
from trendcrawl.resilience.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


class CrawlExecutor(Protocol):
    """Performs one crawl given opaque task parameters."""

    async def execute(self, parameters: dict[str, Any]) -> CrawlResult: ...


class CrawlTarget(BaseModel):
    """Parameters understood by the platform crawl API."""

    platform: str = Field(..., min_length=1)
    keyword: str | None = None
    keywords: list[str] | None = None
    category: str | None = None
    category_id: str | None = None
    max_pages: int = Field(default=3, ge=1, le=50)

    model_config = {"extra": "ignore"}

    def payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"platform"}, exclude_none=True)


class HttpCrawlExecutor:
    """Runs crawls against the platform crawl API over httpx.

    Parameters
    ----------
    base_url:
        Base URL of the crawl API (e.g. ``http://localhost:3000``).
    rate_limiter:
        Shared limiter; one slot is taken per HTTP attempt.
    proxy_pool:
        Optional egress pool. When empty, requests go direct; when every
        endpoint has been deactivated, ``NoActiveProxiesError`` is raised.
    error_classifier:
        Classifies each failed attempt; its ``retryable`` flag gates retries.
    max_attempts:
        HTTP attempts per execution (default 3).
    retry_base_delay_ms:
        Base for the exponential backoff between attempts.
    timeout_seconds:
        Per-request timeout.
    """

    def __init__(
        self,
        *,
        base_url: str,
        rate_limiter: SlidingWindowRateLimiter,
        error_classifier: ErrorClassifier,
        proxy_pool: ProxyPool | None = None,
        max_attempts: int = 3,
        retry_base_delay_ms: int = 1000,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._rate_limiter = rate_limiter
        self._classifier = error_classifier
        self._proxy_pool = proxy_pool
        self._max_attempts = max(1, max_attempts)
        self._retry_base_delay_ms = retry_base_delay_ms
        self._timeout = timeout_seconds

    async def execute(self, parameters: dict[str, Any]) -> CrawlResult:
        """Crawl one target, retrying retryable failures with backoff.

        Raises
        ------
        CrawlAttemptError
            When the parameters are invalid or the final attempt fails;
            carries the classified error.
        """
        try:
            target = CrawlTarget.model_validate(parameters)
        except ValidationError as exc:
            classified = self._classifier.record(
                ClassifiedError(
                    kind=ErrorKind.PARSE,
                    message="Invalid crawl parameters: " + ", ".join(
                        ".".join(str(part) for part in err["loc"]) for err in exc.errors()
                    ),
                    retryable=False,
                )
            )
            raise CrawlAttemptError(classified.message, classified=classified) from exc

        url = f"{self._base_url}/api/crawl/{target.platform}"

        for attempt in range(1, self._max_attempts + 1):
            await self._rate_limiter.wait_for_slot()
            proxy = self._select_proxy()
            start = time.monotonic()

            logger.debug(
                "Crawling %s (attempt %d/%d)",
                url,
                attempt,
                self._max_attempts,
                extra={
                    "platform": target.platform,
                    "proxy_used": proxy.address if proxy else None,
                },
            )

            try:
                data = await self._post(url, target.payload(), proxy.url if proxy else None)
            except (httpx.HTTPError, ValueError) as exc:
                classified = self._classifier.classify(exc, url)

                if proxy is not None and classified.kind == ErrorKind.BLOCKED:
                    self._proxy_pool.mark_failed(proxy)  # type: ignore[union-attr]

                if self._classifier.should_retry(classified, attempt, self._max_attempts):
                    delay_ms = retry_delay(attempt, self._retry_base_delay_ms)
                    logger.info(
                        "Retrying %s in %dms after %s error",
                        url,
                        delay_ms,
                        classified.kind.value,
                    )
                    await asyncio.sleep(delay_ms / 1000)
                    continue

                raise CrawlAttemptError(classified.message, classified=classified) from exc

            if proxy is not None:
                self._proxy_pool.mark_success(proxy)  # type: ignore[union-attr]

            item_count = _item_count(data)
            logger.info(
                "Crawl of %s returned %d items",
                target.platform,
                item_count,
                extra={
                    "platform": target.platform,
                    "items_collected": item_count,
                    "duration_ms": round((time.monotonic() - start) * 1000, 2),
                },
            )
            return CrawlResult(success=True, data=data, item_count=item_count)

        # Unreachable: the final attempt either returns or raises
        raise CrawlAttemptError(f"Crawl of {url} made no attempts")

    def _select_proxy(self) -> ProxyEndpoint | None:
        """Next active proxy; None means go direct (no proxies configured).

        Once proxies are configured, a pool with every endpoint deactivated
        refuses to fall back to a direct connection.
        """
        if self._proxy_pool is None or len(self._proxy_pool) == 0:
            return None
        proxy = self._proxy_pool.next_endpoint()
        if proxy is None:
            raise NoActiveProxiesError()
        return proxy

    async def _post(
        self, url: str, payload: dict[str, Any], proxy_url: str | None
    ) -> dict[str, Any]:
        async with httpx.AsyncClient(proxy=proxy_url, timeout=self._timeout) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"X-Internal-Request": "true"},
            )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Crawl API returned a non-object body, cannot parse result")
        return data


def _item_count(data: dict[str, Any]) -> int:
    for key in ("itemsCollected", "items_collected", "productsSaved"):
        value = data.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0
