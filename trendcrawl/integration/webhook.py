"""HMAC-SHA256 signed crawl log webhook.

Delivers terminal crawl outcomes to an external collector (e.g. the
dashboard's crawl_logs store) with retry logic and exponential backoff.

SECURITY: Signatures use HMAC-SHA256(secret, JSON payload).
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging

import httpx

from trendcrawl.services.crawl_log import CrawlLogEntry

logger = logging.getLogger(__name__)


class WebhookCrawlLog:
    """Posts signed crawl log entries to a webhook URL.

    Parameters
    ----------
    url:
        Collector endpoint receiving the JSON payload.
    webhook_secret:
        Shared secret for the ``X-Webhook-Signature`` header. Unsigned when None.
    timeout_seconds:
        HTTP timeout per delivery attempt (default 10).
    max_retries:
        Maximum delivery attempts (default 3).
    backoff_base:
        Base backoff in seconds (default 2). Schedule: 2s, 4s.
    """

    def __init__(
        self,
        url: str,
        webhook_secret: str | None = None,
        timeout_seconds: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 2.0,
    ) -> None:
        self._url = url
        self._webhook_secret = webhook_secret
        self._timeout_seconds = timeout_seconds
        self._max_retries = max(1, max_retries)
        self._backoff_base = backoff_base

    def compute_signature(self, payload_bytes: bytes) -> str:
        """Compute HMAC-SHA256 signature for a payload."""
        return hmac.new(
            (self._webhook_secret or "").encode("utf-8"),
            payload_bytes,
            hashlib.sha256,
        ).hexdigest()

    @staticmethod
    def build_payload(entry: CrawlLogEntry) -> dict:
        return {
            "task_id": entry.task_id,
            "status": "completed" if entry.success else "failed",
            "parameters": entry.parameters,
            "items_collected": entry.item_count,
            "error_message": entry.error_message,
            "error_kind": entry.error_kind,
            "retry_count": entry.retry_count,
            "duration_ms": round(entry.duration_ms, 2),
            "completed_at": entry.finished_at.isoformat(),
        }

    async def record(self, entry: CrawlLogEntry) -> None:
        await self.deliver(entry)

    async def deliver(self, entry: CrawlLogEntry) -> bool:
        """Deliver one entry with retries.

        Returns
        -------
        bool
            True if delivery succeeded, False if all retries exhausted.
        """
        payload_bytes = json.dumps(
            self.build_payload(entry), separators=(",", ":"), sort_keys=True, default=str
        ).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._webhook_secret:
            headers["X-Webhook-Signature"] = self.compute_signature(payload_bytes)

        last_exception: Exception | None = None

        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        self._url,
                        content=payload_bytes,
                        headers=headers,
                        timeout=self._timeout_seconds,
                    )

                if response.status_code < 400:
                    logger.debug(
                        "Crawl log delivered for task %s (status %d)",
                        entry.task_id,
                        response.status_code,
                    )
                    return True

                last_exception = httpx.HTTPStatusError(
                    f"Crawl log webhook returned {response.status_code}",
                    request=response.request,
                    response=response,
                )

            except httpx.HTTPError as exc:
                last_exception = exc

            if attempt < self._max_retries - 1:
                backoff = self._backoff_base * (2**attempt)
                logger.warning(
                    "Crawl log delivery failed for task %s (attempt %d/%d), retrying in %.0fs",
                    entry.task_id,
                    attempt + 1,
                    self._max_retries,
                    backoff,
                )
                await asyncio.sleep(backoff)

        logger.error(
            "Crawl log delivery failed for task %s after %d attempts: %s",
            entry.task_id,
            self._max_retries,
            last_exception,
        )
        return False
