"""Sliding-window request rate limiter with hourly cooldown.

Tracks the timestamps of admitted crawl requests and enforces two trailing
windows: requests per minute and requests per hour.

Key behaviors:
- can_make_request() is False while the per-minute window is full
- Hitting the per-hour ceiling enters a cooldown; while cooling down every
  check is refused regardless of the windows
- When the cooldown expires the timestamp history is cleared
- wait_for_slot() suspends until a slot frees, sleeping until the earliest
  moment one can (never longer than the poll interval); reset() wakes
  waiters immediately
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)

MINUTE_SECONDS = 60.0
HOUR_SECONDS = 3600.0


class SlidingWindowRateLimiter:
    """Per-minute / per-hour sliding window limiter.

    Args:
        max_requests_per_minute: Requests admitted in any trailing 60s.
        max_requests_per_hour: Requests admitted in any trailing 3600s
            before a cooldown is forced.
        cooldown_ms: Cooldown duration in milliseconds.
        poll_interval_seconds: Upper bound on a single wait in wait_for_slot().
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        max_requests_per_minute: int = 10,
        max_requests_per_hour: int = 100,
        cooldown_ms: int = 60000,
        poll_interval_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_per_minute = max_requests_per_minute
        self._max_per_hour = max_requests_per_hour
        self._cooldown_seconds = cooldown_ms / 1000.0
        self._poll_interval = poll_interval_seconds
        self._clock = clock

        self._timestamps: deque[float] = deque()
        self._cooldown_until: float | None = None

        self._lock = asyncio.Lock()
        self._wakeup = asyncio.Event()

    # ------------------------------------------------------------------
    # Window bookkeeping
    # ------------------------------------------------------------------

    def _prune(self, now: float) -> None:
        """Drop timestamps older than the hourly window."""
        horizon = now - HOUR_SECONDS
        while self._timestamps and self._timestamps[0] <= horizon:
            self._timestamps.popleft()

    def _count_since(self, since: float) -> int:
        return sum(1 for ts in self._timestamps if ts > since)

    def _refresh_cooldown(self, now: float) -> bool:
        """Expire a finished cooldown. Returns True while still cooling down."""
        if self._cooldown_until is None:
            return False
        if now < self._cooldown_until:
            return True

        self._cooldown_until = None
        self._timestamps.clear()
        logger.info("Rate limiter cooldown ended")
        return False

    def _enter_cooldown(self, now: float) -> None:
        self._cooldown_until = now + self._cooldown_seconds
        logger.warning(
            "Hourly request ceiling (%d) reached — cooling down for %.1fs",
            self._max_per_hour,
            self._cooldown_seconds,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def can_make_request(self) -> bool:
        """Whether a request may be issued now.

        Side effect: enters cooldown when the hourly ceiling is reached.
        """
        now = self._clock()
        if self._refresh_cooldown(now):
            return False

        self._prune(now)

        if self._count_since(now - MINUTE_SECONDS) >= self._max_per_minute:
            logger.debug("Rate limit: too many requests per minute")
            return False

        if len(self._timestamps) >= self._max_per_hour:
            self._enter_cooldown(now)
            return False

        return True

    def record_request(self) -> None:
        """Record one admitted request at the current time."""
        self._timestamps.append(self._clock())

    async def wait_for_slot(self) -> None:
        """Suspend until a request is admissible, then record it.

        Waiters are served in arrival order.
        """
        async with self._lock:
            while not self.can_make_request():
                delay = min(self._seconds_until_slot(), self._poll_interval)
                self._wakeup.clear()
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=max(delay, 0.01))
                except asyncio.TimeoutError:
                    pass
            self.record_request()

    def _seconds_until_slot(self) -> float:
        """Best estimate of when the next check can succeed."""
        now = self._clock()
        if self._cooldown_until is not None:
            return max(self._cooldown_until - now, 0.0)

        minute_window = [ts for ts in self._timestamps if ts > now - MINUTE_SECONDS]
        if len(minute_window) >= self._max_per_minute:
            # The oldest timestamps must age out of the minute window
            excess = len(minute_window) - self._max_per_minute
            return max(minute_window[excess] + MINUTE_SECONDS - now, 0.0)

        return self._poll_interval

    def get_stats(self) -> dict:
        """Read-only view; never expires a cooldown or prunes history."""
        now = self._clock()
        in_cooldown = self._cooldown_until is not None and now < self._cooldown_until
        return {
            "requests_in_last_minute": self._count_since(now - MINUTE_SECONDS),
            "requests_in_last_hour": self._count_since(now - HOUR_SECONDS),
            "is_in_cooldown": in_cooldown,
        }

    def reset(self) -> None:
        """Clear all history, leave cooldown, and wake any waiters."""
        self._timestamps.clear()
        self._cooldown_until = None
        self._wakeup.set()
        logger.info("Rate limiter reset")
