"""Unit tests for the SlidingWindowRateLimiter."""

from __future__ import annotations

import asyncio

import pytest

from trendcrawl.resilience.rate_limiter import SlidingWindowRateLimiter


def _limiter(clock, **kwargs) -> SlidingWindowRateLimiter:
    options = {
        "max_requests_per_minute": 3,
        "max_requests_per_hour": 100,
        "cooldown_ms": 60000,
        "poll_interval_seconds": 0.01,
    }
    options.update(kwargs)
    return SlidingWindowRateLimiter(clock=clock, **options)


class TestMinuteWindow:
    def test_fresh_limiter_allows_requests(self, clock) -> None:
        limiter = _limiter(clock)
        assert limiter.can_make_request() is True

    def test_blocks_when_minute_window_full(self, clock) -> None:
        limiter = _limiter(clock)
        for _ in range(3):
            assert limiter.can_make_request()
            limiter.record_request()

        assert limiter.can_make_request() is False
        assert limiter.get_stats()["is_in_cooldown"] is False

    def test_slot_frees_after_sixty_seconds(self, clock) -> None:
        limiter = _limiter(clock)
        for _ in range(3):
            limiter.record_request()
            clock.advance(1)

        clock.advance(57.5)
        # Oldest request is now 60.5s old
        assert limiter.can_make_request() is True

    def test_window_is_sliding_not_fixed(self, clock) -> None:
        limiter = _limiter(clock)
        limiter.record_request()
        clock.advance(30)
        limiter.record_request()
        limiter.record_request()

        clock.advance(31)
        # First request aged out; the two at t+30 are still inside the window
        assert limiter.can_make_request() is True
        limiter.record_request()
        assert limiter.can_make_request() is False


class TestHourWindowAndCooldown:
    def test_hour_ceiling_enters_cooldown(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=1000, max_requests_per_hour=5)
        for _ in range(5):
            limiter.record_request()

        assert limiter.can_make_request() is False
        assert limiter.get_stats()["is_in_cooldown"] is True

    def test_cooldown_refuses_even_with_empty_windows(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=1000, max_requests_per_hour=2)
        limiter.record_request()
        limiter.record_request()
        assert limiter.can_make_request() is False

        clock.advance(30)
        assert limiter.can_make_request() is False

    def test_cooldown_expiry_clears_history(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=1000, max_requests_per_hour=2)
        limiter.record_request()
        limiter.record_request()
        assert limiter.can_make_request() is False

        clock.advance(60.1)
        assert limiter.can_make_request() is True
        assert limiter.get_stats() == {
            "requests_in_last_minute": 0,
            "requests_in_last_hour": 0,
            "is_in_cooldown": False,
        }

    def test_stats_do_not_expire_cooldown(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=1000, max_requests_per_hour=2)
        limiter.record_request()
        limiter.record_request()
        assert limiter.can_make_request() is False

        clock.advance(60.1)
        first = limiter.get_stats()
        assert first == limiter.get_stats()
        assert first["is_in_cooldown"] is False
        assert first["requests_in_last_hour"] == 2

        # The next admission check is what clears the history
        assert limiter.can_make_request() is True
        assert limiter.get_stats()["requests_in_last_hour"] == 0

    def test_hour_window_prunes_old_requests(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=1000, max_requests_per_hour=3)
        limiter.record_request()
        limiter.record_request()
        clock.advance(3601)

        assert limiter.can_make_request() is True
        assert limiter.get_stats()["requests_in_last_hour"] == 0


class TestStatsAndReset:
    def test_stats_reflect_windows(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=10)
        limiter.record_request()
        clock.advance(120)
        limiter.record_request()
        limiter.record_request()

        stats = limiter.get_stats()
        assert stats["requests_in_last_minute"] == 2
        assert stats["requests_in_last_hour"] == 3
        assert stats["is_in_cooldown"] is False

    def test_reset_clears_cooldown_and_history(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=1000, max_requests_per_hour=1)
        limiter.record_request()
        assert limiter.can_make_request() is False

        limiter.reset()

        assert limiter.can_make_request() is True
        assert limiter.get_stats()["requests_in_last_hour"] == 0


class TestWaitForSlot:
    @pytest.mark.asyncio
    async def test_returns_immediately_and_records(self, rate_limiter) -> None:
        await asyncio.wait_for(rate_limiter.wait_for_slot(), timeout=1.0)
        assert rate_limiter.get_stats()["requests_in_last_minute"] == 1

    @pytest.mark.asyncio
    async def test_waits_until_window_frees(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=1)
        limiter.record_request()

        waiter = asyncio.create_task(limiter.wait_for_slot())
        await asyncio.sleep(0.05)
        assert not waiter.done()

        clock.advance(61)
        await asyncio.wait_for(waiter, timeout=1.0)
        assert limiter.get_stats()["requests_in_last_minute"] == 1

    @pytest.mark.asyncio
    async def test_reset_wakes_waiter(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=1, poll_interval_seconds=5.0)
        limiter.record_request()

        waiter = asyncio.create_task(limiter.wait_for_slot())
        await asyncio.sleep(0.05)
        assert not waiter.done()

        limiter.reset()
        await asyncio.wait_for(waiter, timeout=1.0)

    @pytest.mark.asyncio
    async def test_waiters_are_admitted_one_at_a_time(self, clock) -> None:
        limiter = _limiter(clock, max_requests_per_minute=2)

        waiters = [asyncio.create_task(limiter.wait_for_slot()) for _ in range(3)]
        await asyncio.sleep(0.05)

        assert sum(w.done() for w in waiters) == 2
        assert limiter.get_stats()["requests_in_last_minute"] == 2

        clock.advance(61)
        await asyncio.wait_for(asyncio.gather(*waiters), timeout=1.0)
