"""Property tests for the sliding-window rate limiter.

Validates that admitted requests never exceed the per-minute window and that
reaching the hourly ceiling always produces a cooldown.
"""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from trendcrawl.resilience.rate_limiter import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


steps = st.lists(
    st.floats(min_value=0.0, max_value=30.0, allow_nan=False, allow_infinity=False),
    min_size=1,
    max_size=200,
)


@settings(max_examples=100)
@given(per_minute=st.integers(min_value=1, max_value=10), advances=steps)
def test_minute_window_never_exceeded(per_minute: int, advances: list[float]) -> None:
    """Admitting only when can_make_request() is True keeps every trailing
    60 s window at or below the per-minute limit."""
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(
        max_requests_per_minute=per_minute,
        max_requests_per_hour=10_000,
        clock=clock,
    )
    admitted: list[float] = []

    for advance in advances:
        clock.advance(advance)
        if limiter.can_make_request():
            limiter.record_request()
            admitted.append(clock.now)

        in_window = [t for t in admitted if t > clock.now - 60.0]
        assert len(in_window) <= per_minute
        assert limiter.get_stats()["requests_in_last_minute"] == len(in_window)


@settings(max_examples=100)
@given(
    per_hour=st.integers(min_value=1, max_value=20),
    cooldown_ms=st.integers(min_value=1000, max_value=120_000),
)
def test_hour_ceiling_forces_cooldown(per_hour: int, cooldown_ms: int) -> None:
    """Once the hourly ceiling is hit, every check is refused until the
    cooldown has elapsed; afterwards the history is empty."""
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(
        max_requests_per_minute=1000,
        max_requests_per_hour=per_hour,
        cooldown_ms=cooldown_ms,
        clock=clock,
    )
    for _ in range(per_hour):
        assert limiter.can_make_request()
        limiter.record_request()

    assert limiter.can_make_request() is False
    assert limiter.get_stats()["is_in_cooldown"] is True

    clock.advance(cooldown_ms / 1000.0 - 0.001)
    assert limiter.can_make_request() is False

    clock.advance(0.002)
    assert limiter.can_make_request() is True
    assert limiter.get_stats()["requests_in_last_hour"] == 0
