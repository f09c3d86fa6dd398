"""
Tests for SlidingWindowRateLimiter.
"""

import asyncio

import pytest

from catalogsync.core.ratelimit import SlidingWindowRateLimiter


class FakeClock:
    """Manual clock; sleeping advances it."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestSlidingWindowRateLimiter:
    @pytest.mark.asyncio
    async def test_admits_up_to_limit_without_waiting(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(10, clock=clock, sleep=clock.sleep)

        for _ in range(10):
            await limiter.acquire()

        assert clock.sleeps == []
        assert limiter.in_window == 10

    @pytest.mark.asyncio
    async def test_fifteen_calls_with_limit_ten(self):
        """The 11th call waits for the oldest entry to leave the window."""
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(10, window=60.0, safety_margin=0.5, clock=clock, sleep=clock.sleep)

        admitted_at = []
        for _ in range(15):
            await limiter.acquire()
            admitted_at.append(clock.now)

        assert admitted_at[:10] == [0.0] * 10
        assert all(t >= 60.0 for t in admitted_at[10:])
        # No more than 10 admissions in any trailing 60s window
        for i, t in enumerate(admitted_at):
            assert sum(1 for u in admitted_at if t - 60.0 < u <= t) <= 10, i

    @pytest.mark.asyncio
    async def test_window_slides(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(2, window=10.0, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        clock.now = 5.0
        await limiter.acquire()
        clock.now = 10.0
        await limiter.acquire()

        assert clock.sleeps == []
        assert limiter.in_window == 2

    @pytest.mark.asyncio
    async def test_concurrent_waiters_respect_limit(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(3, window=60.0, clock=clock, sleep=clock.sleep)

        await asyncio.gather(*[limiter.acquire() for _ in range(6)])

        assert len(clock.sleeps) >= 1
        assert limiter.in_window == 3

    def test_rejects_zero_limit(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(0)
