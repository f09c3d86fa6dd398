"""Sliding-window admission control for calls to external AI providers."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Admit at most ``max_per_window`` acquisitions per trailing window.

    Shared by every enrichment worker; the lock makes check-and-record
    atomic, so waiters are admitted one at a time in arrival order.
    """

    def __init__(
        self,
        max_per_window: int,
        window: float = 60.0,
        safety_margin: float = 0.5,
        name: str = "ai",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_per_window < 1:
            raise ValueError("max_per_window must be >= 1")
        self.max_per_window = max_per_window
        self.window = window
        self.safety_margin = safety_margin
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window:
            self._timestamps.popleft()

    @property
    def in_window(self) -> int:
        self._evict(self._clock())
        return len(self._timestamps)

    async def acquire(self) -> None:
        """Wait until the window has room, then record an acquisition."""
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._timestamps) < self.max_per_window:
                    self._timestamps.append(now)
                    return

                wait = self.window - (now - self._timestamps[0]) + self.safety_margin
                logger.info(
                    f"[Rate Limit] {self.name} limit ({self.max_per_window}/{self.window:.0f}s) "
                    f"reached, waiting {wait:.1f}s"
                )
                await self._sleep(wait)
