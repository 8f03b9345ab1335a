"""Outbound pacing against the upstream's request quota.

The upstream counts calls per hour and answers with a throttling error once
the quota is spent. Pacing keeps the gateway below that budget: every call
takes a slot in a sliding window, and a call arriving with no free slot waits
until the oldest one ages out.
"""

import asyncio
import logging
import math
import time
from collections import deque
from typing import Awaitable, Callable, Deque

logger = logging.getLogger(__name__)

HOUR_SECONDS = 3600.0
DEFAULT_QUOTA_HEADROOM = 0.9


class RateLimiter:
    """Sliding-window pacing for upstream calls."""

    def __init__(
        self,
        max_requests: int,
        time_window: float = HOUR_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initializes the limiter.

        Args:
            max_requests: Upstream calls allowed inside one window.
            time_window: Window length in seconds.
            clock: Monotonic time source (injectable for tests).
            sleep_func: Awaitable used to wait for a slot (injectable for tests).
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if time_window <= 0:
            raise ValueError("time_window must be positive")
        self.max_requests = max_requests
        self.time_window = float(time_window)
        self.clock = clock
        self.sleep_func = sleep_func
        self._slots: Deque[float] = deque()
        self._lock = asyncio.Lock()
        logger.info(f"Outbound pacing: {max_requests} upstream calls per {self.time_window:g}s")

    @classmethod
    def for_hourly_quota(cls, quota: int, headroom: float = DEFAULT_QUOTA_HEADROOM, **kwargs) -> "RateLimiter":
        """Paces calls to a fraction of an hourly upstream quota.

        ``headroom`` leaves room for other clients sharing the same token.
        """
        if not 0 < headroom <= 1:
            raise ValueError("headroom must be in (0, 1]")
        return cls(max_requests=max(1, math.floor(quota * headroom)), time_window=HOUR_SECONDS, **kwargs)

    def _expire(self, now: float) -> None:
        while self._slots and now - self._slots[0] >= self.time_window:
            self._slots.popleft()

    def _delay(self, now: float) -> float:
        if len(self._slots) < self.max_requests:
            return 0.0
        return max(0.0, self._slots[0] + self.time_window - now)

    def remaining(self) -> int:
        """Calls that can go out right now without waiting."""
        self._expire(self.clock())
        return self.max_requests - len(self._slots)

    async def wait_for_permission(self) -> None:
        """Blocks until a slot is free, then takes it."""
        while True:
            async with self._lock:
                now = self.clock()
                self._expire(now)
                delay = self._delay(now)
                if delay == 0.0:
                    self._slots.append(now)
                    return
            logger.debug(f"Upstream quota window full, next slot in {delay:.2f}s")
            await self.sleep_func(delay)

    async def get_wait_time(self) -> float:
        """Seconds until the next call could take a slot (0.0 if one is free)."""
        async with self._lock:
            now = self.clock()
            self._expire(now)
            return self._delay(now)
