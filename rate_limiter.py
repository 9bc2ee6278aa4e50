"""Minimum-interval spacing between Scholar fetches."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Awaitable, Callable

MIN_FETCH_INTERVAL_SECONDS = float(os.getenv("SD_MIN_FETCH_INTERVAL_SECONDS", "2.0"))

LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Tracks the last fetch time and computes the wait before the next one.

    A fixed floor between attempts: no jitter, no backoff growth.
    """

    def __init__(
        self,
        min_interval: float = MIN_FETCH_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be non-negative")
        self.min_interval = min_interval
        self.last_fetch_at: float | None = None
        self._clock = clock
        self._sleep = sleep

    def compute_wait(self, now: float | None = None) -> float:
        if self.last_fetch_at is None:
            return 0.0
        if now is None:
            now = self._clock()
        return max(0.0, self.min_interval - (now - self.last_fetch_at))

    def record_fetch(self, now: float | None = None) -> None:
        self.last_fetch_at = self._clock() if now is None else now

    async def wait(self) -> float:
        """Sleep until the next fetch is permitted; return the total time waited.

        Re-checks after every sleep: another caller sharing this limiter may
        have recorded a fetch while this one was asleep.
        """
        waited = 0.0
        delay = self.compute_wait()
        while delay > 0:
            LOGGER.debug("Rate limit: waiting %.2fs before next fetch", delay)
            await self._sleep(delay)
            waited += delay
            delay = self.compute_wait()
        return waited


# Shared by every fetch path in the process.
DEFAULT_LIMITER = RateLimiter()
