"""Fixed-window request rate limiter for a single client."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger("sangha_api.rate_limit")


class RateLimiter:
    """Admits at most ``max_requests`` per ``window`` seconds.

    ``acquire()`` returns as soon as the current window has budget left and
    otherwise suspends the caller until the window rolls over. A disabled
    limiter admits everything.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window: float = 60.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        self.max_requests = max_requests
        self.window = window
        self.enabled = enabled
        self._clock = clock
        self._sleep = sleep
        self._count = 0
        self._window_end = 0.0

    @property
    def remaining(self) -> int:
        if self._clock() >= self._window_end:
            return self.max_requests
        return max(0, self.max_requests - self._count)

    async def acquire(self) -> float:
        """Wait for admission. Returns the seconds spent waiting."""
        if not self.enabled:
            return 0.0
        waited = 0.0
        while True:
            now = self._clock()
            if now >= self._window_end:
                self._window_end = now + self.window
                self._count = 0
            if self._count < self.max_requests:
                self._count += 1
                return waited
            wait = self._window_end - now
            logger.debug("Rate limit reached (%d/%.0fs), waiting %.2fs", self.max_requests, self.window, wait)
            await self._sleep(wait)
            waited += wait

    def reset(self) -> None:
        self._count = 0
        self._window_end = 0.0
