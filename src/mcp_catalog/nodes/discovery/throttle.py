"""Shared request throttle for external APIs."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window request budget plus a minimum spacing between calls.

    One instance is shared by every worker talking to the same API, so
    workers contend for one budget instead of sleeping independently.

    Args:
        requests_per_window: Calls allowed per window. 0 disables the cap.
        window_seconds: Window length.
        min_interval: Minimum seconds between consecutive calls.
    """

    def __init__(self, requests_per_window: int = 0, window_seconds: float = 60.0, min_interval: float = 0.0) -> None:
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self.min_interval = min_interval
        self._calls: deque[float] = deque()
        self._last_call = 0.0
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()

    async def acquire(self) -> None:
        """Wait until a call is allowed and record it."""
        async with self._lock:
            while True:
                now = time.monotonic()
                self._prune(now)
                wait = 0.0
                if self.requests_per_window and len(self._calls) >= self.requests_per_window:
                    wait = self.window_seconds - (now - self._calls[0])
                if self.min_interval and self._last_call:
                    wait = max(wait, self.min_interval - (now - self._last_call))
                if wait <= 0:
                    break
                logger.debug("Rate limiter waiting %.2fs", wait)
                await asyncio.sleep(wait)

            now = time.monotonic()
            self._calls.append(now)
            self._last_call = now

    @property
    def remaining(self) -> int | None:
        """Calls left in the current window, or None when uncapped."""
        if not self.requests_per_window:
            return None
        self._prune(time.monotonic())
        return max(0, self.requests_per_window - len(self._calls))
