"""Sliding-window admission control for summary requests."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable

from ai_summary.core.logging import get_logger

logger = get_logger(__name__)

ADMISSION_BUFFER_SECONDS = 0.1


class RateLimiter:
    """Limits how many requests may start within a trailing time window.

    Only starts are counted. Admitted requests may run concurrently and their
    duration does not matter. One instance is shared by every summary task so
    that all of them respect the same provider quota.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._starts: deque[float] = deque()

    @property
    def recent_starts(self) -> int:
        """Number of recorded starts, including ones that may already be stale."""
        return len(self._starts)

    async def wait_for_slot(self, max_requests: int, window_seconds: float) -> None:
        """
        Suspend until a new request may start, then record its start time.

        Args:
            max_requests: Maximum starts allowed within the window
            window_seconds: Trailing window length in seconds

        Raises:
            ValueError: If max_requests is lower than 1 or the window is not positive
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        while True:
            now = self._clock()
            self._prune(now, window_seconds)
            if len(self._starts) < max_requests:
                break

            wait_seconds = self._starts[0] + window_seconds - now + ADMISSION_BUFFER_SECONDS
            logger.info(
                "Rate limit reached, waiting for a free slot",
                extra={
                    "wait_seconds": round(wait_seconds, 3),
                    "max_requests": max_requests,
                    "window_seconds": window_seconds,
                },
            )
            await self._sleep(wait_seconds)

        self._starts.append(self._clock())

    def reset(self) -> None:
        """Forget every recorded start."""
        self._starts.clear()

    def _prune(self, now: float, window_seconds: float) -> None:
        cutoff = now - window_seconds
        while self._starts and self._starts[0] <= cutoff:
            self._starts.popleft()
