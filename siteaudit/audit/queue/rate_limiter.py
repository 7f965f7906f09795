"""Request throttling and retry backoff for the audit queue.

Two throttles compose: a fixed minimum spacing between attempts and a
sliding one-second window capping attempts per second. Both only delay;
nothing is ever rejected. They are applied before every attempt, retries
included.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)


WINDOW_SECONDS = 1.0
WINDOW_BUFFER_SECONDS = 0.01


def backoff_delay_ms(base_delay_ms: int, attempt: int) -> int:
    """Exponential backoff: ``base * 2^(attempt-1)`` for attempt >= 1."""
    if attempt < 1:
        return 0
    return base_delay_ms * (2 ** (attempt - 1))


class RequestRateLimiter:
    """Fixed spacing plus sliding-window requests-per-second ceiling."""

    def __init__(
        self,
        delay_between_requests_ms: int = 0,
        max_requests_per_second: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """Initialize the limiter.

        Args:
            delay_between_requests_ms: Minimum gap between consecutive requests
            max_requests_per_second: Ceiling for any rolling one-second window
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait
        """
        self.delay_between_requests = delay_between_requests_ms / 1000.0
        self.max_requests_per_second = max_requests_per_second
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request: Optional[float] = None
        self._window: Deque[float] = deque()

        self._stats = {
            "requests": 0,
            "spacing_waits": 0,
            "window_waits": 0,
            "total_wait_ms": 0,
        }

    @property
    def enabled(self) -> bool:
        return self.delay_between_requests > 0 or bool(self.max_requests_per_second)

    async def acquire(self) -> float:
        """Wait until the next request may start.

        Returns:
            Seconds spent waiting
        """
        if not self.enabled:
            self._stats["requests"] += 1
            return 0.0

        async with self._lock:
            waited = 0.0

            if self.delay_between_requests > 0 and self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self.delay_between_requests:
                    remaining = self.delay_between_requests - elapsed
                    self._stats["spacing_waits"] += 1
                    await self._sleep(remaining)
                    waited += remaining

            if self.max_requests_per_second:
                now = self._clock()
                self._prune(now)
                if len(self._window) >= self.max_requests_per_second:
                    wait = WINDOW_SECONDS - (now - self._window[0]) + WINDOW_BUFFER_SECONDS
                    if wait > 0:
                        self._stats["window_waits"] += 1
                        logger.debug(f"Rate limit reached, waiting {wait * 1000:.0f}ms")
                        await self._sleep(wait)
                        waited += wait
                    self._prune(self._clock())

            now = self._clock()
            if self.max_requests_per_second:
                self._window.append(now)
            self._last_request = now
            self._stats["requests"] += 1
            self._stats["total_wait_ms"] += int(waited * 1000)
            return waited

    def _prune(self, now: float) -> None:
        while self._window and now - self._window[0] >= WINDOW_SECONDS:
            self._window.popleft()

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
