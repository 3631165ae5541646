"""Token bucket limiter for calls to the messaging gateway.

Sized by configuration, independent of how many sessions a pass visits.
Time source and sleep are injectable so tests never wait for real.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from healthcore.observability import get_logger

logger = get_logger(__name__)


class TokenBucket:
    """Async token bucket.

    Attributes:
        rate: Tokens added per second.
        capacity: Maximum tokens held (burst size).
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        *,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = rate
        self.capacity = capacity
        self._monotonic = monotonic
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated = monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._monotonic()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self) -> float:
        """Take one token, waiting for it if necessary.

        Returns:
            Seconds spent waiting.
        """
        waited = 0.0
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    if waited:
                        logger.debug("Gateway call throttled", waited_seconds=round(waited, 3))
                    return waited
                delay = (1 - self._tokens) / self.rate
                waited += delay
                await self._sleep(delay)
