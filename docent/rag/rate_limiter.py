"""Token-bucket limiter used to pace calls to the embedding endpoint.

The clock and sleep functions are injectable so tests can drive the bucket
without real wall-clock waits.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class TokenBucket:
    """Allows `rate` acquisitions per second with bursts of up to `capacity`."""

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = capacity
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    async def acquire(self) -> float:
        """Take one token, waiting if the bucket is empty.

        Returns:
            Seconds spent waiting.
        """
        async with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return 0.0

            delay = (1 - self._tokens) / self.rate
            logger.debug(f"[RATE_LIMIT] Waiting {delay:.3f}s for embedding slot")
            await self._sleep(delay)
            self._refill()
            # The token that accrued while sleeping is ours; clamp float drift
            self._tokens = max(0.0, self._tokens - 1)
            return delay
