"""Token bucket rate limiter for upstream requests."""

import asyncio
import time
from typing import Optional

from ..errors import RateLimitError


class TokenBucketLimiter:
    """
    Token bucket rate limiter.

    The bucket starts full with ``burst`` tokens and refills continuously at
    ``requests_per_minute / 60`` tokens per second, never above ``burst``.
    A caller that gives up (timeout or cancellation) consumes no token.
    """

    def __init__(self, requests_per_minute: int, burst: int = 5):
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        if burst <= 0:
            raise ValueError("burst must be positive")

        self.requests_per_minute = requests_per_minute
        self.burst = burst
        self.rate = requests_per_minute / 60.0
        self.tokens = float(burst)
        self.last_update = time.monotonic()
        self.lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(self.burst, self.tokens + elapsed * self.rate)
        self.last_update = now

    @property
    def available(self) -> float:
        """Tokens currently in the bucket."""
        self._refill()
        return self.tokens

    async def acquire(self) -> None:
        """Wait until a token is available and consume it."""
        async with self.lock:
            self._refill()
            while self.tokens < 1:
                wait_time = (1 - self.tokens) / self.rate
                await asyncio.sleep(wait_time)
                self._refill()
            self.tokens -= 1

    async def wait(self, timeout: Optional[float] = None) -> None:
        """
        Acquire a token within ``timeout`` seconds.

        Raises:
            RateLimitError: If the deadline passes first.
        """
        try:
            await asyncio.wait_for(self.acquire(), timeout)
        except asyncio.TimeoutError as e:
            raise RateLimitError(
                f"rate limiter wait exceeded {timeout:.2f}s"
            ) from e
