"""Implementation of a rate limiter.

Controls the frequency of outgoing requests to stay inside the Notion API
limits (about three requests per second on average). Uses a token bucket
with reservations: each caller reserves a token up front and then sleeps
until its reservation matures, so concurrent waiters are served in order.
"""

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_RATE_PER_SECOND = 2.5
DEFAULT_BURST = 3


class RateLimiterWaitError(asyncio.CancelledError):
    """The caller was cancelled while waiting for a rate-limit token.

    Subclasses CancelledError so cancellation keeps propagating; the triggering
    cancellation is available as ``__cause__``.
    """

    def __init__(self, wait_seconds: float):
        self.wait_seconds = wait_seconds
        super().__init__(f"rate-limiter wait cancelled after reserving a {wait_seconds:.3f}s slot")


class TokenBucketRateLimiter:
    """Token bucket shared by every caller of the remote API."""

    def __init__(
        self,
        rate: float = DEFAULT_RATE_PER_SECOND,
        burst: int = DEFAULT_BURST,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initializes the rate limiter.

        Args:
            rate: Sustained refill rate in tokens per second.
            burst: Bucket capacity; the bucket starts full.
            clock: Monotonic time source in seconds.
            sleep: Awaitable sleep used while waiting for a reservation.
        """
        if rate <= 0:
            raise ValueError(f"Rate must be positive, got {rate}")
        if burst < 1:
            raise ValueError(f"Burst must be at least 1, got {burst}")

        self.rate = float(rate)
        self.burst = int(burst)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()  # never held across an await
        logger.info(f"RateLimiter initialized: {self.rate} requests/second, burst {self.burst}")

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._last = now

    def _reserve(self) -> float:
        """Takes one token (possibly going negative) and returns the delay until it is valid."""
        with self._lock:
            self._refill(self._clock())
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate

    def _refund(self) -> None:
        with self._lock:
            self._refill(self._clock())
            self._tokens = min(float(self.burst), self._tokens + 1.0)

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def try_acquire(self) -> bool:
        """Takes a token only if one is available right now."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def get_wait_time(self) -> float:
        """Estimates the time needed before the next request can be made."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1.0:
                return 0.0
            return (1.0 - self._tokens) / self.rate

    async def acquire(self) -> None:
        """Waits until a request is permitted according to the rate limit.

        Raises:
            RateLimiterWaitError: If the calling task is cancelled while
                waiting. The reserved token is returned to the bucket.
        """
        wait_time = self._reserve()
        if wait_time <= 0:
            logger.debug("Rate limit permission granted.")
            return

        logger.debug(f"Rate limit reached. Waiting for {wait_time:.2f} seconds.")
        try:
            await self._sleep(wait_time)
        except asyncio.CancelledError as e:
            self._refund()
            raise RateLimiterWaitError(wait_time) from e
