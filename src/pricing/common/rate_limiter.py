"""Token-bucket rate limiter for polite scraping."""

from __future__ import annotations

import threading
import time
from typing import Callable


class RateLimiter:
    """Thread-safe token-bucket rate limiter.

    Tokens refill continuously at ``requests_per_minute / 60`` per second up
    to ``burst``. ``wait()`` takes one token, sleeping until one is available.

    Args:
        requests_per_minute: Sustained request rate.
        burst: Bucket capacity (requests allowed back-to-back).
        clock: Monotonic clock, injectable for tests.
        sleep: Sleep function, injectable for tests.
    """

    def __init__(
        self,
        requests_per_minute: int = 20,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._rate = max(requests_per_minute, 1) / 60.0
        self._capacity = float(max(burst, 1))
        self._tokens = self._capacity
        self._clock = clock
        self._sleep = sleep
        self._updated_at = clock()
        self._lock = threading.Lock()

    @property
    def interval(self) -> float:
        """Seconds between requests at the sustained rate."""
        return 1.0 / self._rate

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated_at
        self._updated_at = now
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)

    def wait(self) -> float:
        """Block until the next request is allowed.

        Returns:
            Seconds slept (0.0 if a token was available).
        """
        with self._lock:
            self._refill()
            slept = 0.0
            if self._tokens < 1.0:
                slept = (1.0 - self._tokens) / self._rate
                self._sleep(slept)
                self._refill()
                # Clock may not advance under a fake sleep
                self._tokens = max(self._tokens, 1.0)
            self._tokens -= 1.0
            return slept
