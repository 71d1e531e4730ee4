"""Outbound flood control for protocol lines."""

from __future__ import annotations

import time
from collections.abc import Callable


class TokenBucket:
    """Allows `burst` lines at once, refilled at `rate` lines per second."""

    def __init__(self, burst: int, rate: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._burst = max(1, burst)
        self._rate = rate if rate is not None else float(self._burst)
        self._clock = clock
        self._tokens = float(self._burst)
        self._stamp = clock()

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(self._burst, self._tokens + (now - self._stamp) * self._rate)
        self._stamp = now

    def delay(self) -> float:
        """Seconds until one line may be sent; 0 when a token is available now."""
        self._refill()
        if self._tokens >= 1:
            return 0.0
        return (1 - self._tokens) / self._rate

    def take(self) -> bool:
        """Spend one token if available."""
        self._refill()
        if self._tokens < 1:
            return False
        self._tokens -= 1
        return True
