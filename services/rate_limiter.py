"""
Rate limiting for outbound sends.

The dispatcher only calls wait() between recipients; throughput policy lives
here so it can be tested without running a dispatch.
"""

import threading
import time
from typing import Callable, Optional


class FixedIntervalRateLimiter:
    """
    Enforces a minimum interval between consecutive permits.

    The first call to wait() returns immediately. Each later call sleeps only
    for whatever part of the interval has not already elapsed since the
    previous permit, so slow sends are not penalized twice.
    """

    def __init__(self, interval_seconds: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        self.interval = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = threading.Lock()

    def wait(self) -> float:
        """
        Block until the next permit is available.

        Returns:
            Seconds slept
        """
        with self._lock:
            slept = 0.0
            now = self._clock()
            if self._last is not None and self.interval > 0:
                remaining = self.interval - (now - self._last)
                if remaining > 0:
                    self._sleep(remaining)
                    slept = remaining
                    now = self._clock()
            self._last = now
            return slept

    def reset(self) -> None:
        with self._lock:
            self._last = None
