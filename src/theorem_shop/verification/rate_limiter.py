"""Fixed-window request counter keyed by (client, operation).

Bursts straddling a window boundary can briefly reach about twice the
nominal rate; that is acceptable for deterring code-issuance abuse.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: Optional[int] = None


class RateLimiter:
    """In-memory fixed-window rate limiter."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()

    def check(self, key: str, max_requests: int, window_seconds: float) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now > window.reset_at:
                self._windows[key] = RateLimitWindow(count=1, reset_at=now + window_seconds)
                return RateLimitDecision(allowed=True)

            if window.count >= max_requests:
                retry_after = max(1, math.ceil(window.reset_at - now))
                return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

            window.count += 1
            return RateLimitDecision(allowed=True)

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, w in self._windows.items() if now > w.reset_at]
            for key in expired:
                del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
