"""In-process fixed-window request counters used by the rate limit middleware."""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int

    @property
    def retry_after(self) -> int:
        return self.reset_seconds if not self.allowed else 0


@dataclass
class _Window:
    started_at: float
    window_seconds: float
    count: int


class FixedWindowRateLimiter:
    """
    Counts hits per key in fixed windows that start at the key's first hit.

    Rejected hits are not counted. ``undo`` takes back one hit, which lets callers
    exclude successful requests from a budget. Thread-safe; bounded by ``max_keys``.
    """

    def __init__(
        self,
        *,
        max_keys: int = 100_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_keys = max_keys
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, *, limit: int, window_seconds: float) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)
            if window is None or now - window.started_at >= window.window_seconds:
                if window is None and len(self._windows) >= self._max_keys:
                    self._sweep(now)
                window = _Window(started_at=now, window_seconds=window_seconds, count=0)
                self._windows[key] = window

            reset_seconds = max(1, math.ceil(window.started_at + window_seconds - now))
            if window.count >= limit:
                return RateLimitResult(
                    allowed=False, limit=limit, remaining=0, reset_seconds=reset_seconds
                )
            window.count += 1
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=limit - window.count,
                reset_seconds=reset_seconds,
            )

    def undo(self, key: str) -> None:
        with self._lock:
            window = self._windows.get(key)
            if window is not None and window.count > 0:
                window.count -= 1

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()

    def _sweep(self, now: float) -> None:
        # Caller holds the lock.
        expired = [k for k, w in self._windows.items() if now - w.started_at >= w.window_seconds]
        for key in expired:
            del self._windows[key]
        if len(self._windows) >= self._max_keys:
            oldest = min(self._windows, key=lambda k: self._windows[k].started_at)
            del self._windows[oldest]
