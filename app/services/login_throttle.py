"""Login-attempt throttle: lock out a client address after repeated failed logins."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from app.core.logging_config import get_security_logger

logger = get_security_logger()


@dataclass
class _Attempts:
    count: int
    last_attempt: float


class LoginAttemptThrottle:
    """
    Per-key failed-login counter with lazy expiry.

    A key is blocked once it has ``max_attempts`` failures and its last failure is less
    than ``lockout_seconds`` old. The window runs from the last attempt, so failures keep
    the lock alive. A successful login calls ``reset``.

    Every operation holds one lock; route handlers run in a threadpool. The map is bounded
    by ``max_keys``: expired entries are swept first, then the stalest entries evicted.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        lockout_seconds: float = 15 * 60,
        max_keys: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_attempts = max_attempts
        self._lockout_seconds = lockout_seconds
        self._max_keys = max_keys
        self._clock = clock
        self._entries: dict[str, _Attempts] = {}
        self._lock = threading.Lock()

    def record_failure(self, key: str) -> int:
        """Count one failed attempt for key. Returns the updated count."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or self._expired(entry, now):
                if entry is None and len(self._entries) >= self._max_keys:
                    self._make_room(now)
                entry = _Attempts(count=0, last_attempt=now)
                self._entries[key] = entry
            entry.count += 1
            entry.last_attempt = now
            if entry.count == self._max_attempts:
                logger.warning("Login lockout started: key=%s attempts=%s", key, entry.count)
            return entry.count

    def is_blocked(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._expired(entry, self._clock()):
                return False
            return entry.count >= self._max_attempts

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def attempts(self, key: str) -> int:
        """Failures currently counted for key (0 once the window has elapsed)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._expired(entry, self._clock()):
                return 0
            return entry.count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _expired(self, entry: _Attempts, now: float) -> bool:
        return now - entry.last_attempt >= self._lockout_seconds

    def _make_room(self, now: float) -> None:
        # Caller holds the lock.
        for key in [k for k, e in self._entries.items() if self._expired(e, now)]:
            del self._entries[key]
        overflow = len(self._entries) - self._max_keys + 1
        if overflow > 0:
            stalest = sorted(self._entries, key=lambda k: self._entries[k].last_attempt)[:overflow]
            for key in stalest:
                del self._entries[key]
