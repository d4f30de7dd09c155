"""
In-memory sliding-window limiter for failed login attempts.

Only failures are recorded, so a user who logs in successfully never uses
up the budget. One instance lives on each app (`app.extensions`), which
means the counters are per process.
"""
from __future__ import annotations

import threading
import time


class RateLimiter:

    def __init__(self, limit: int, window_seconds: int, clock=time.monotonic):
        self.limit = max(1, int(limit))
        self.window_seconds = max(1, int(window_seconds))
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, list[float]] = {}

    def _live(self, key: str, now: float) -> list[float]:
        start = now - self.window_seconds
        bucket = [ts for ts in self._windows.get(key, []) if ts > start]
        if bucket:
            self._windows[key] = bucket
        else:
            self._windows.pop(key, None)
        return bucket

    def check(self, key: str) -> tuple[bool, int]:
        """(allowed, retry_after_seconds) for key, without recording anything."""
        now = self._clock()
        with self._lock:
            bucket = self._live(key, now)
            if len(bucket) < self.limit:
                return True, 0
            retry_after = int(max(1, self.window_seconds - (now - min(bucket))))
        return False, retry_after

    def hit(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            bucket = self._live(key, now)
            bucket.append(now)
            self._windows[key] = bucket

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)
