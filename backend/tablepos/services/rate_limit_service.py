# Overview: In-process sliding-window rate limiter keyed by client and action.

"""
Sliding-Window Rate Limiter

WHY: Public (QR) endpoints are unauthenticated, so order floods and rapid
payment attempts have to be throttled per client before they reach the
database.

DESIGN:
- Keyed by client + action (e.g. "order:203.0.113.7")
- Each key keeps the timestamps of its accepted calls
- A call is accepted only if fewer than `limit` calls were accepted in the
  trailing `window`; rejected calls are NOT recorded (rejection never extends
  a client's penalty)
- One lock over the whole key space; every critical section is O(limit)
  with no I/O
- In-memory only: state does not survive a restart

An instance lives on the Flask app (see tablepos.components); tests build
their own instances with a fake clock.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from datetime import timedelta


class SlidingWindowRateLimiter:
    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: dict[str, deque] = {}

    @staticmethod
    def _seconds(window) -> float:
        if isinstance(window, timedelta):
            return window.total_seconds()
        return float(window)

    def allow(self, key: str, limit: int, window) -> bool:
        """
        Record and accept a call for `key`, or reject it.

        Returns True if accepted, False if `limit` calls were already
        accepted inside the trailing window.
        """
        if limit <= 0:
            return False
        window_s = self._seconds(window)

        with self._lock:
            now = self._clock()
            hits = self._hits.get(key)
            if hits is None:
                hits = deque()
                self._hits[key] = hits

            cutoff = now - window_s
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= limit:
                return False

            hits.append(now)
            return True

    def retry_after(self, key: str, window) -> int:
        """Whole seconds until the oldest hit for `key` leaves the window."""
        window_s = self._seconds(window)
        with self._lock:
            hits = self._hits.get(key)
            if not hits:
                return 0
            remaining = hits[0] + window_s - self._clock()
        return max(0, math.ceil(remaining))

    def remaining(self, key: str, limit: int, window) -> int:
        window_s = self._seconds(window)
        with self._lock:
            hits = self._hits.get(key)
            if not hits:
                return limit
            cutoff = self._clock() - window_s
            live = sum(1 for t in hits if t > cutoff)
        return max(0, limit - live)

    def prune(self, max_window) -> int:
        """
        Drop keys with no hits inside `max_window`.

        Returns the number of keys removed. Safe to call from a sweeper.
        """
        cutoff = self._clock() - self._seconds(max_window)
        removed = 0
        with self._lock:
            for key in list(self._hits.keys()):
                hits = self._hits[key]
                while hits and hits[0] <= cutoff:
                    hits.popleft()
                if not hits:
                    del self._hits[key]
                    removed += 1
        return removed

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
