"""
Rate limiting for the proven service.

Sliding window limiter keyed by client, one instance per endpoint class
(runs and admin calls are limited separately). Clients are identified by
API key, else by peer address; see ``security.extract_client_id``.
"""

import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Deque, Optional


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int
    reset_at: float
    retry_after: Optional[float] = None


class RateLimiter:
    """
    Sliding window rate limiter.

    Keys are kept in order of their latest recorded hit, so keys whose
    window has passed are dropped from the front as new hits arrive, and
    the table never holds more than ``max_keys`` clients.

    Thread-safe; FastAPI runs sync endpoints in a worker pool.
    """

    def __init__(self, rpm: int, window_seconds: int = 60, clock=time.time, max_keys: int = 10000):
        """
        Args:
            rpm: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
            clock: Time source, seconds since the epoch
            max_keys: Most clients tracked at once; the least recently
                seen client is forgotten first
        """
        self._limit = max(1, rpm)
        self._window = window_seconds
        self._clock = clock
        self._max_keys = max(1, max_keys)
        self._hits: "OrderedDict[str, Deque[float]]" = OrderedDict()
        self._lock = threading.RLock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def tracked(self) -> int:
        """Number of clients currently held."""
        with self._lock:
            return len(self._hits)

    def allow(self, key: str) -> bool:
        return self.check(key).allowed

    def check(self, key: str) -> RateLimitResult:
        """
        Record a hit for ``key`` unless it is over the limit.

        Rejected hits are not recorded, so a client that keeps retrying
        regains access as soon as its oldest hit leaves the window.
        """
        now = self._clock()
        window_start = now - self._window

        with self._lock:
            self._drop_stale(window_start)
            q = self._hits.get(key)
            if q is None:
                q = deque()
            while q and q[0] <= window_start:
                q.popleft()

            reset_at = (q[0] + self._window) if q else (now + self._window)
            if len(q) >= self._limit:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=max(0.0, q[0] + self._window - now)
                )

            q.append(now)
            if key not in self._hits:
                while len(self._hits) >= self._max_keys:
                    self._hits.popitem(last=False)
                self._hits[key] = q
            else:
                self._hits.move_to_end(key)
            return RateLimitResult(
                allowed=True,
                remaining=self._limit - len(q),
                reset_at=reset_at
            )

    def _drop_stale(self, window_start: float) -> None:
        # Front of the table holds the key with the oldest latest hit.
        while self._hits:
            key, q = next(iter(self._hits.items()))
            if q and q[-1] > window_start:
                return
            del self._hits[key]

    def reset(self, key: Optional[str] = None) -> None:
        """Reset counters for ``key``, or for every key."""
        with self._lock:
            if key:
                self._hits.pop(key, None)
            else:
                self._hits.clear()

    def cleanup_expired(self) -> int:
        """
        Drop expired hits from all keys.

        Returns:
            Number of entries removed
        """
        window_start = self._clock() - self._window
        removed = 0

        with self._lock:
            for key in list(self._hits):
                q = self._hits[key]
                while q and q[0] <= window_start:
                    q.popleft()
                    removed += 1
                if not q:
                    del self._hits[key]

        return removed
