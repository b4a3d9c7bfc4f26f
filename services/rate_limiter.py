"""
Per-IP token bucket guarding the login endpoint.

Each client IP gets a bucket holding up to ``capacity`` tokens. Tokens are
refilled intervally: every full ``window`` seconds since the last refill adds
``capacity`` tokens back (capped), so a client that burns its budget waits for
the window to roll over instead of trickling back one token at a time.

Buckets live in process memory for the lifetime of the limiter. Several
app instances behind a load balancer each count separately.
"""
from __future__ import annotations

import logging
import threading

from utils.clock import Clock

logger = logging.getLogger(__name__)


class _Bucket:
    __slots__ = ("capacity", "window", "tokens", "last_refill", "lock")

    def __init__(self, capacity: int, window: float, now: float):
        self.capacity = capacity
        self.window = window
        self.tokens = capacity
        self.last_refill = now
        self.lock = threading.Lock()

    def try_consume(self, now: float) -> bool:
        with self.lock:
            elapsed = now - self.last_refill
            if elapsed >= self.window:
                periods = int(elapsed // self.window)
                self.tokens = min(self.capacity, self.tokens + periods * self.capacity)
                self.last_refill += periods * self.window
            if self.tokens > 0:
                self.tokens -= 1
                return True
            return False


class RateLimiter:
    def __init__(self, capacity: int, window_seconds: float, clock: Clock | None = None):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.capacity = capacity
        self.window = float(window_seconds)
        self.clock = clock or Clock()
        self._buckets: dict[str, _Bucket] = {}
        # Guards creation/removal only; consumption uses the bucket's own lock.
        self._map_lock = threading.Lock()

    def _resolve_bucket(self, ip: str) -> _Bucket:
        bucket = self._buckets.get(ip)
        if bucket is not None:
            return bucket
        with self._map_lock:
            bucket = self._buckets.get(ip)
            if bucket is None:
                bucket = _Bucket(self.capacity, self.window, self.clock.monotonic())
                self._buckets[ip] = bucket
            return bucket

    def consume(self, ip: str) -> bool:
        """Take one token for ``ip``. False means the request must be refused."""
        allowed = self._resolve_bucket(ip).try_consume(self.clock.monotonic())
        if not allowed:
            logger.warning("Login rate limit exceeded for %s", ip)
        return allowed

    def reset(self, ip: str) -> None:
        """Forget ``ip``'s bucket, e.g. after a successful login."""
        with self._map_lock:
            self._buckets.pop(ip, None)

    def __len__(self) -> int:
        return len(self._buckets)
