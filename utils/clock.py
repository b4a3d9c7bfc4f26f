"""
Time source for the security components.

Everything that judges expiry (lockout windows, token TTLs, rate-limit
windows) reads time through a Clock so tests can move it deterministically.
Datetimes are naive UTC, matching what the DateTime columns round-trip.
"""
from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone


class Clock:
    """Wall clock plus a monotonic counter."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def monotonic(self) -> float:
        return time.monotonic()


class ManualClock(Clock):
    """Clock that only moves when told to. Used by tests and dry runs."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 1, 12, 0, 0)
        self._mono = 0.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, **delta) -> None:
        """advance(seconds=30), advance(days=8), ... (timedelta keywords)"""
        step = timedelta(**delta)
        self._now += step
        self._mono += step.total_seconds()
