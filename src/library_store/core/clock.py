"""
Audit timestamps for created_at / updated_at bookkeeping.

Two updates of the same row can land within one tick of the system clock, and
callers rely on `updated_at` moving forward on every update to detect change.
`AuditClock.tick()` therefore never hands out a value that is not strictly
greater than everything it returned before, nor than the row's previous value
when one is supplied.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

RESOLUTION = timedelta(microseconds=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive values (SQLite drops the offset) are read as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AuditClock:
    """Monotonic, thread-safe source of timezone-aware UTC timestamps."""

    def __init__(self, now: Callable[[], datetime] | None = None):
        self._now = now or _utcnow
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def tick(self, after: datetime | None = None) -> datetime:
        """
        Return the current time, bumped by one microsecond past the last value
        issued and past `after` whenever either would otherwise be reached.
        """
        with self._lock:
            candidate = as_utc(self._now())
            for floor in (self._last, as_utc(after)):
                if floor is not None and candidate <= floor:
                    candidate = floor + RESOLUTION
            self._last = candidate
            return candidate


default_clock = AuditClock()
