"""
Clock abstraction.

Ban expiry depends on "now", so every component takes a clock instead of
calling datetime directly. Tests use ManualClock and advance it by days.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    """Anything with a now() returning an aware UTC datetime."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """
    A clock that only moves when told to.

    Example:
        clock = ManualClock()
        clock.advance(days=8)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, days: float = 0, hours: float = 0, seconds: float = 0) -> datetime:
        """Move the clock forward and return the new time."""
        with self._lock:
            self._now += timedelta(days=days, hours=hours, seconds=seconds)
            return self._now

    def set(self, moment: datetime) -> None:
        with self._lock:
            self._now = moment
