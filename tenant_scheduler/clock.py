"""
Time sources.

Everything that compares against "now" takes a Clock so the memory engine
and the job manager can run against simulated time.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ManualClock:
    """
    Clock that only moves when told to.

    Used to drive delayed and recurring jobs through simulated time.
    """

    def __init__(self, start: datetime | None = None):
        self._now = ensure_utc(start) if start is not None else utcnow()

    def __call__(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0.0, **kwargs: float) -> datetime:
        """Move the clock forward and return the new time."""
        self._now += timedelta(seconds=seconds, **kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        """Jump to an absolute time."""
        self._now = ensure_utc(value)
