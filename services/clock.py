"""
Time sources for the ledger.
All instants are timezone-aware UTC; storage strips tzinfo at the repository boundary.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: datetime) -> datetime:
    """Naive UTC representation used in database columns."""
    return as_utc(value).replace(tzinfo=None)


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """
    Manually driven clock for tests and replay tooling.

    Usage:
        clock = FrozenClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        clock.advance(hours=24)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = as_utc(start) if start else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = as_utc(value)

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now
