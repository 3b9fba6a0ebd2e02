"""
Daily trial refill policy
"""
from datetime import datetime, timedelta

from services.clock import as_utc

# Trial credits refill once this much time has passed since the last refill
RESET_INTERVAL = timedelta(hours=24)


def is_reset_due(last_reset_at: datetime, now: datetime) -> bool:
    """
    Check whether a trial refill is due.

    A refill is due when at least 24 hours have elapsed since last_reset_at.
    Pure function: naive datetimes are read as UTC.

    Args:
        last_reset_at: Time of the last trial refill
        now: Current instant

    Returns:
        True if the trial balance should be refilled
    """
    return as_utc(now) - as_utc(last_reset_at) >= RESET_INTERVAL


def next_reset_at(last_reset_at: datetime) -> datetime:
    """Earliest instant at which the next refill becomes due."""
    return as_utc(last_reset_at) + RESET_INTERVAL
