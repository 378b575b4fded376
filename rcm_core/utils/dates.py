"""
Date helpers for claim aging.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from rcm_core.core.enums import AgeBucket

Clock = Callable[[], datetime]

SECONDS_PER_DAY = 86_400


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_between(start: Optional[datetime], end: datetime) -> int:
    """Whole days elapsed from start to end, floored (0 when start is unset)."""
    if start is None:
        return 0
    delta = ensure_utc(end) - ensure_utc(start)
    return int(delta.total_seconds() // SECONDS_PER_DAY)


def bucket_for_age(days: int) -> AgeBucket:
    """Map days outstanding to an aging bucket."""
    if days <= 30:
        return AgeBucket.DAYS_0_30
    if days <= 60:
        return AgeBucket.DAYS_31_60
    if days <= 90:
        return AgeBucket.DAYS_61_90
    if days <= 120:
        return AgeBucket.DAYS_91_120
    return AgeBucket.DAYS_120_PLUS


def bucket_since(start: datetime, now: datetime) -> AgeBucket:
    """Aging bucket for a timestamp relative to now."""
    return bucket_for_age(days_between(start, now))
