"""
UTC time helpers.

Datetimes are stored naive in UTC; everything that compares against "now"
goes through these helpers so aware and naive values never meet.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current wall-clock time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware or naive datetime to naive UTC (naive input is assumed UTC)."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """Serialize a stored UTC datetime with an explicit Z suffix."""
    if value is None:
        return None
    return to_utc(value).isoformat() + "Z"
