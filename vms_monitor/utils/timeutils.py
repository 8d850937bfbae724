# vms_monitor/utils/timeutils.py
"""Naive-UTC time helpers shared by the monitors and the models."""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (matches the DB columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def floor_to_bucket(ts: datetime, minutes: int) -> datetime:
    """Floor a timestamp to the start of its N-minute bucket."""
    ts = ts.replace(second=0, microsecond=0)
    return ts - timedelta(minutes=ts.minute % minutes)


def whole_minutes(delta: timedelta) -> int:
    """Whole minutes in a positive interval, truncated."""
    return int(delta.total_seconds() // 60)


_EPOCH = datetime(1970, 1, 1)


def window_slot(ts: datetime, minutes: int) -> int:
    """
    Index of the fixed `minutes`-wide slot containing ts. Two events at least
    `minutes` apart always land in different slots.
    """
    return int((ts - _EPOCH).total_seconds() // (max(1, minutes) * 60))
