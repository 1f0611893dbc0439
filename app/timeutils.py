# app/timeutils.py
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """
    Normalize an incoming datetime to naive UTC.

    Aware values are converted; naive values are assumed to already be UTC.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_date(value: datetime, tz: ZoneInfo) -> date:
    """Calendar date of a naive-UTC instant as seen in `tz`."""
    return value.replace(tzinfo=timezone.utc).astimezone(tz).date()


def week_start(day: date) -> date:
    """Sunday that starts the week containing `day`."""
    return day - timedelta(days=(day.weekday() + 1) % 7)
