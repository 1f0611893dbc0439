# app/services/event_rules.py
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from app.config import get_settings
from app.models.event import Event
from app.models.host import Host


@dataclass(frozen=True)
class EventRules:
    """An event's booking rules with settings defaults filled in."""

    increment_minutes: int
    min_notice: timedelta
    booking_window: timedelta
    max_daily_bookings: Optional[int]
    max_weekly_bookings: Optional[int]


def rules_for(event: Event) -> EventRules:
    settings = get_settings()

    increment = event.start_time_increment or settings.DEFAULT_START_TIME_INCREMENT
    min_notice_hours = (
        event.min_notice_hours
        if event.min_notice_hours is not None
        else settings.DEFAULT_MIN_NOTICE_HOURS
    )
    window_days = (
        event.booking_window_days
        if event.booking_window_days is not None
        else settings.DEFAULT_BOOKING_WINDOW_DAYS
    )

    return EventRules(
        increment_minutes=increment,
        min_notice=timedelta(hours=min_notice_hours),
        booking_window=timedelta(days=window_days),
        max_daily_bookings=event.max_daily_bookings,
        max_weekly_bookings=event.max_weekly_bookings,
    )


def booking_bounds(event: Event, now: datetime) -> Tuple[datetime, datetime]:
    """(earliest, latest) start an attendee may book at `now`."""
    rules = rules_for(event)
    return now + rules.min_notice, now + rules.booking_window


def host_caps(host: Host) -> Tuple[int, int]:
    """(daily, weekly) meeting caps for a host."""
    settings = get_settings()
    daily = (
        host.max_meetings_per_day
        if host.max_meetings_per_day is not None
        else settings.DEFAULT_HOST_MAX_DAILY
    )
    weekly = (
        host.max_meetings_per_week
        if host.max_meetings_per_week is not None
        else settings.DEFAULT_HOST_MAX_WEEKLY
    )
    return daily, weekly
