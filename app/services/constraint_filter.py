# app/services/constraint_filter.py
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Set, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.booking import Booking
from app.models.event import Event
from app.models.host import Host
from app.models.slot import Slot
from app.services.event_rules import booking_bounds, host_caps, rules_for
from app.services.holiday_service import list_holidays
from app.services.slot_generator import CandidateSlot
from app.timeutils import local_date, week_start

# Wide enough to cover the whole local week around any slot
COUNT_PAD = timedelta(days=8)


@dataclass
class DayWeekCounts:
    daily: Counter
    weekly: Counter
    # Exact starts counted, so an existing meeting is not held against its own cap
    starts: set = field(default_factory=set)

    def day(self, day: date) -> int:
        return self.daily[day]

    def week(self, day: date) -> int:
        return self.weekly[week_start(day)]


def company_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().COMPANY_TIMEZONE)


def _bucket(starts: Iterable[datetime], tz: ZoneInfo) -> DayWeekCounts:
    daily: Counter = Counter()
    weekly: Counter = Counter()
    seen = set()
    for start in starts:
        seen.add(start)
        d = local_date(start, tz)
        daily[d] += 1
        weekly[week_start(d)] += 1
    return DayWeekCounts(daily=daily, weekly=weekly, starts=seen)


def event_booking_counts(
    db: Session,
    event_id: int,
    lo: datetime,
    hi: datetime,
    tz: Optional[ZoneInfo] = None,
) -> DayWeekCounts:
    """Live (non-cancelled) bookings of an event per local day and week."""
    rows = (
        db.query(Slot.start_time)
        .join(Booking, Booking.slot_id == Slot.id)
        .filter(
            Booking.event_id == event_id,
            Booking.cancelled_at.is_(None),
            Slot.start_time >= lo - COUNT_PAD,
            Slot.start_time < hi + COUNT_PAD,
        )
        .all()
    )
    return _bucket((r[0] for r in rows), tz or company_tz())


def host_meeting_counts(
    db: Session,
    host_id: int,
    lo: datetime,
    hi: datetime,
    tz: Optional[ZoneInfo] = None,
) -> DayWeekCounts:
    """Meetings (booked slots, across all events) a host holds per local day and week."""
    rows = (
        db.query(Slot.start_time)
        .filter(
            Slot.assigned_host_id == host_id,
            Slot.is_cancelled.is_(False),
            Slot.booking_count > 0,
            Slot.start_time >= lo - COUNT_PAD,
            Slot.start_time < hi + COUNT_PAD,
        )
        .all()
    )
    return _bucket((r[0] for r in rows), tz or company_tz())


def host_has_capacity(counts: DayWeekCounts, day: date, caps: Tuple[int, int]) -> bool:
    daily_cap, weekly_cap = caps
    return counts.day(day) < daily_cap and counts.week(day) < weekly_cap


def filter_slots(
    db: Session,
    event: Event,
    slots: Iterable[CandidateSlot],
    *,
    now: datetime,
    primary_host_id: Optional[int] = None,
    holidays: Optional[Set[date]] = None,
) -> List[CandidateSlot]:
    """
    Drop candidate slots that break the event's booking rules.

    A slot survives only if it:
    - starts at or after now + minimum notice
    - starts at or before now + booking window
    - does not fall on a company holiday (company-timezone date)
    - fits the event's daily and weekly booking caps
    - fits the primary host's personal meeting caps, when one is given

    Order is preserved. Holidays are looked up unless passed in.
    """
    slots = list(slots)
    if not slots:
        return []

    rules = rules_for(event)
    earliest, latest = booking_bounds(event, now)
    tz = company_tz()

    lo = slots[0].start_time
    hi = slots[-1].start_time
    if holidays is None:
        holidays = list_holidays(db, local_date(lo, tz), local_date(hi, tz))

    event_counts = None
    if rules.max_daily_bookings is not None or rules.max_weekly_bookings is not None:
        event_counts = event_booking_counts(db, event.id, lo, hi, tz)

    host_counts = None
    caps = None
    if primary_host_id is not None:
        host = db.get(Host, primary_host_id)
        if host is not None:
            caps = host_caps(host)
            host_counts = host_meeting_counts(db, primary_host_id, lo, hi, tz)

    kept: List[CandidateSlot] = []
    for slot in slots:
        if slot.start_time < earliest or slot.start_time > latest:
            continue

        day = local_date(slot.start_time, tz)
        if day in holidays:
            continue

        if event_counts is not None:
            if rules.max_daily_bookings is not None and event_counts.day(day) >= rules.max_daily_bookings:
                continue
            if rules.max_weekly_bookings is not None and event_counts.week(day) >= rules.max_weekly_bookings:
                continue

        if (
            host_counts is not None
            and slot.start_time not in host_counts.starts
            and not host_has_capacity(host_counts, day, caps)
        ):
            continue

        kept.append(slot)

    return kept
