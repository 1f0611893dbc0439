# app/services/slot_generator.py
"""
Per-host bookable start times.

A host's weekly patterns are projected onto concrete UTC windows, busy time
(cached calendar blocks plus the host's own committed slots, both widened by
the event buffers) is cut out, and start times are laid on a grid anchored at
the start of each local day's windows, so the grid never depends on the
range being asked about.

Everything here works on naive UTC datetimes.
"""
import heapq
from bisect import bisect_right
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.models.event import Event, EventHost, MeetingType
from app.models.host import Host
from app.models.slot import Slot
from app.services.availability_pattern_service import PatternWindow, get_active_patterns
from app.services.errors import NotFoundError
from app.services.event_rules import rules_for
from app.services.interval_cache import get_busy_intervals
from app.timeutils import to_utc_naive

Interval = Tuple[datetime, datetime]

# Extra time loaded around a range so blocks just outside it still apply
SCHEDULE_PAD = timedelta(days=1)


@dataclass(frozen=True, order=True)
class CandidateSlot:
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class CommittedSlot:
    slot_id: int
    start_time: datetime
    end_time: datetime
    # Same event with seats left: offered again at its exact start
    reofferable: bool = False


@dataclass
class HostSchedule:
    host_id: int
    patterns: List[PatternWindow]
    busy: List[Interval]
    committed: List[CommittedSlot]
    calendar_connected: bool = False


def _local_to_utc(day: date, at: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)


def merge_intervals(intervals: Sequence[Interval]) -> List[Interval]:
    """Sort and merge overlapping or touching intervals."""
    merged: List[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def subtract_intervals(window: Interval, blocks: Sequence[Interval]) -> List[Interval]:
    """Parts of `window` not covered by `blocks` (which must be merged and sorted)."""
    cursor, end = window
    free: List[Interval] = []
    for block_start, block_end in blocks:
        if block_end <= cursor:
            continue
        if block_start >= end:
            break
        if block_start > cursor:
            free.append((cursor, block_start))
        cursor = max(cursor, block_end)
        if cursor >= end:
            break
    if cursor < end:
        free.append((cursor, end))
    return free


def _day_windows(
    patterns: Sequence[PatternWindow],
    range_start: datetime,
    range_end: datetime,
) -> List[Interval]:
    """
    Grid windows overlapping [range_start, range_end), sorted by start.

    Each local day's windows are merged among themselves and only then
    matched against the range, so a window (and the grid anchored at its
    start) is the same whatever range it is looked up with. Windows of
    neighbouring days are kept apart and may touch.

    A host with no active patterns at all is treated as available all day:
    one window per UTC day.
    """
    windows: List[Interval] = []
    # Local dates can sit a day either side of the UTC range
    day = range_start.date() - timedelta(days=1)
    last_day = range_end.date() + timedelta(days=1)
    zones = {}
    while day <= last_day:
        if patterns:
            local: List[Interval] = []
            for p in patterns:
                if p.day_of_week != day.weekday():
                    continue
                tz = zones.get(p.timezone)
                if tz is None:
                    tz = zones[p.timezone] = ZoneInfo(p.timezone)
                start = _local_to_utc(day, p.start_time, tz)
                end = _local_to_utc(day, p.end_time, tz)
                if end > start:
                    local.append((start, end))
            day_windows = merge_intervals(local)
        else:
            midnight = datetime.combine(day, time.min)
            day_windows = [(midnight, midnight + timedelta(days=1))]

        windows.extend(w for w in day_windows if w[1] > range_start and w[0] < range_end)
        day += timedelta(days=1)

    return sorted(windows)


def pattern_windows(
    patterns: Sequence[PatternWindow],
    range_start: datetime,
    range_end: datetime,
) -> List[Interval]:
    """UTC availability windows overlapping [range_start, range_end), merged."""
    return merge_intervals(_day_windows(patterns, range_start, range_end))


def _next_grid_point(anchor: datetime, at: datetime, step: timedelta) -> datetime:
    """First anchor + k*step that is >= at."""
    if at <= anchor:
        return anchor
    return anchor + (-((anchor - at) // step)) * step


def _blocking_intervals(
    schedule: HostSchedule,
    buffer_before: timedelta,
    buffer_after: timedelta,
    skip_slot_id: Optional[int] = None,
) -> List[Interval]:
    # A block [s, e) rules out any meeting that would need time in
    # [s - buffer_after, e + buffer_before)
    blocks = [(s - buffer_after, e + buffer_before) for s, e in schedule.busy]
    blocks.extend(
        (c.start_time - buffer_after, c.end_time + buffer_before)
        for c in schedule.committed
        if c.slot_id != skip_slot_id
    )
    return merge_intervals(blocks)


def free_windows(
    schedule: HostSchedule,
    start: datetime,
    end: datetime,
    buffer_before: int = 0,
    buffer_after: int = 0,
) -> List[Interval]:
    """Free time inside [start, end) once busy time and buffers are cut out."""
    if end <= start:
        return []
    blocks = _blocking_intervals(
        schedule, timedelta(minutes=buffer_before), timedelta(minutes=buffer_after)
    )
    free: List[Interval] = []
    for window in pattern_windows(schedule.patterns, start, end):
        for s, e in subtract_intervals(window, blocks):
            s, e = max(s, start), min(e, end)
            if s < e:
                free.append((s, e))
    return free


def _committed_slots(
    db: Session,
    host_id: int,
    lo: datetime,
    hi: datetime,
    *,
    event_id: Optional[int],
    exclude_event_id: Optional[int],
) -> List[CommittedSlot]:
    # Collective slots are assigned to the primary host but occupy every participant
    collective_events = (
        select(EventHost.event_id)
        .join(Event, Event.id == EventHost.event_id)
        .where(
            EventHost.host_id == host_id,
            Event.meeting_type == MeetingType.COLLECTIVE.value,
        )
    )

    rows = (
        db.query(Slot)
        .join(Event, Event.id == Slot.event_id)
        .filter(
            Slot.is_cancelled.is_(False),
            Slot.start_time < hi,
            Slot.end_time > lo,
            or_(Slot.assigned_host_id == host_id, Slot.event_id.in_(collective_events)),
            # Dynamic slots only block once booked; webinars block from creation
            or_(Slot.booking_count > 0, Event.meeting_type == MeetingType.WEBINAR.value),
        )
        .order_by(Slot.start_time.asc())
        .all()
    )

    committed: List[CommittedSlot] = []
    for slot in rows:
        if exclude_event_id is not None and slot.event_id == exclude_event_id:
            continue
        committed.append(
            CommittedSlot(
                slot_id=slot.id,
                start_time=slot.start_time,
                end_time=slot.end_time,
                reofferable=(
                    event_id is not None
                    and slot.event_id == event_id
                    and slot.booking_count < slot.capacity
                ),
            )
        )
    return committed


def load_host_schedule(
    db: Session,
    host_id: int,
    range_start: datetime,
    range_end: datetime,
    *,
    event_id: Optional[int] = None,
    exclude_event_id: Optional[int] = None,
) -> HostSchedule:
    """
    Read everything that shapes a host's availability around a range.

    Busy intervals are skipped entirely for hosts without a connected
    calendar; patterns and committed slots still apply.
    """
    host = db.get(Host, host_id)
    if host is None:
        raise NotFoundError(f"Host {host_id} not found")

    lo = range_start - SCHEDULE_PAD
    hi = range_end + SCHEDULE_PAD

    patterns = [
        PatternWindow(
            day_of_week=p.day_of_week,
            start_time=p.start_time,
            end_time=p.end_time,
            timezone=p.timezone,
        )
        for p in get_active_patterns(db, host_id)
    ]

    busy: List[Interval] = []
    if host.calendar_connected:
        busy = [(b.start_time, b.end_time) for b in get_busy_intervals(db, host_id, lo, hi)]

    return HostSchedule(
        host_id=host_id,
        patterns=patterns,
        busy=busy,
        committed=_committed_slots(
            db, host_id, lo, hi, event_id=event_id, exclude_event_id=exclude_event_id
        ),
        calendar_connected=host.calendar_connected,
    )


class HostSlotSequence:
    """
    Bookable slots for one host, strictly increasing by start.

    Slots are produced lazily and the sequence can be iterated any number of
    times; every iteration starts from the beginning.
    """

    def __init__(
        self,
        schedule: HostSchedule,
        *,
        duration_minutes: int,
        earliest: datetime,
        latest: datetime,
        increment_minutes: int = 30,
        buffer_before: int = 0,
        buffer_after: int = 0,
    ):
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        if increment_minutes <= 0:
            raise ValueError("increment_minutes must be positive")
        if buffer_before < 0 or buffer_after < 0:
            raise ValueError("buffers cannot be negative")

        self.schedule = schedule
        self.host_id = schedule.host_id
        self.duration = timedelta(minutes=duration_minutes)
        self.increment = timedelta(minutes=increment_minutes)
        self.buffer_before = timedelta(minutes=buffer_before)
        self.buffer_after = timedelta(minutes=buffer_after)
        self.earliest = to_utc_naive(earliest)
        self.latest = to_utc_naive(latest)

    def _blocks(self, skip_slot_id: Optional[int] = None) -> List[Interval]:
        return _blocking_intervals(self.schedule, self.buffer_before, self.buffer_after, skip_slot_id)

    def _availability(self) -> List[Interval]:
        return pattern_windows(self.schedule.patterns, self.earliest, self.latest + self.duration)

    def free_windows(self) -> List[Interval]:
        """Free time inside [earliest, latest + duration)."""
        if self.latest < self.earliest:
            return []
        return free_windows(
            self.schedule,
            self.earliest,
            self.latest + self.duration,
            buffer_before=int(self.buffer_before.total_seconds() // 60),
            buffer_after=int(self.buffer_after.total_seconds() // 60),
        )

    def free_hours(self) -> float:
        return sum((end - start).total_seconds() for start, end in self.free_windows()) / 3600.0

    def _grid_slots(self) -> Iterator[CandidateSlot]:
        if self.latest < self.earliest:
            return iter(())

        grid_windows = _day_windows(self.schedule.patterns, self.earliest, self.latest + self.duration)
        blocks = self._blocks()
        free: List[Interval] = []
        for window in merge_intervals(grid_windows):
            free.extend(subtract_intervals(window, blocks))
        free_starts = [s for s, _ in free]

        def fits(t: datetime) -> bool:
            i = bisect_right(free_starts, t) - 1
            return i >= 0 and t + self.duration <= free[i][1]

        def walk(anchor: datetime, window_end: datetime) -> Iterator[CandidateSlot]:
            # Starts stay inside their own window; the meeting may run on
            # into a touching one
            t = _next_grid_point(anchor, self.earliest, self.increment)
            while t < window_end and t <= self.latest:
                if fits(t):
                    yield CandidateSlot(start_time=t, end_time=t + self.duration)
                t += self.increment

        return heapq.merge(*(walk(s, e) for s, e in grid_windows))

    def _reoffered_slots(self) -> List[CandidateSlot]:
        reoffers = [c for c in self.schedule.committed if c.reofferable]
        if not reoffers:
            return []

        windows = self._availability()
        slots: List[CandidateSlot] = []
        for c in reoffers:
            if c.end_time - c.start_time != self.duration:
                continue
            if not self.earliest <= c.start_time <= self.latest:
                continue
            if not any(ws <= c.start_time and c.end_time <= we for ws, we in windows):
                continue
            others = self._blocks(skip_slot_id=c.slot_id)
            if any(bs < c.end_time and c.start_time < be for bs, be in others):
                continue
            slots.append(CandidateSlot(start_time=c.start_time, end_time=c.end_time))
        return sorted(slots)

    def __iter__(self) -> Iterator[CandidateSlot]:
        last_start = None
        for slot in heapq.merge(self._grid_slots(), self._reoffered_slots()):
            if slot.start_time != last_start:
                last_start = slot.start_time
                yield slot

    def is_available_at(self, start: datetime) -> bool:
        start = to_utc_naive(start)
        for slot in self:
            if slot.start_time == start:
                return True
            if slot.start_time > start:
                return False
        return False


def generate_host_slots(
    db: Session,
    host_id: int,
    *,
    duration_minutes: int,
    earliest: datetime,
    latest: datetime,
    increment_minutes: int = 30,
    buffer_before: int = 0,
    buffer_after: int = 0,
    event_id: Optional[int] = None,
    exclude_event_id: Optional[int] = None,
) -> HostSlotSequence:
    earliest = to_utc_naive(earliest)
    latest = to_utc_naive(latest)
    schedule = load_host_schedule(
        db,
        host_id,
        earliest,
        latest + timedelta(minutes=duration_minutes),
        event_id=event_id,
        exclude_event_id=exclude_event_id,
    )
    return HostSlotSequence(
        schedule,
        duration_minutes=duration_minutes,
        earliest=earliest,
        latest=latest,
        increment_minutes=increment_minutes,
        buffer_before=buffer_before,
        buffer_after=buffer_after,
    )


def event_host_slots(
    db: Session,
    event: Event,
    host_id: int,
    earliest: datetime,
    latest: datetime,
) -> HostSlotSequence:
    """Slot sequence for one host using the event's duration, buffers and increment."""
    return generate_host_slots(
        db,
        host_id,
        duration_minutes=event.duration_minutes,
        earliest=earliest,
        latest=latest,
        increment_minutes=rules_for(event).increment_minutes,
        buffer_before=event.buffer_before or 0,
        buffer_after=event.buffer_after or 0,
        event_id=event.id,
    )
