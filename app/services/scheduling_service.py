# app/services/scheduling_service.py
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.event import Event, MeetingType
from app.models.host import Host
from app.models.slot import Slot
from app.services.aggregator import (
    AvailabilityMode,
    any_available_slots,
    collective_slots,
    mode_for,
    participating_hosts,
    primary_host_id,
)
from app.services.booking_service import Attendee, commit_booking
from app.services.constraint_filter import filter_slots
from app.services.errors import NotFoundError, SlotFilledError, StaleAssignmentError
from app.services.event_rules import booking_bounds
from app.services.host_selector import check_requested_host, select_host
from app.services.slot_generator import CandidateSlot, event_host_slots
from app.timeutils import to_utc_naive, utcnow

logger = logging.getLogger(__name__)

# Fresh host picks tried when the rotation moves under a booking
ASSIGNMENT_ATTEMPTS = 3


def get_event(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    return event


def _static_slots(db: Session, event: Event, earliest: datetime, latest: datetime) -> List[CandidateSlot]:
    rows = (
        db.query(Slot)
        .filter(
            Slot.event_id == event.id,
            Slot.is_cancelled.is_(False),
            Slot.booking_count < Slot.capacity,
            Slot.start_time >= earliest,
            Slot.start_time <= latest,
        )
        .order_by(Slot.start_time.asc())
        .all()
    )
    slots: List[CandidateSlot] = []
    for row in rows:
        # Several webinar rows may share a start; offer it once
        if slots and slots[-1].start_time == row.start_time:
            continue
        slots.append(CandidateSlot(start_time=row.start_time, end_time=row.end_time))
    return slots


def _all_calendars_failing(db: Session, host_ids: List[int]) -> bool:
    hosts = db.query(Host).filter(Host.id.in_(host_ids)).all()
    return bool(hosts) and all(h.calendar_connected and h.calendar_sync_error for h in hosts)


def _candidate_slots(
    db: Session,
    event: Event,
    earliest: datetime,
    latest: datetime,
    now: datetime,
) -> List[CandidateSlot]:
    """Bookable slots with starts in [earliest, latest] (both inclusive)."""
    lo, hi = booking_bounds(event, now)
    earliest = max(earliest, lo)
    latest = min(latest, hi)
    if latest < earliest:
        return []

    mode = mode_for(event)

    if mode == AvailabilityMode.STATIC:
        return filter_slots(db, event, _static_slots(db, event, earliest, latest), now=now)

    if mode == AvailabilityMode.PRIMARY_HOST:
        host_id = primary_host_id(db, event)
        if host_id is None:
            return []
        slots = list(event_host_slots(db, event, host_id, earliest, latest))
        return filter_slots(db, event, slots, now=now, primary_host_id=host_id)

    host_ids = [eh.host_id for eh in participating_hosts(db, event)]
    if not host_ids:
        return []

    sequences = [event_host_slots(db, event, host_id, earliest, latest) for host_id in host_ids]

    if mode == AvailabilityMode.COLLECTIVE:
        if _all_calendars_failing(db, host_ids):
            logger.warning(
                "Every host of collective event %s has a failing calendar sync; offering no times",
                event.id,
            )
            return []
        slots = collective_slots(sequences)
    else:
        slots = any_available_slots(sequences)

    return filter_slots(db, event, slots, now=now)


def get_available_slots(
    db: Session,
    event: Event,
    range_start: datetime,
    range_end: datetime,
    now: Optional[datetime] = None,
) -> List[CandidateSlot]:
    """
    Bookable start times for an event with range_start <= start < range_end.

    Slots come back sorted by start with no duplicates.
    """
    range_start = to_utc_naive(range_start)
    range_end = to_utc_naive(range_end)
    if range_end <= range_start:
        raise ValueError("range_end must be after range_start")

    now = now or utcnow()
    slots = _candidate_slots(db, event, range_start, range_end, now)
    return [s for s in slots if s.start_time < range_end]


def is_bookable(db: Session, event: Event, start: datetime, now: Optional[datetime] = None) -> bool:
    start = to_utc_naive(start)
    now = now or utcnow()
    return any(s.start_time == start for s in _candidate_slots(db, event, start, start, now))


def book(
    db: Session,
    event: Event,
    start: datetime,
    attendee: Attendee,
    *,
    host_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Book an offered time: check it is still bookable, pick (or check) the
    host, then hand over to the commit guard. A pick that goes stale
    before commit is made again.
    """
    start = to_utc_naive(start)
    now = now or utcnow()

    if not is_bookable(db, event, start, now):
        raise SlotFilledError("This time is no longer available")

    if host_id is not None:
        check_requested_host(db, event, host_id, start, now)
        return commit_booking(db, event, start, host_id, attendee, now)

    for attempt in range(1, ASSIGNMENT_ATTEMPTS + 1):
        assignment = select_host(db, event, start, attendee.email, now)
        try:
            return commit_booking(
                db,
                event,
                start,
                assignment.host_id,
                attendee,
                now,
                expected_version=assignment.expected_version,
            )
        except StaleAssignmentError:
            if attempt == ASSIGNMENT_ATTEMPTS:
                raise
            logger.info("Re-picking host for event %s at %s (attempt %d)", event.id, start.isoformat(), attempt)


def create_webinar_slot(
    db: Session,
    event: Event,
    start: datetime,
    *,
    host_id: Optional[int] = None,
) -> Slot:
    """Admin-created slot for a webinar; capacity comes from the event."""
    if event.meeting_type != MeetingType.WEBINAR.value:
        raise ValueError("Only webinar events take pre-created slots")

    start = to_utc_naive(start)
    if host_id is None:
        host_id = primary_host_id(db, event)

    slot = Slot(
        event_id=event.id,
        assigned_host_id=host_id,
        start_time=start,
        end_time=start + timedelta(minutes=event.duration_minutes),
        capacity=event.max_attendees,
        booking_count=0,
    )
    db.add(slot)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValueError("A webinar slot already exists at this time") from e
    db.refresh(slot)
    return slot
