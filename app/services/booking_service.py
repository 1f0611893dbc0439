# app/services/booking_service.py
"""
Booking commit guard.

A booking either lands completely (seat claimed, booking row written,
round-robin counters moved) or leaves nothing behind. Seats are claimed
with one conditional UPDATE so concurrent commits can never push a slot
past its capacity.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.event import Event
from app.models.slot import Slot
from app.services.aggregator import AvailabilityMode, mode_for
from app.services.errors import DuplicateBookingError, NotFoundError, SlotFilledError
from app.services.round_robin_service import record_assignment, release_assignment
from app.timeutils import to_utc_naive, utcnow

logger = logging.getLogger(__name__)


@dataclass
class Attendee:
    first_name: str
    email: str
    last_name: Optional[str] = None
    timezone: Optional[str] = None


@dataclass(frozen=True)
class ComputedSlot:
    """A start time that has been offered but has no row yet."""

    event_id: int
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class MaterializedSlot:
    slot: Slot


SlotRef = Union[ComputedSlot, MaterializedSlot]


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValueError("A valid attendee email is required")
    return email


def resolve_slot(db: Session, event: Event, start: datetime, host_id: Optional[int]) -> SlotRef:
    """
    Find the slot a booking at `start` goes into.

    Webinar slots must already exist. For every other meeting type an
    existing row for (event, start, host) is reused, otherwise the time is
    returned as a ComputedSlot still to be materialized.
    """
    query = db.query(Slot).filter(Slot.event_id == event.id, Slot.start_time == start)

    if mode_for(event) == AvailabilityMode.STATIC:
        if host_id is not None:
            query = query.filter(Slot.assigned_host_id == host_id)
        slot = query.filter(Slot.is_cancelled.is_(False)).order_by(Slot.id.asc()).first()
        if slot is None:
            raise NotFoundError("No webinar slot at the requested time")
        return MaterializedSlot(slot)

    slot = query.filter(Slot.assigned_host_id == host_id).first()
    if slot is not None:
        return MaterializedSlot(slot)

    return ComputedSlot(
        event_id=event.id,
        start_time=start,
        end_time=start + timedelta(minutes=event.duration_minutes),
    )


def materialize_slot(db: Session, event: Event, ref: SlotRef, host_id: Optional[int]) -> Slot:
    """
    Return a persisted Slot for `ref`, creating it if needed.

    Creation commits on its own (an empty slot holds no seats), and a
    concurrent creator winning the unique (event, start, host) race simply
    means the existing row is used.
    """
    if isinstance(ref, MaterializedSlot):
        return ref.slot

    slot = Slot(
        event_id=ref.event_id,
        assigned_host_id=host_id,
        start_time=ref.start_time,
        end_time=ref.end_time,
        capacity=event.max_attendees,
        booking_count=0,
    )
    db.add(slot)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        slot = (
            db.query(Slot)
            .filter(
                Slot.event_id == ref.event_id,
                Slot.start_time == ref.start_time,
                Slot.assigned_host_id == host_id,
            )
            .first()
        )
        if slot is None:
            raise
    return slot


def commit_booking(
    db: Session,
    event: Event,
    start: datetime,
    host_id: Optional[int],
    attendee: Attendee,
    now: Optional[datetime] = None,
    *,
    expected_version: Optional[int] = None,
) -> Booking:
    """
    Atomically book one seat for `attendee`.

    `expected_version` is the rotation version a round robin host was
    picked at; the booking is refused if the rotation has moved since.

    Raises:
      - SlotFilledError if the slot is cancelled or has no seat left
      - DuplicateBookingError if the attendee already holds a live seat in it
      - NotFoundError for a webinar time with no slot
      - StaleAssignmentError if the rotation moved after the host was picked
    """
    now = now or utcnow()
    start = to_utc_naive(start)
    email = normalize_email(attendee.email)
    if not (attendee.first_name or "").strip():
        raise ValueError("Attendee first name is required")

    slot = materialize_slot(db, event, resolve_slot(db, event, start, host_id), host_id)
    slot_id = slot.id
    if slot.is_cancelled:
        raise SlotFilledError("This time slot is no longer available")

    existing = (
        db.query(Booking.id)
        .filter(
            Booking.slot_id == slot_id,
            Booking.email == email,
            Booking.cancelled_at.is_(None),
        )
        .first()
    )
    if existing is not None:
        logger.info("Duplicate booking for %s in slot %s", email, slot_id)
        raise DuplicateBookingError()

    try:
        claimed = db.execute(
            update(Slot)
            .where(
                Slot.id == slot_id,
                Slot.is_cancelled.is_(False),
                Slot.booking_count < Slot.capacity,
            )
            .values(booking_count=Slot.booking_count + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            db.rollback()
            logger.info("Slot %s is full, rejecting booking for event %s", slot_id, event.id)
            raise SlotFilledError()

        booking = Booking(
            slot_id=slot_id,
            event_id=event.id,
            assigned_host_id=slot.assigned_host_id if host_id is None else host_id,
            first_name=attendee.first_name.strip(),
            last_name=attendee.last_name,
            email=email,
            attendee_timezone=attendee.timezone,
            created_at=now,
        )
        db.add(booking)
        try:
            db.flush()
        except IntegrityError as e:
            db.rollback()
            logger.info("Duplicate booking for %s in slot %s (lost race)", email, slot_id)
            raise DuplicateBookingError() from e

        if mode_for(event) == AvailabilityMode.ANY_AVAILABLE and booking.assigned_host_id:
            record_assignment(
                db, event, booking.assigned_host_id, now, expected_version=expected_version
            )

        db.commit()
    except (SlotFilledError, DuplicateBookingError):
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info(
        "Booked slot %s for event %s (booking=%s host=%s)",
        slot_id,
        event.id,
        booking.id,
        booking.assigned_host_id,
    )
    return booking


def cancel_booking(db: Session, booking_id: int, now: Optional[datetime] = None) -> Booking:
    """
    Cancel a booking and give its seat back.

    Cancelling twice is a no-op. A round-robin booking counted in the
    current period is taken off its host's period count.
    """
    now = now or utcnow()
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    if booking.cancelled_at is not None:
        return booking

    try:
        res = db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.cancelled_at.is_(None))
            .values(cancelled_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            # Lost to a concurrent cancel
            db.rollback()
            db.refresh(booking)
            return booking

        db.execute(
            update(Slot)
            .where(Slot.id == booking.slot_id, Slot.booking_count > 0)
            .values(booking_count=Slot.booking_count - 1)
            .execution_options(synchronize_session=False)
        )

        event = db.get(Event, booking.event_id)
        if (
            event is not None
            and booking.assigned_host_id is not None
            and mode_for(event) == AvailabilityMode.ANY_AVAILABLE
        ):
            release_assignment(db, event, booking.assigned_host_id, booking.created_at, now)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info("Cancelled booking %s (slot %s)", booking.id, booking.slot_id)
    return booking


def record_external_event(db: Session, slot_id: int, external_event_ref: str) -> Slot:
    """Attach the id of the mirrored external calendar event to a slot."""
    slot = db.get(Slot, slot_id)
    if slot is None:
        raise NotFoundError(f"Slot {slot_id} not found")
    slot.external_event_ref = external_event_ref
    db.commit()
    db.refresh(slot)
    return slot
