# app/routers/events.py
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.booking import Booking
from app.services.aggregator import AvailabilityMode, mode_for
from app.services.booking_service import Attendee
from app.services.errors import (
    BookingConflictError,
    NoHostAvailableError,
    NotFoundError,
    SchedulingError,
)
from app.services.host_selector import assign_host
from app.services.round_robin_service import round_robin_stats
from app.services.scheduling_service import (
    book,
    create_webinar_slot,
    get_available_slots,
    get_event,
)
from app.timeutils import to_utc_naive

router = APIRouter()


class AssignHostRequest(BaseModel):
    start_time: datetime
    attendee_email: Optional[str] = None


class BookingCreate(BaseModel):
    start_time: datetime
    first_name: str
    last_name: Optional[str] = None
    email: str
    attendee_timezone: Optional[str] = None
    host_id: Optional[int] = None

    @field_validator("first_name", "email")
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class WebinarSlotCreate(BaseModel):
    start_time: datetime
    host_id: Optional[int] = None


def to_http_error(exc: SchedulingError) -> HTTPException:
    """Map scheduling outcomes onto HTTP responses."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (NoHostAvailableError, BookingConflictError)):
        return HTTPException(status_code=409, detail={"code": exc.code, "message": str(exc)})
    return HTTPException(status_code=400, detail=str(exc))


def serialize_booking(b: Booking) -> Dict[str, Any]:
    return {
        "id": b.id,
        "event_id": b.event_id,
        "slot_id": b.slot_id,
        "assigned_host_id": b.assigned_host_id,
        "first_name": b.first_name,
        "last_name": b.last_name,
        "email": b.email,
        "attendee_timezone": b.attendee_timezone,
        "created_at": b.created_at.isoformat(),
        "cancelled_at": b.cancelled_at.isoformat() if b.cancelled_at else None,
    }


@router.get("/{event_id}/available-times")
def available_times(
    event_id: int,
    range_start: datetime = Query(...),
    range_end: datetime = Query(...),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    Bookable start times for an event inside [range_start, range_end).
    """
    try:
        event = get_event(db, event_id)
        slots = get_available_slots(db, event, range_start, range_end)
    except SchedulingError as e:
        raise to_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "event_id": event.id,
        "meeting_type": event.meeting_type,
        "is_dynamic": mode_for(event) != AvailabilityMode.STATIC,
        "duration_minutes": event.duration_minutes,
        "slots": [
            {
                "start_time": s.start_time.isoformat(),
                "end_time": s.end_time.isoformat(),
            }
            for s in slots
        ],
    }


@router.post("/{event_id}/assign-host")
def assign_host_for_time(
    event_id: int,
    payload: AssignHostRequest,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    Preview which host would take a booking at the given time.
    Nothing is committed.
    """
    try:
        event = get_event(db, event_id)
        host_id = assign_host(db, event, payload.start_time, payload.attendee_email or "")
    except SchedulingError as e:
        raise to_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "event_id": event.id,
        "start_time": to_utc_naive(payload.start_time).isoformat(),
        "host_id": host_id,
    }


@router.post("/{event_id}/bookings", status_code=201)
def create_booking(
    event_id: int,
    payload: BookingCreate,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        event = get_event(db, event_id)
        booking = book(
            db,
            event,
            payload.start_time,
            Attendee(
                first_name=payload.first_name,
                last_name=payload.last_name,
                email=payload.email,
                timezone=payload.attendee_timezone,
            ),
            host_id=payload.host_id,
        )
    except SchedulingError as e:
        raise to_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"booking": serialize_booking(booking)}


@router.post("/{event_id}/webinar-slots", status_code=201)
def add_webinar_slot(
    event_id: int,
    payload: WebinarSlotCreate,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        event = get_event(db, event_id)
        slot = create_webinar_slot(db, event, payload.start_time, host_id=payload.host_id)
    except SchedulingError as e:
        raise to_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "slot": {
            "id": slot.id,
            "event_id": slot.event_id,
            "assigned_host_id": slot.assigned_host_id,
            "start_time": slot.start_time.isoformat(),
            "end_time": slot.end_time.isoformat(),
            "capacity": slot.capacity,
            "booking_count": slot.booking_count,
        }
    }


@router.get("/{event_id}/round-robin/stats")
def get_round_robin_stats(
    event_id: int,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        event = get_event(db, event_id)
    except SchedulingError as e:
        raise to_http_error(e)

    stats = round_robin_stats(db, event)
    return {
        "event_id": event.id,
        "strategy": event.round_robin_strategy,
        "hosts": [
            {
                **s,
                "period_start": s["period_start"].isoformat(),
                "last_assigned_at": s["last_assigned_at"].isoformat() if s["last_assigned_at"] else None,
            }
            for s in stats
        ],
    }
