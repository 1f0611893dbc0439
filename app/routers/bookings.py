# app/routers/bookings.py
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.routers.events import serialize_booking, to_http_error
from app.services.booking_service import cancel_booking
from app.services.errors import SchedulingError

router = APIRouter()


@router.post("/{booking_id}/cancel")
def cancel(
    booking_id: int,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Cancel a booking and release its seat. Repeating the call is harmless."""
    try:
        booking = cancel_booking(db, booking_id)
    except SchedulingError as e:
        raise to_http_error(e)

    return {"booking": serialize_booking(booking)}
