# app/services/errors.py
from typing import Optional


class SchedulingError(Exception):
    """Base class for every expected scheduling outcome that is not a success."""

    code = "SCHEDULING_ERROR"


class NotFoundError(SchedulingError):
    code = "NOT_FOUND"


class NoHostAvailableError(SchedulingError):
    """
    No eligible host at the requested time.

    Expected and user facing: the caller should re-offer other times.
    """

    code = "NO_HOST_AVAILABLE"

    def __init__(self, event_id: int, start_time, message: Optional[str] = None):
        self.event_id = event_id
        self.start_time = start_time
        super().__init__(message or "No host is available at the requested time")


class BookingConflictError(SchedulingError):
    """A commit lost to concurrent or prior state; the UI should refresh availability."""

    code = "BOOKING_CONFLICT"


class SlotFilledError(BookingConflictError):
    code = "SLOT_FULL"

    def __init__(self, message: str = "This time slot is full"):
        super().__init__(message)


class DuplicateBookingError(BookingConflictError):
    code = "DUPLICATE_BOOKING"

    def __init__(self, message: str = "You have already booked this time slot"):
        super().__init__(message)


class StaleAssignmentError(BookingConflictError):
    """Another booking moved the rotation after this host was picked; pick again."""

    code = "ASSIGNMENT_STALE"

    def __init__(self, message: str = "Host rotation changed, please retry"):
        super().__init__(message)


class CalendarSyncError(SchedulingError):
    """Raised by calendar providers; always contained to the host being synced."""

    code = "CALENDAR_SYNC_FAILED"
