# app/services/calendar_sync_service.py
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.booking import Booking
from app.models.event import Event
from app.models.host import Host
from app.models.slot import Slot
from app.services.booking_service import record_external_event
from app.services.calendar_client import CalendarProvider
from app.services.errors import NotFoundError
from app.services.interval_cache import replace_busy_intervals
from app.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    range_start: datetime
    range_end: datetime
    synced: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "Calendar sync timed out"
    return str(exc) or exc.__class__.__name__


async def sync_hosts(
    db: Session,
    provider: CalendarProvider,
    *,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    host_ids: Optional[Iterable[int]] = None,
    timeout_seconds: Optional[float] = None,
) -> SyncReport:
    """
    Refresh the busy-interval cache for every host with a connected calendar.

    Hosts are fetched concurrently, each under its own timeout. A host whose
    fetch fails keeps its previous cache and gets `calendar_sync_error`
    set; the other hosts are unaffected.
    """
    settings = get_settings()
    range_start = range_start or utcnow()
    range_end = range_end or range_start + timedelta(days=settings.CALENDAR_SYNC_LOOKAHEAD_DAYS)
    timeout = timeout_seconds if timeout_seconds is not None else settings.CALENDAR_SYNC_TIMEOUT_SECONDS

    query = db.query(Host).filter(Host.calendar_credentials_ref.isnot(None))
    if host_ids is not None:
        query = query.filter(Host.id.in_(list(host_ids)))
    # Snapshot before awaiting; the session is not touched while fetches run
    targets = [(h.id, h.calendar_credentials_ref) for h in query.order_by(Host.id.asc()).all()]

    report = SyncReport(range_start=range_start, range_end=range_end)
    if not targets:
        return report

    results = await asyncio.gather(
        *[
            asyncio.wait_for(provider.fetch_busy_intervals(ref, range_start, range_end), timeout)
            for _, ref in targets
        ],
        return_exceptions=True,
    )

    for (host_id, _), result in zip(targets, results):
        host = db.get(Host, host_id)
        if isinstance(result, BaseException):
            reason = _describe(result)
            host.calendar_sync_error = reason[:255]
            db.commit()
            report.failed[host_id] = reason
            logger.warning("Calendar sync failed for host %s: %s", host_id, reason)
            continue

        replace_busy_intervals(
            db,
            host_id=host_id,
            range_start=range_start,
            range_end=range_end,
            intervals=result,
            commit=False,
        )
        host.last_synced_at = utcnow()
        host.calendar_sync_error = None
        db.commit()
        report.synced.append(host_id)
        logger.debug("Synced %d busy intervals for host %s", len(result), host_id)

    logger.info(
        "Calendar sync finished: %d synced, %d failed",
        len(report.synced),
        len(report.failed),
    )
    return report


async def mirror_slot_to_calendar(db: Session, provider: CalendarProvider, slot_id: int) -> Optional[str]:
    """
    Create the external calendar event for a booked slot and remember its id.

    Returns None when the slot's host has no calendar connected.
    """
    slot = db.get(Slot, slot_id)
    if slot is None:
        raise NotFoundError(f"Slot {slot_id} not found")
    if slot.external_event_ref:
        return slot.external_event_ref

    host = db.get(Host, slot.assigned_host_id) if slot.assigned_host_id else None
    if host is None or not host.calendar_connected:
        return None

    event = db.get(Event, slot.event_id)
    attendees = [
        b.email
        for b in db.query(Booking)
        .filter(Booking.slot_id == slot.id, Booking.cancelled_at.is_(None))
        .order_by(Booking.id.asc())
        .all()
    ]

    ref = await provider.create_external_event(
        host.calendar_credentials_ref,
        summary=event.name,
        start=slot.start_time,
        end=slot.end_time,
        attendees=attendees,
    )
    record_external_event(db, slot.id, ref)
    return ref
