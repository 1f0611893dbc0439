# app/services/round_robin_service.py
import logging
from datetime import datetime, time, timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.event import Event, RoundRobinPeriod
from app.models.round_robin_state import RoundRobinCursor, RoundRobinState
from app.services.aggregator import participating_hosts
from app.services.constraint_filter import company_tz
from app.services.errors import StaleAssignmentError
from app.timeutils import local_date, utcnow, week_start

logger = logging.getLogger(__name__)

ALL_TIME_START = datetime(1970, 1, 1)


def _local_midnight_utc(day, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)


def period_start_for(period: str, at: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """
    Start (naive UTC) of the counting period containing `at`.

    Days, weeks (starting Sunday) and months follow the company timezone.
    """
    tz = tz or company_tz()
    day = local_date(at, tz)

    if period == RoundRobinPeriod.DAY.value:
        return _local_midnight_utc(day, tz)
    if period == RoundRobinPeriod.WEEK.value:
        return _local_midnight_utc(week_start(day), tz)
    if period == RoundRobinPeriod.MONTH.value:
        return _local_midnight_utc(day.replace(day=1), tz)
    if period == RoundRobinPeriod.ALL_TIME.value:
        return ALL_TIME_START
    raise ValueError(f"Unknown round robin period: {period}")


def current_period_counts(db: Session, event: Event, now: datetime) -> Dict[int, int]:
    """host_id -> bookings counted in the current period (stale periods count as 0)."""
    ps = period_start_for(event.round_robin_period, now)
    rows = db.query(RoundRobinState).filter(RoundRobinState.event_id == event.id).all()
    return {
        r.host_id: (r.period_booking_count if r.period_start == ps else 0)
        for r in rows
    }


def get_cursor_state(db: Session, event_id: int) -> Tuple[int, int]:
    """(next_index, version) of the event's rotation; (0, 0) before the first assignment."""
    cursor = db.query(RoundRobinCursor).filter(RoundRobinCursor.event_id == event_id).first()
    if cursor is None:
        return 0, 0
    return cursor.next_index, cursor.version


def _bump_state(db: Session, event: Event, host_id: int, ps: datetime, now: datetime) -> int:
    # Same period: increment in place
    res = db.execute(
        update(RoundRobinState)
        .where(
            RoundRobinState.event_id == event.id,
            RoundRobinState.host_id == host_id,
            RoundRobinState.period_start == ps,
        )
        .values(
            period_booking_count=RoundRobinState.period_booking_count + 1,
            total_assignments=RoundRobinState.total_assignments + 1,
            last_assigned_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount:
        return res.rowcount

    # Period rolled over: restart the count at 1
    res = db.execute(
        update(RoundRobinState)
        .where(
            RoundRobinState.event_id == event.id,
            RoundRobinState.host_id == host_id,
            RoundRobinState.period_start != ps,
        )
        .values(
            period_start=ps,
            period_booking_count=1,
            total_assignments=RoundRobinState.total_assignments + 1,
            last_assigned_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


def _stale(event: Event, expected_version: int) -> StaleAssignmentError:
    logger.info("Rotation of event %s moved past version %s, rejecting stale pick", event.id, expected_version)
    return StaleAssignmentError()


def _advance_cursor(db: Session, event: Event, host_id: int, expected_version: Optional[int] = None) -> None:
    host_ids = [eh.host_id for eh in participating_hosts(db, event)]
    values = {"version": RoundRobinCursor.version + 1, "updated_at": utcnow()}
    if host_id in host_ids:
        values["next_index"] = (host_ids.index(host_id) + 1) % len(host_ids)

    stmt = update(RoundRobinCursor).where(RoundRobinCursor.event_id == event.id)
    if expected_version is not None:
        stmt = stmt.where(RoundRobinCursor.version == expected_version)
    res = db.execute(stmt.values(**values).execution_options(synchronize_session=False))
    if res.rowcount:
        return
    if expected_version:
        raise _stale(event, expected_version)

    try:
        with db.begin_nested():
            db.add(
                RoundRobinCursor(
                    event_id=event.id,
                    next_index=values.get("next_index", 0),
                    version=1,
                )
            )
    except IntegrityError as e:
        if expected_version is not None:
            raise _stale(event, expected_version) from e
        # Created concurrently; the advance above is now possible
        db.execute(
            update(RoundRobinCursor)
            .where(RoundRobinCursor.event_id == event.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )


def record_assignment(
    db: Session,
    event: Event,
    host_id: int,
    now: Optional[datetime] = None,
    *,
    expected_version: Optional[int] = None,
) -> None:
    """
    Count one successful booking for `host_id` and move the rotation past it.

    With `expected_version` (the cursor version read when the host was
    picked) the rotation only moves if nobody else moved it since;
    otherwise StaleAssignmentError is raised and nothing is counted.

    Runs inside the caller's transaction and never commits; the caller's
    commit (or rollback) decides whether the assignment counts.
    """
    now = now or utcnow()
    ps = period_start_for(event.round_robin_period, now)

    _advance_cursor(db, event, host_id, expected_version)

    if not _bump_state(db, event, host_id, ps, now):
        try:
            with db.begin_nested():
                db.add(
                    RoundRobinState(
                        event_id=event.id,
                        host_id=host_id,
                        period_start=ps,
                        period_booking_count=1,
                        total_assignments=1,
                        last_assigned_at=now,
                    )
                )
        except IntegrityError:
            _bump_state(db, event, host_id, ps, now)

    logger.debug("Recorded round robin assignment event=%s host=%s", event.id, host_id)


def release_assignment(
    db: Session,
    event: Event,
    host_id: int,
    booked_at: datetime,
    now: Optional[datetime] = None,
) -> bool:
    """
    Undo the period count of a cancelled booking.

    Only bookings counted in the still-current period are released; totals
    are history and stay as they are. Does not commit.
    """
    now = now or utcnow()
    ps = period_start_for(event.round_robin_period, now)
    if period_start_for(event.round_robin_period, booked_at) != ps:
        return False

    res = db.execute(
        update(RoundRobinState)
        .where(
            RoundRobinState.event_id == event.id,
            RoundRobinState.host_id == host_id,
            RoundRobinState.period_start == ps,
            RoundRobinState.period_booking_count > 0,
        )
        .values(period_booking_count=RoundRobinState.period_booking_count - 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount:
        # Counts changed under any pick made before this
        db.execute(
            update(RoundRobinCursor)
            .where(RoundRobinCursor.event_id == event.id)
            .values(version=RoundRobinCursor.version + 1)
            .execution_options(synchronize_session=False)
        )
    return bool(res.rowcount)


def round_robin_stats(db: Session, event: Event, now: Optional[datetime] = None) -> List[Dict]:
    """Per participating host: period count, lifetime total and last assignment."""
    now = now or utcnow()
    ps = period_start_for(event.round_robin_period, now)
    states = {
        s.host_id: s
        for s in db.query(RoundRobinState).filter(RoundRobinState.event_id == event.id).all()
    }

    stats: List[Dict] = []
    for eh in participating_hosts(db, event):
        state = states.get(eh.host_id)
        stats.append(
            {
                "host_id": eh.host_id,
                "priority": eh.priority,
                "period": event.round_robin_period,
                "period_start": ps,
                "period_bookings": (
                    state.period_booking_count if state and state.period_start == ps else 0
                ),
                "total_assignments": state.total_assignments if state else 0,
                "last_assigned_at": state.last_assigned_at if state else None,
            }
        )
    return stats
