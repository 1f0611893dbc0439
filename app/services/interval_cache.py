# app/services/interval_cache.py
from datetime import datetime
from typing import Iterable, List, Tuple

from sqlalchemy.orm import Session

from app.models.busy_interval import BusyInterval
from app.timeutils import to_utc_naive, utcnow

GOOGLE_SOURCE = "google_calendar"


def get_busy_intervals(
    db: Session,
    host_id: int,
    start: datetime,
    end: datetime,
) -> List[BusyInterval]:
    """All cached busy intervals for a host that overlap [start, end)."""
    return (
        db.query(BusyInterval)
        .filter(
            BusyInterval.host_id == host_id,
            BusyInterval.start_time < end,
            BusyInterval.end_time > start,
        )
        .order_by(BusyInterval.start_time.asc())
        .all()
    )


def replace_busy_intervals(
    db: Session,
    *,
    host_id: int,
    range_start: datetime,
    range_end: datetime,
    intervals: Iterable[Tuple[datetime, datetime]],
    source: str = GOOGLE_SOURCE,
    commit: bool = True,
) -> List[BusyInterval]:
    """
    Replace the cached busy intervals of one host inside [range_start, range_end).

    The refreshed range becomes exactly `intervals` (clipped to the range);
    anything cached outside the range is kept, and rows straddling a range edge
    are trimmed to their outside part. Running the same refresh twice leaves
    the same rows behind.
    """
    range_start = to_utc_naive(range_start)
    range_end = to_utc_naive(range_end)
    if range_end <= range_start:
        raise ValueError("range_end must be after range_start")

    overlapping = (
        db.query(BusyInterval)
        .filter(
            BusyInterval.host_id == host_id,
            BusyInterval.source == source,
            BusyInterval.start_time < range_end,
            BusyInterval.end_time > range_start,
        )
        .all()
    )

    for row in overlapping:
        keeps_head = row.start_time < range_start
        keeps_tail = row.end_time > range_end
        if keeps_head and keeps_tail:
            db.add(
                BusyInterval(
                    host_id=host_id,
                    start_time=range_end,
                    end_time=row.end_time,
                    source=row.source,
                    synced_at=row.synced_at,
                )
            )
            row.end_time = range_start
        elif keeps_head:
            row.end_time = range_start
        elif keeps_tail:
            row.start_time = range_end
        else:
            db.delete(row)

    synced_at = utcnow()
    created: List[BusyInterval] = []
    for start, end in intervals:
        start = max(to_utc_naive(start), range_start)
        end = min(to_utc_naive(end), range_end)
        if end <= start:
            continue
        block = BusyInterval(
            host_id=host_id,
            start_time=start,
            end_time=end,
            source=source,
            synced_at=synced_at,
        )
        db.add(block)
        created.append(block)

    if commit:
        db.commit()
    else:
        db.flush()

    return created
