# app/services/availability_pattern_service.py
from dataclasses import dataclass, replace
from datetime import time
from typing import Iterable, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.availability_pattern import AvailabilityPattern
from app.models.host import Host
from app.services.errors import NotFoundError


@dataclass(frozen=True)
class PatternWindow:
    day_of_week: int
    start_time: time
    end_time: time
    timezone: str


def validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e
    return name


def get_active_patterns(db: Session, host_id: int) -> List[AvailabilityPattern]:
    return (
        db.query(AvailabilityPattern)
        .filter(
            AvailabilityPattern.host_id == host_id,
            AvailabilityPattern.is_active.is_(True),
        )
        .order_by(AvailabilityPattern.day_of_week.asc(), AvailabilityPattern.start_time.asc())
        .all()
    )


def _validate_windows(windows: List[PatternWindow]) -> None:
    for w in windows:
        if not 0 <= w.day_of_week <= 6:
            raise ValueError("day_of_week must be between 0 (Monday) and 6 (Sunday)")
        if w.end_time <= w.start_time:
            raise ValueError("end_time must be after start_time")
        validate_timezone(w.timezone)

    # Windows on the same day (and zone) must not overlap
    ordered = sorted(windows, key=lambda w: (w.day_of_week, w.timezone, w.start_time))
    for prev, cur in zip(ordered, ordered[1:]):
        if (
            prev.day_of_week == cur.day_of_week
            and prev.timezone == cur.timezone
            and cur.start_time < prev.end_time
        ):
            raise ValueError(
                f"Overlapping availability windows on day {cur.day_of_week}"
            )


def replace_patterns(
    db: Session,
    *,
    host_id: int,
    windows: Iterable[PatternWindow],
) -> List[AvailabilityPattern]:
    """
    Replace a host's weekly availability wholesale.

    Behavior:
    - Windows without a timezone get DEFAULT_PATTERN_TIMEZONE.
    - Validates every window first, so a bad payload leaves the old set intact.
    - Deletes all existing patterns for the host.
    - Inserts one active row per window.

    Returns the newly created AvailabilityPattern rows.
    """
    host = db.get(Host, host_id)
    if host is None:
        raise NotFoundError(f"Host {host_id} not found")

    default_tz = get_settings().DEFAULT_PATTERN_TIMEZONE
    windows = [w if w.timezone else replace(w, timezone=default_tz) for w in windows]
    _validate_windows(windows)

    db.query(AvailabilityPattern).filter(AvailabilityPattern.host_id == host_id).delete()

    created: List[AvailabilityPattern] = []
    for w in windows:
        pattern = AvailabilityPattern(
            host_id=host_id,
            day_of_week=w.day_of_week,
            start_time=w.start_time,
            end_time=w.end_time,
            timezone=w.timezone,
            is_active=True,
        )
        db.add(pattern)
        created.append(pattern)

    db.commit()
    for pattern in created:
        db.refresh(pattern)

    return created
