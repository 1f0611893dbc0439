# tests/factories.py
from datetime import datetime, time, timedelta
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from app.models import AvailabilityPattern, BusyInterval, Event, EventHost, Host

# Fixed clock for every test: Tuesday 2030-01-01 12:00 UTC
NOW = datetime(2030, 1, 1, 12, 0)
# Monday, comfortably past the default 24h notice
MONDAY = datetime(2030, 1, 7)


def make_host(
    db: Session,
    name: str,
    *,
    calendar_ref: Optional[str] = None,
    max_per_day: Optional[int] = None,
    max_per_week: Optional[int] = None,
) -> Host:
    host = Host(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        calendar_credentials_ref=calendar_ref,
        max_meetings_per_day=max_per_day,
        max_meetings_per_week=max_per_week,
    )
    db.add(host)
    db.commit()
    db.refresh(host)
    return host


def make_event(
    db: Session,
    hosts: Sequence[Host],
    *,
    meeting_type: str = "one_on_one",
    duration_minutes: int = 30,
    max_attendees: int = 1,
    strategy: str = "cycle",
    priorities: Optional[Sequence[int]] = None,
    **fields,
) -> Event:
    event = Event(
        name=f"{meeting_type} event",
        meeting_type=meeting_type,
        duration_minutes=duration_minutes,
        max_attendees=max_attendees,
        round_robin_strategy=strategy,
        **fields,
    )
    db.add(event)
    db.commit()
    db.refresh(event)

    # Explicit, increasing creation times so host order is unambiguous
    base = datetime(2029, 1, 1)
    for i, host in enumerate(hosts):
        db.add(
            EventHost(
                event_id=event.id,
                host_id=host.id,
                role="owner" if i == 0 else "host",
                priority=priorities[i] if priorities else 5,
                created_at=base + timedelta(minutes=i),
            )
        )
    db.commit()
    return event


def add_pattern(
    db: Session,
    host: Host,
    day_of_week: int,
    start: time,
    end: time,
    tz: str = "America/New_York",
) -> AvailabilityPattern:
    pattern = AvailabilityPattern(
        host_id=host.id,
        day_of_week=day_of_week,
        start_time=start,
        end_time=end,
        timezone=tz,
    )
    db.add(pattern)
    db.commit()
    return pattern


def add_busy(db: Session, host: Host, start: datetime, end: datetime) -> BusyInterval:
    block = BusyInterval(host_id=host.id, start_time=start, end_time=end)
    db.add(block)
    db.commit()
    return block
