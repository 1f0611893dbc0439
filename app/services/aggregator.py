# app/services/aggregator.py
import heapq
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.models.event import Event, EventHost, HostRole, MeetingType
from app.services.slot_generator import CandidateSlot

PARTICIPATING_ROLES = (HostRole.OWNER.value, HostRole.HOST.value)


class AvailabilityMode(str, Enum):
    PRIMARY_HOST = "primary_host"
    COLLECTIVE = "collective"
    ANY_AVAILABLE = "any_available"
    STATIC = "static"


MEETING_TYPE_MODES: Dict[str, AvailabilityMode] = {
    MeetingType.ONE_ON_ONE.value: AvailabilityMode.PRIMARY_HOST,
    MeetingType.GROUP.value: AvailabilityMode.PRIMARY_HOST,
    MeetingType.COLLECTIVE.value: AvailabilityMode.COLLECTIVE,
    MeetingType.ROUND_ROBIN.value: AvailabilityMode.ANY_AVAILABLE,
    MeetingType.PANEL.value: AvailabilityMode.ANY_AVAILABLE,
    MeetingType.WEBINAR.value: AvailabilityMode.STATIC,
}


def mode_for(event: Event) -> AvailabilityMode:
    try:
        return MEETING_TYPE_MODES[event.meeting_type]
    except KeyError as e:
        raise ValueError(f"Unknown meeting type: {event.meeting_type}") from e


def participating_hosts(db: Session, event: Event) -> List[EventHost]:
    """Owner and host roles (backups excluded), in creation order."""
    return (
        db.query(EventHost)
        .filter(
            EventHost.event_id == event.id,
            EventHost.role.in_(PARTICIPATING_ROLES),
        )
        .order_by(EventHost.created_at.asc(), EventHost.id.asc())
        .all()
    )


def primary_host_id(db: Session, event: Event) -> Optional[int]:
    """The event owner, else the first participating host."""
    hosts = participating_hosts(db, event)
    for eh in hosts:
        if eh.role == HostRole.OWNER.value:
            return eh.host_id
    return hosts[0].host_id if hosts else None


def collective_slots(sequences: Sequence[Iterable[CandidateSlot]]) -> List[CandidateSlot]:
    """
    Starts offered by every host.

    No hosts, or any host with nothing free, gives an empty result.
    """
    if not sequences:
        return []

    by_start: Dict = {}
    common = None
    for seq in sequences:
        starts = set()
        for slot in seq:
            starts.add(slot.start_time)
            by_start.setdefault(slot.start_time, slot)
        common = starts if common is None else common & starts
        if not common:
            return []

    return [by_start[start] for start in sorted(common)]


def _union(sequences: Sequence[Iterable[CandidateSlot]]) -> Iterator[CandidateSlot]:
    last_start = None
    for slot in heapq.merge(*sequences):
        if slot.start_time != last_start:
            last_start = slot.start_time
            yield slot


def any_available_slots(sequences: Sequence[Iterable[CandidateSlot]]) -> List[CandidateSlot]:
    """Starts offered by at least one host, each start once."""
    return list(_union(sequences))
