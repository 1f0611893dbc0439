# app/services/host_selector.py
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.models.event import Event, EventHost, RoundRobinStrategy
from app.models.slot import Slot
from app.services.aggregator import (
    AvailabilityMode,
    mode_for,
    participating_hosts,
    primary_host_id,
)
from app.services.constraint_filter import company_tz, host_has_capacity, host_meeting_counts
from app.services.errors import NoHostAvailableError
from app.services.event_rules import booking_bounds, host_caps
from app.services.round_robin_service import current_period_counts, get_cursor_state
from app.services.slot_generator import event_host_slots
from app.timeutils import local_date, to_utc_naive, utcnow

logger = logging.getLogger(__name__)


@dataclass
class HostCandidate:
    host_id: int
    # Index in the event's participating hosts (creation order)
    position: int
    priority: int


@dataclass
class HostAssignment:
    host_id: int
    # Rotation version the pick was based on; None when the pick read no
    # rotation state
    expected_version: Optional[int] = None


def deterministic_fraction(*parts) -> float:
    """
    Stable pseudo-random number in [0, 1) derived from `parts`.

    The same booking request always draws the same host, while different
    attendees or times spread across the weights.
    """
    key = "|".join(str(p) for p in parts).encode("utf-8")
    digest = hashlib.sha256(key).digest()
    return int.from_bytes(digest[:8], "big") / float(1 << 64)


def weighted_pick(candidates: Sequence[HostCandidate], weights: Sequence[float], fraction: float) -> HostCandidate:
    """Pick from `candidates` with probability proportional to `weights`."""
    total = float(sum(weights))
    if total <= 0:
        # Nothing to weigh by: fall back to equal chances
        weights = [1.0] * len(candidates)
        total = float(len(candidates))

    target = fraction * total
    running = 0.0
    for candidate, weight in zip(candidates, weights):
        running += weight
        if target < running:
            return candidate
    return candidates[-1]


def host_available_at(db: Session, event: Event, host_id: int, start: datetime) -> bool:
    """Whether `start` is one of the host's own bookable slots for this event."""
    return event_host_slots(db, event, host_id, start, start).is_available_at(start)


def eligible_hosts(
    db: Session,
    event: Event,
    hosts: Sequence[EventHost],
    start: datetime,
) -> List[HostCandidate]:
    """Participating hosts free at `start` and still under their meeting caps."""
    tz = company_tz()
    day = local_date(start, tz)

    eligible: List[HostCandidate] = []
    for position, eh in enumerate(hosts):
        if not host_available_at(db, event, eh.host_id, start):
            continue

        counts = host_meeting_counts(db, eh.host_id, start, start, tz)
        if start not in counts.starts and not host_has_capacity(counts, day, host_caps(eh.host)):
            logger.debug("Host %s at meeting cap on %s, skipping", eh.host_id, day)
            continue

        eligible.append(HostCandidate(host_id=eh.host_id, position=position, priority=eh.priority))
    return eligible


def _pick_cycle(db, event, hosts, eligible, start, seed, now) -> HostCandidate:
    # First available host at or after the cursor, wrapping around
    by_position = {c.position: c for c in eligible}
    next_index = get_cursor_state(db, event.id)[0] % len(hosts)
    for offset in range(len(hosts)):
        candidate = by_position.get((next_index + offset) % len(hosts))
        if candidate is not None:
            return candidate
    return eligible[0]


def _pick_least_bookings(db, event, hosts, eligible, start, seed, now) -> HostCandidate:
    counts = current_period_counts(db, event, now)
    return min(eligible, key=lambda c: (counts.get(c.host_id, 0), c.position))


def _pick_priority(db, event, hosts, eligible, start, seed, now) -> HostCandidate:
    return weighted_pick(eligible, [c.priority for c in eligible], seed)


def _pick_availability_weighted(db, event, hosts, eligible, start, seed, now) -> HostCandidate:
    earliest, latest = booking_bounds(event, now)
    weights = [
        event_host_slots(db, event, c.host_id, earliest, latest).free_hours()
        for c in eligible
    ]
    return weighted_pick(eligible, weights, seed)


STRATEGIES: Dict[str, Callable[..., HostCandidate]] = {
    RoundRobinStrategy.CYCLE.value: _pick_cycle,
    RoundRobinStrategy.LEAST_BOOKINGS.value: _pick_least_bookings,
    RoundRobinStrategy.PRIORITY.value: _pick_priority,
    RoundRobinStrategy.AVAILABILITY_WEIGHTED.value: _pick_availability_weighted,
}

# Strategies whose pick reads rotation state that other bookings change
STATEFUL_STRATEGIES = {RoundRobinStrategy.CYCLE.value, RoundRobinStrategy.LEAST_BOOKINGS.value}


def _no_host(event: Event, start: datetime, message: Optional[str] = None) -> NoHostAvailableError:
    logger.info("No host available for event %s at %s", event.id, start.isoformat())
    return NoHostAvailableError(event.id, start, message)


def select_host(
    db: Session,
    event: Event,
    start: datetime,
    attendee_email: str = "",
    now: Optional[datetime] = None,
) -> HostAssignment:
    """
    Pick the host that will take a booking at `start`.

    Round robin and panel events choose among available, uncapped hosts
    using the event's strategy. Every other meeting type is served by its
    primary host (collective events need every host free).

    Raises NoHostAvailableError when nobody can take the time.
    """
    start = to_utc_naive(start)
    now = now or utcnow()
    mode = mode_for(event)

    hosts = participating_hosts(db, event)
    if not hosts:
        raise _no_host(event, start, "Event has no participating hosts")

    if mode == AvailabilityMode.ANY_AVAILABLE:
        eligible = eligible_hosts(db, event, hosts, start)
        if not eligible:
            raise _no_host(event, start)

        try:
            pick = STRATEGIES[event.round_robin_strategy]
        except KeyError as e:
            raise ValueError(f"Unknown round robin strategy: {event.round_robin_strategy}") from e

        expected_version = None
        if event.round_robin_strategy in STATEFUL_STRATEGIES:
            # Read before the strategy looks at any rotation state
            expected_version = get_cursor_state(db, event.id)[1]

        seed = deterministic_fraction(event.id, start.isoformat(), (attendee_email or "").strip().lower())
        chosen = pick(db, event, hosts, eligible, start, seed, now)
        logger.info(
            "Assigned host %s to event %s at %s (strategy=%s, eligible=%d)",
            chosen.host_id,
            event.id,
            start.isoformat(),
            event.round_robin_strategy,
            len(eligible),
        )
        return HostAssignment(chosen.host_id, expected_version)

    if mode == AvailabilityMode.STATIC:
        slot = (
            db.query(Slot)
            .filter(
                Slot.event_id == event.id,
                Slot.start_time == start,
                Slot.is_cancelled.is_(False),
            )
            .first()
        )
        if slot is not None and slot.assigned_host_id is not None:
            return HostAssignment(slot.assigned_host_id)
        return HostAssignment(primary_host_id(db, event))

    primary = primary_host_id(db, event)
    required = [eh.host_id for eh in hosts] if mode == AvailabilityMode.COLLECTIVE else [primary]
    for host_id in required:
        if not host_available_at(db, event, host_id, start):
            raise _no_host(event, start)
    return HostAssignment(primary)


def assign_host(
    db: Session,
    event: Event,
    start: datetime,
    attendee_email: str = "",
    now: Optional[datetime] = None,
) -> int:
    return select_host(db, event, start, attendee_email, now).host_id


def check_requested_host(
    db: Session,
    event: Event,
    host_id: int,
    start: datetime,
    now: Optional[datetime] = None,
) -> None:
    """
    Make sure a caller-chosen host can take `start`.

    Round robin and panel hosts must be free and under their meeting caps;
    every other meeting type only accepts the host it would get anyway.
    """
    start = to_utc_naive(start)
    host = next((eh for eh in participating_hosts(db, event) if eh.host_id == host_id), None)
    if host is None:
        raise ValueError(f"Host {host_id} does not host event {event.id}")

    if mode_for(event) == AvailabilityMode.ANY_AVAILABLE:
        if not eligible_hosts(db, event, [host], start):
            raise _no_host(event, start, f"Host {host_id} is not available at the requested time")
        return

    if select_host(db, event, start, now=now).host_id != host_id:
        raise _no_host(event, start, f"Host {host_id} cannot take this booking")
