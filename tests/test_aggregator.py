# tests/test_aggregator.py
from datetime import datetime, timedelta

import pytest

from app.models import Event
from app.services.aggregator import (
    AvailabilityMode,
    any_available_slots,
    collective_slots,
    mode_for,
    participating_hosts,
    primary_host_id,
)
from app.services.slot_generator import CandidateSlot

from factories import make_event, make_host


def _slots(*hours):
    return [
        CandidateSlot(datetime(2030, 1, 7, h), datetime(2030, 1, 7, h) + timedelta(minutes=30))
        for h in hours
    ]


def test_collective_is_the_intersection():
    a = _slots(9, 10, 11, 14)
    b = _slots(10, 11, 15)
    c = _slots(8, 10, 11, 14)

    result = collective_slots([a, b, c])

    assert [s.start_time.hour for s in result] == [10, 11]
    for slot in result:
        assert slot in a and slot in b and slot in c


def test_collective_empty_when_any_host_has_nothing():
    assert collective_slots([_slots(9, 10), []]) == []
    assert collective_slots([]) == []


def test_any_available_is_sorted_union_without_duplicates():
    a = _slots(9, 11, 13)
    b = _slots(10, 11, 12)

    result = any_available_slots([a, b])

    assert [s.start_time.hour for s in result] == [9, 10, 11, 12, 13]
    assert len({s.start_time for s in result}) == len(result)
    for slot in a + b:
        assert slot.start_time in {s.start_time for s in result}


@pytest.mark.parametrize(
    "meeting_type, mode",
    [
        ("one_on_one", AvailabilityMode.PRIMARY_HOST),
        ("group", AvailabilityMode.PRIMARY_HOST),
        ("collective", AvailabilityMode.COLLECTIVE),
        ("round_robin", AvailabilityMode.ANY_AVAILABLE),
        ("panel", AvailabilityMode.ANY_AVAILABLE),
        ("webinar", AvailabilityMode.STATIC),
    ],
)
def test_mode_for_meeting_types(meeting_type, mode):
    assert mode_for(Event(meeting_type=meeting_type)) == mode


def test_mode_for_unknown_type():
    with pytest.raises(ValueError):
        mode_for(Event(meeting_type="town_hall"))


def test_participating_hosts_skip_backups(db):
    a = make_host(db, "Alpha")
    b = make_host(db, "Beta")
    c = make_host(db, "Gamma")
    event = make_event(db, [a, b, c], meeting_type="round_robin")

    backup = [eh for eh in event.hosts if eh.host_id == c.id][0]
    backup.role = "backup"
    db.commit()

    assert [eh.host_id for eh in participating_hosts(db, event)] == [a.id, b.id]
    assert primary_host_id(db, event) == a.id
