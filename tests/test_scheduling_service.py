# tests/test_scheduling_service.py
from datetime import time, timedelta

import pytest

from app.models import Booking, Host, Slot
from app.services import scheduling_service
from app.services.booking_service import Attendee, commit_booking
from app.services.errors import NoHostAvailableError, StaleAssignmentError
from app.services.host_selector import HostAssignment, select_host
from app.services.scheduling_service import book, get_available_slots

from factories import MONDAY, NOW, add_busy, add_pattern, make_event, make_host

NEXT_DAY = MONDAY + timedelta(days=1)


def _starts(slots):
    return [s.start_time for s in slots]


def _at(hours, minutes=0):
    return MONDAY + timedelta(hours=hours, minutes=minutes)


def _attendee(email):
    return Attendee(first_name="Robin", email=email)


def test_round_robin_offers_union_of_hosts(db):
    alpha = make_host(db, "Alpha")
    beta = make_host(db, "Beta")
    add_pattern(db, alpha, 0, time(9, 0), time(10, 0))
    add_pattern(db, beta, 0, time(10, 0), time(11, 0))
    event = make_event(db, [alpha, beta], meeting_type="round_robin")

    slots = get_available_slots(db, event, MONDAY, NEXT_DAY, now=NOW)

    # 09:00-11:00 New York is 14:00-16:00 UTC
    assert _starts(slots) == [_at(14), _at(14, 30), _at(15), _at(15, 30)]


def test_collective_offers_only_shared_times(db):
    alpha = make_host(db, "Alpha")
    beta = make_host(db, "Beta")
    add_pattern(db, alpha, 0, time(9, 0), time(11, 0))
    add_pattern(db, beta, 0, time(10, 0), time(12, 0))
    event = make_event(db, [alpha, beta], meeting_type="collective")

    slots = get_available_slots(db, event, MONDAY, NEXT_DAY, now=NOW)

    assert _starts(slots) == [_at(15), _at(15, 30)]


def test_collective_with_every_calendar_failing_offers_nothing(db):
    alpha = make_host(db, "Alpha", calendar_ref="alpha-cal")
    beta = make_host(db, "Beta", calendar_ref="beta-cal")
    event = make_event(db, [alpha, beta], meeting_type="collective")

    db.get(Host, alpha.id).calendar_sync_error = "timeout"
    db.commit()
    assert get_available_slots(db, event, MONDAY, NEXT_DAY, now=NOW)

    db.get(Host, beta.id).calendar_sync_error = "401 unauthorized"
    db.commit()
    assert get_available_slots(db, event, MONDAY, NEXT_DAY, now=NOW) == []


def test_offered_time_on_back_to_back_patterns_is_bookable(db):
    host = make_host(db, "Split Day")
    add_pattern(db, host, 0, time(9, 0), time(10, 0))
    add_pattern(db, host, 0, time(10, 0), time(11, 0))
    event = make_event(db, [host], start_time_increment=45)

    slots = get_available_slots(db, event, MONDAY, NEXT_DAY, now=NOW)
    assert _starts(slots) == [_at(14), _at(14, 45), _at(15, 30)]

    booking = book(db, event, _at(15, 30), _attendee("late@example.com"), now=NOW)
    assert db.get(Slot, booking.slot_id).start_time == _at(15, 30)


def test_requested_host_must_be_free(db):
    alpha = make_host(db, "Alpha")
    beta = make_host(db, "Beta", calendar_ref="beta-cal")
    add_busy(db, beta, _at(15), _at(16))
    event = make_event(db, [alpha, beta], meeting_type="round_robin")

    with pytest.raises(NoHostAvailableError):
        book(db, event, _at(15), _attendee("pick@example.com"), host_id=beta.id, now=NOW)
    assert db.query(Booking).count() == 0

    booking = book(db, event, _at(15), _attendee("pick@example.com"), host_id=alpha.id, now=NOW)
    assert booking.assigned_host_id == alpha.id


def test_requested_host_must_be_under_cap(db):
    alpha = make_host(db, "Alpha")
    beta = make_host(db, "Beta", max_per_day=1)
    event = make_event(db, [alpha, beta], meeting_type="round_robin")

    book(db, event, _at(14), _attendee("one@example.com"), host_id=beta.id, now=NOW)
    with pytest.raises(NoHostAvailableError):
        book(db, event, _at(16), _attendee("two@example.com"), host_id=beta.id, now=NOW)


def test_requested_host_must_be_primary_for_one_on_one(db):
    alpha = make_host(db, "Alpha")
    beta = make_host(db, "Beta")
    event = make_event(db, [alpha, beta])

    with pytest.raises(NoHostAvailableError):
        book(db, event, _at(14), _attendee("guest@example.com"), host_id=beta.id, now=NOW)


def test_interleaved_cycle_picks_do_not_share_a_host(db):
    alpha, beta, gamma = (make_host(db, name) for name in ("Alpha", "Beta", "Gamma"))
    event = make_event(db, [alpha, beta, gamma], meeting_type="round_robin", strategy="cycle")

    # Both requests pick before either commits
    first = select_host(db, event, _at(14), now=NOW)
    second = select_host(db, event, _at(15), now=NOW)
    assert first.host_id == second.host_id == alpha.id

    commit_booking(
        db, event, _at(14), first.host_id, _attendee("a@example.com"), NOW,
        expected_version=first.expected_version,
    )
    with pytest.raises(StaleAssignmentError):
        commit_booking(
            db, event, _at(15), second.host_id, _attendee("b@example.com"), NOW,
            expected_version=second.expected_version,
        )
    assert db.query(Booking).count() == 1

    retry = book(db, event, _at(15), _attendee("b@example.com"), now=NOW)
    assert retry.assigned_host_id == beta.id


def test_book_picks_again_after_a_stale_pick(db, monkeypatch):
    alpha, beta, gamma = (make_host(db, name) for name in ("Alpha", "Beta", "Gamma"))
    event = make_event(db, [alpha, beta, gamma], meeting_type="round_robin", strategy="cycle")
    book(db, event, _at(14), _attendee("a@example.com"), now=NOW)

    calls = []
    real_select = scheduling_service.select_host

    def select_stale_once(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            # Picked before the booking above moved the rotation
            return HostAssignment(alpha.id, expected_version=0)
        return real_select(*args, **kwargs)

    monkeypatch.setattr(scheduling_service, "select_host", select_stale_once)

    booking = book(db, event, _at(15), _attendee("b@example.com"), now=NOW)

    assert booking.assigned_host_id == beta.id
    assert len(calls) == 2
    assert db.query(Booking).count() == 2
