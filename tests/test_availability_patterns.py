# tests/test_availability_patterns.py
from datetime import time

import pytest

from app.models import AvailabilityPattern
from app.services.availability_pattern_service import (
    PatternWindow,
    get_active_patterns,
    replace_patterns,
)
from app.services.errors import NotFoundError

from factories import make_host


def test_replace_patterns_replaces_existing(db):
    host = make_host(db, "Pat Host")

    first = replace_patterns(
        db,
        host_id=host.id,
        windows=[PatternWindow(0, time(9, 0), time(12, 0), "America/New_York")],
    )
    assert len(first) == 1

    second = replace_patterns(
        db,
        host_id=host.id,
        windows=[
            PatternWindow(1, time(13, 0), time(17, 0), "America/New_York"),
            PatternWindow(1, time(9, 0), time(11, 0), "America/New_York"),
        ],
    )
    assert len(second) == 2

    active = get_active_patterns(db, host.id)
    # Only the new set survives, ordered by day then start
    assert [(p.day_of_week, p.start_time) for p in active] == [
        (1, time(9, 0)),
        (1, time(13, 0)),
    ]
    assert db.query(AvailabilityPattern).filter_by(host_id=host.id).count() == 2


def test_inactive_patterns_are_not_returned(db):
    host = make_host(db, "Inactive Host")
    replace_patterns(
        db,
        host_id=host.id,
        windows=[PatternWindow(2, time(9, 0), time(10, 0), "UTC")],
    )
    pattern = db.query(AvailabilityPattern).filter_by(host_id=host.id).one()
    pattern.is_active = False
    db.commit()

    assert get_active_patterns(db, host.id) == []


@pytest.mark.parametrize(
    "window",
    [
        PatternWindow(7, time(9, 0), time(10, 0), "UTC"),
        PatternWindow(0, time(10, 0), time(9, 0), "UTC"),
        PatternWindow(0, time(9, 0), time(10, 0), "Mars/Olympus_Mons"),
    ],
)
def test_invalid_window_leaves_previous_set(db, window):
    host = make_host(db, "Strict Host")
    replace_patterns(
        db,
        host_id=host.id,
        windows=[PatternWindow(0, time(9, 0), time(17, 0), "UTC")],
    )

    with pytest.raises(ValueError):
        replace_patterns(db, host_id=host.id, windows=[window])

    assert len(get_active_patterns(db, host.id)) == 1


def test_overlapping_windows_on_same_day_rejected(db):
    host = make_host(db, "Overlap Host")
    with pytest.raises(ValueError):
        replace_patterns(
            db,
            host_id=host.id,
            windows=[
                PatternWindow(3, time(9, 0), time(12, 0), "UTC"),
                PatternWindow(3, time(11, 0), time(14, 0), "UTC"),
            ],
        )


def test_unknown_host(db):
    with pytest.raises(NotFoundError):
        replace_patterns(db, host_id=999, windows=[])


def test_blank_timezone_gets_the_default(db):
    host = make_host(db, "Default Zone Host")

    created = replace_patterns(
        db,
        host_id=host.id,
        windows=[PatternWindow(2, time(9, 0), time(10, 0), "")],
    )

    # DEFAULT_PATTERN_TIMEZONE is set in conftest
    assert [p.timezone for p in created] == ["America/New_York"]
