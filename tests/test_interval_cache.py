# tests/test_interval_cache.py
from datetime import datetime

from app.models import BusyInterval
from app.services.interval_cache import get_busy_intervals, replace_busy_intervals

from factories import add_busy, make_host


def _rows(db, host_id):
    return [
        (b.start_time, b.end_time)
        for b in db.query(BusyInterval)
        .filter_by(host_id=host_id)
        .order_by(BusyInterval.start_time)
        .all()
    ]


def test_get_busy_intervals_returns_overlaps_only(db):
    host = make_host(db, "Busy Host", calendar_ref="t")
    add_busy(db, host, datetime(2030, 1, 7, 9), datetime(2030, 1, 7, 10))
    add_busy(db, host, datetime(2030, 1, 7, 11), datetime(2030, 1, 7, 12))
    add_busy(db, host, datetime(2030, 1, 8, 9), datetime(2030, 1, 8, 10))

    found = get_busy_intervals(db, host.id, datetime(2030, 1, 7, 9, 30), datetime(2030, 1, 7, 11, 0))
    assert [(b.start_time, b.end_time) for b in found] == [
        (datetime(2030, 1, 7, 9), datetime(2030, 1, 7, 10)),
    ]


def test_replace_keeps_intervals_outside_range(db):
    host = make_host(db, "Range Host", calendar_ref="t")
    add_busy(db, host, datetime(2030, 1, 5, 9), datetime(2030, 1, 5, 10))  # before
    add_busy(db, host, datetime(2030, 1, 7, 9), datetime(2030, 1, 7, 10))  # inside
    add_busy(db, host, datetime(2030, 1, 20, 9), datetime(2030, 1, 20, 10))  # after

    replace_busy_intervals(
        db,
        host_id=host.id,
        range_start=datetime(2030, 1, 6),
        range_end=datetime(2030, 1, 13),
        intervals=[(datetime(2030, 1, 8, 14), datetime(2030, 1, 8, 15))],
    )

    assert _rows(db, host.id) == [
        (datetime(2030, 1, 5, 9), datetime(2030, 1, 5, 10)),
        (datetime(2030, 1, 8, 14), datetime(2030, 1, 8, 15)),
        (datetime(2030, 1, 20, 9), datetime(2030, 1, 20, 10)),
    ]


def test_replace_trims_intervals_straddling_the_range(db):
    host = make_host(db, "Edge Host", calendar_ref="t")
    add_busy(db, host, datetime(2030, 1, 5, 22), datetime(2030, 1, 6, 2))

    replace_busy_intervals(
        db,
        host_id=host.id,
        range_start=datetime(2030, 1, 6),
        range_end=datetime(2030, 1, 13),
        intervals=[],
    )

    assert _rows(db, host.id) == [(datetime(2030, 1, 5, 22), datetime(2030, 1, 6, 0))]


def test_replace_is_idempotent(db):
    host = make_host(db, "Idem Host", calendar_ref="t")
    fresh = [
        (datetime(2030, 1, 7, 14), datetime(2030, 1, 7, 15)),
        (datetime(2030, 1, 9, 16), datetime(2030, 1, 9, 17)),
    ]

    for _ in range(2):
        replace_busy_intervals(
            db,
            host_id=host.id,
            range_start=datetime(2030, 1, 6),
            range_end=datetime(2030, 1, 13),
            intervals=fresh,
        )

    assert _rows(db, host.id) == fresh
