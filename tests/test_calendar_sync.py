# tests/test_calendar_sync.py
import asyncio
import json
from datetime import datetime

import httpx
import pytest

from app.models import BusyInterval, Host
from app.services.calendar_client import GoogleCalendarClient
from app.services.calendar_sync_service import mirror_slot_to_calendar, sync_hosts
from app.services.booking_service import Attendee, commit_booking
from app.services.errors import CalendarSyncError

from factories import MONDAY, NOW, add_busy, make_event, make_host

RANGE_START = datetime(2030, 1, 6)
RANGE_END = datetime(2030, 1, 13)


class FakeCalendarProvider:
    """Behaviour keyed on the host's credentials ref."""

    def __init__(self):
        self.created = []

    async def fetch_busy_intervals(self, credentials_ref, range_start, range_end):
        if credentials_ref == "revoked":
            raise CalendarSyncError("Calendar credentials were rejected")
        if credentials_ref == "slow":
            await asyncio.sleep(5)
        return [(datetime(2030, 1, 7, 15), datetime(2030, 1, 7, 16))]

    async def create_external_event(self, credentials_ref, *, summary, start, end, attendees=()):
        self.created.append((credentials_ref, summary, start, end, list(attendees)))
        return "ext-1"


def _busy(db, host_id):
    return [
        (b.start_time, b.end_time)
        for b in db.query(BusyInterval).filter_by(host_id=host_id).order_by(BusyInterval.start_time).all()
    ]


def test_one_failing_host_does_not_abort_the_others(db):
    good = make_host(db, "Good", calendar_ref="ok")
    revoked = make_host(db, "Revoked", calendar_ref="revoked")
    slow = make_host(db, "Slow", calendar_ref="slow")
    make_host(db, "Unconnected")
    stale = (datetime(2030, 1, 8, 9), datetime(2030, 1, 8, 10))
    add_busy(db, revoked, *stale)

    report = asyncio.run(
        sync_hosts(
            db,
            FakeCalendarProvider(),
            range_start=RANGE_START,
            range_end=RANGE_END,
            timeout_seconds=0.05,
        )
    )

    assert report.synced == [good.id]
    assert set(report.failed) == {revoked.id, slow.id}
    assert "timed out" in report.failed[slow.id]

    db.expire_all()
    assert _busy(db, good.id) == [(datetime(2030, 1, 7, 15), datetime(2030, 1, 7, 16))]
    assert db.get(Host, good.id).last_synced_at is not None
    assert db.get(Host, good.id).calendar_sync_error is None

    # Failed host keeps its previous cache and is flagged
    assert _busy(db, revoked.id) == [stale]
    assert db.get(Host, revoked.id).calendar_sync_error == "Calendar credentials were rejected"


def test_successful_sync_clears_previous_error(db):
    host = make_host(db, "Recovered", calendar_ref="ok")
    host.calendar_sync_error = "Calendar sync timed out"
    db.commit()

    asyncio.run(sync_hosts(db, FakeCalendarProvider(), range_start=RANGE_START, range_end=RANGE_END))

    db.expire_all()
    assert db.get(Host, host.id).calendar_sync_error is None


def test_mirror_slot_records_external_ref(db):
    host = make_host(db, "Mirror", calendar_ref="ok")
    event = make_event(db, [host])
    start = MONDAY.replace(hour=14)
    booking = commit_booking(db, event, start, host.id, Attendee(first_name="Kim", email="kim@example.com"), now=NOW)
    provider = FakeCalendarProvider()

    ref = asyncio.run(mirror_slot_to_calendar(db, provider, booking.slot_id))

    assert ref == "ext-1"
    assert provider.created[0][4] == ["kim@example.com"]
    # Second call reuses the stored ref
    assert asyncio.run(mirror_slot_to_calendar(db, provider, booking.slot_id)) == "ext-1"
    assert len(provider.created) == 1


def test_google_client_parses_free_busy():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "calendars": {
                    "primary": {
                        "busy": [
                            {"start": "2030-01-07T15:00:00Z", "end": "2030-01-07T16:00:00Z"},
                            {"start": "2030-01-08T10:00:00-05:00", "end": "2030-01-08T11:00:00-05:00"},
                        ]
                    }
                }
            },
        )

    client = GoogleCalendarClient("https://calendar.test/v3", transport=httpx.MockTransport(handler))
    busy = asyncio.run(client.fetch_busy_intervals("tok", RANGE_START, RANGE_END))

    assert busy == [
        (datetime(2030, 1, 7, 15), datetime(2030, 1, 7, 16)),
        (datetime(2030, 1, 8, 15), datetime(2030, 1, 8, 16)),
    ]
    assert seen["auth"] == "Bearer tok"
    assert seen["body"]["timeMin"] == "2030-01-06T00:00:00Z"
    assert seen["body"]["items"] == [{"id": "primary"}]


def test_google_client_rejected_credentials():
    client = GoogleCalendarClient(
        "https://calendar.test/v3",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={})),
    )
    with pytest.raises(CalendarSyncError):
        asyncio.run(client.fetch_busy_intervals("bad", RANGE_START, RANGE_END))
