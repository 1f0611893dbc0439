# app/services/calendar_client.py
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence, Tuple

import httpx

from app.config import get_settings
from app.services.errors import CalendarSyncError
from app.timeutils import to_utc_naive

Interval = Tuple[datetime, datetime]


class CalendarProvider(Protocol):
    async def fetch_busy_intervals(
        self,
        credentials_ref: str,
        range_start: datetime,
        range_end: datetime,
    ) -> List[Interval]:
        ...

    async def create_external_event(
        self,
        credentials_ref: str,
        *,
        summary: str,
        start: datetime,
        end: datetime,
        attendees: Sequence[str] = (),
    ) -> str:
        ...


def _rfc3339(value: datetime) -> str:
    return to_utc_naive(value).replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_rfc3339(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return to_utc_naive(datetime.fromisoformat(value))


class GoogleCalendarClient:
    """
    Thin wrapper around the Google Calendar REST API.

    `credentials_ref` is used as the bearer token; resolving stored
    credentials into a token happens before this layer.
    Swap in a fake with the same two methods for tests.
    """

    def __init__(
        self,
        base_url: str,
        calendar_id: str = "primary",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._calendar_id = calendar_id
        self._timeout = timeout
        self._transport = transport

    def _client(self, credentials_ref: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {credentials_ref}"},
        )

    @staticmethod
    def _check(resp: httpx.Response, what: str) -> None:
        if resp.status_code in (401, 403):
            raise CalendarSyncError("Calendar credentials were rejected")
        if resp.status_code >= 400:
            raise CalendarSyncError(f"{what} failed with status {resp.status_code}")

    async def fetch_busy_intervals(
        self,
        credentials_ref: str,
        range_start: datetime,
        range_end: datetime,
    ) -> List[Interval]:
        payload = {
            "timeMin": _rfc3339(range_start),
            "timeMax": _rfc3339(range_end),
            "items": [{"id": self._calendar_id}],
        }
        async with self._client(credentials_ref) as client:
            resp = await client.post("/freeBusy", json=payload)
        self._check(resp, "Free/busy request")

        calendar = (resp.json().get("calendars") or {}).get(self._calendar_id) or {}
        if calendar.get("errors"):
            reason = calendar["errors"][0].get("reason", "unknown")
            raise CalendarSyncError(f"Calendar returned an error: {reason}")

        return [
            (_parse_rfc3339(block["start"]), _parse_rfc3339(block["end"]))
            for block in calendar.get("busy", [])
        ]

    async def create_external_event(
        self,
        credentials_ref: str,
        *,
        summary: str,
        start: datetime,
        end: datetime,
        attendees: Sequence[str] = (),
    ) -> str:
        payload = {
            "summary": summary,
            "start": {"dateTime": _rfc3339(start)},
            "end": {"dateTime": _rfc3339(end)},
            "attendees": [{"email": a} for a in attendees],
        }
        async with self._client(credentials_ref) as client:
            resp = await client.post(f"/calendars/{self._calendar_id}/events", json=payload)
        self._check(resp, "Event creation")
        return resp.json()["id"]


def get_calendar_provider() -> CalendarProvider:
    """
    FastAPI dependency to get the configured calendar provider.
    Raises RuntimeError if configuration is incomplete.
    """
    settings = get_settings()
    if not settings.GOOGLE_CALENDAR_API_URL:
        raise RuntimeError("Calendar not configured, missing: GOOGLE_CALENDAR_API_URL")

    return GoogleCalendarClient(
        base_url=settings.GOOGLE_CALENDAR_API_URL,
        calendar_id=settings.GOOGLE_CALENDAR_ID or "primary",
        timeout=settings.CALENDAR_SYNC_TIMEOUT_SECONDS,
    )
