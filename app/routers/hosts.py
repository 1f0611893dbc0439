# app/routers/hosts.py
from datetime import time, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db.session import get_db
from app.models.host import Host
from app.services.availability_pattern_service import (
    PatternWindow,
    get_active_patterns,
    replace_patterns,
)
from app.services.calendar_client import CalendarProvider, get_calendar_provider
from app.services.calendar_sync_service import sync_hosts
from app.services.errors import NotFoundError
from app.timeutils import utcnow

router = APIRouter()


class PatternIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    timezone: Optional[str] = None

    @model_validator(mode="after")
    def check_end_after_start(self) -> "PatternIn":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class PatternsPayload(BaseModel):
    patterns: List[PatternIn]


class CalendarSyncRequest(BaseModel):
    host_ids: Optional[List[int]] = None
    days: Optional[int] = Field(default=None, gt=0, le=365)


def _serialize_patterns(host_id: int, patterns) -> Dict[str, Any]:
    return {
        "host_id": host_id,
        "patterns": [
            {
                "id": p.id,
                "day_of_week": p.day_of_week,
                "start_time": p.start_time.strftime("%H:%M"),
                "end_time": p.end_time.strftime("%H:%M"),
                "timezone": p.timezone,
            }
            for p in patterns
        ],
    }


@router.get("/{host_id}/availability-patterns")
def list_patterns(
    host_id: int,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    if db.get(Host, host_id) is None:
        raise HTTPException(status_code=404, detail="Host not found")
    return _serialize_patterns(host_id, get_active_patterns(db, host_id))


@router.put("/{host_id}/availability-patterns")
def put_patterns(
    host_id: int,
    payload: PatternsPayload,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Replace the host's weekly availability with the given windows."""
    try:
        patterns = replace_patterns(
            db,
            host_id=host_id,
            windows=[
                PatternWindow(
                    day_of_week=p.day_of_week,
                    start_time=p.start_time,
                    end_time=p.end_time,
                    timezone=p.timezone or "",
                )
                for p in payload.patterns
            ],
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _serialize_patterns(host_id, patterns)


@router.post("/calendar-sync")
async def trigger_calendar_sync(
    payload: CalendarSyncRequest,
    db: Session = Depends(get_db),
    provider: CalendarProvider = Depends(get_calendar_provider),
) -> Dict[str, Any]:
    """
    Refresh cached busy time for connected hosts.
    Per-host failures are reported, not raised.
    """
    range_start = utcnow()
    range_end = range_start + timedelta(
        days=payload.days or get_settings().CALENDAR_SYNC_LOOKAHEAD_DAYS
    )
    report = await sync_hosts(
        db,
        provider,
        range_start=range_start,
        range_end=range_end,
        host_ids=payload.host_ids,
    )
    return {
        "range_start": report.range_start.isoformat(),
        "range_end": report.range_end.isoformat(),
        "synced": report.synced,
        "failed": {str(k): v for k, v in report.failed.items()},
    }
