# app/services/holiday_service.py
from datetime import date
from typing import Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.company_holiday import CompanyHoliday


def list_holidays(db: Session, start: date, end: date) -> Set[date]:
    """Company holiday dates in [start, end] inclusive."""
    rows = (
        db.query(CompanyHoliday.date)
        .filter(CompanyHoliday.date >= start, CompanyHoliday.date <= end)
        .all()
    )
    return {r[0] for r in rows}


def add_holiday(db: Session, day: date, name: str) -> CompanyHoliday:
    holiday = CompanyHoliday(date=day, name=name)
    db.add(holiday)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValueError(f"{day.isoformat()} is already a company holiday") from e
    db.refresh(holiday)
    return holiday
