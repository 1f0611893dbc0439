# app/models/company_holiday.py
from sqlalchemy import Column, Date, DateTime, Integer, String

from app.models.base import Base
from app.timeutils import utcnow


class CompanyHoliday(Base):
    __tablename__ = "company_holidays"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
