# app/models/availability_pattern.py
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Time,
)
from sqlalchemy.orm import relationship

from app.models.base import Base
from app.timeutils import utcnow


class AvailabilityPattern(Base):
    """
    Recurring weekly window during which a host takes meetings.

    Example: "Mondays 09:00-12:00 America/New_York".
    day_of_week follows `date.weekday()`: 0 = Monday ... 6 = Sunday.
    """

    __tablename__ = "availability_patterns"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_pattern_time_range"),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_pattern_day"),
    )

    id = Column(Integer, primary_key=True, index=True)

    host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False, default="America/New_York")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    host = relationship("Host", backref="availability_patterns")
