# app/models/busy_interval.py
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String

from app.models.base import Base
from app.timeutils import utcnow


class BusyInterval(Base):
    """
    A block of time during which a host is externally busy.

    Rows are written only by calendar sync and are opaque: they are never
    attributed to a particular meeting.
    """

    __tablename__ = "busy_intervals"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_busy_time_range"),
        Index("ix_busy_host_time", "host_id", "start_time", "end_time"),
    )

    id = Column(Integer, primary_key=True, index=True)

    host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="CASCADE"),
        nullable=False,
    )

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)

    source = Column(String(32), nullable=False, default="google_calendar")
    synced_at = Column(DateTime, default=utcnow, nullable=False)
