# app/models/event.py
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.models.base import Base
from app.timeutils import utcnow


class MeetingType(str, Enum):
    ONE_ON_ONE = "one_on_one"
    GROUP = "group"
    COLLECTIVE = "collective"
    ROUND_ROBIN = "round_robin"
    PANEL = "panel"
    WEBINAR = "webinar"


class RoundRobinStrategy(str, Enum):
    CYCLE = "cycle"
    LEAST_BOOKINGS = "least_bookings"
    PRIORITY = "priority"
    AVAILABILITY_WEIGHTED = "availability_weighted"


class RoundRobinPeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    ALL_TIME = "all_time"


class HostRole(str, Enum):
    OWNER = "owner"
    HOST = "host"
    BACKUP = "backup"


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint(
            "duration_minutes > 0 AND duration_minutes <= 480",
            name="ck_event_duration_range",
        ),
        CheckConstraint("max_attendees > 0", name="ck_event_max_attendees"),
        CheckConstraint(
            "buffer_before >= 0 AND buffer_after >= 0",
            name="ck_event_buffers",
        ),
        CheckConstraint(
            "start_time_increment IS NULL OR start_time_increment > 0",
            name="ck_event_increment",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)

    # Store enums as plain strings; MeetingType etc. are still used in Python
    meeting_type = Column(
        String(32),
        nullable=False,
        default=MeetingType.ONE_ON_ONE.value,
    )

    duration_minutes = Column(Integer, nullable=False, default=30)
    max_attendees = Column(Integer, nullable=False, default=1)
    buffer_before = Column(Integer, nullable=False, default=0)
    buffer_after = Column(Integer, nullable=False, default=0)

    # NULL columns fall back to settings defaults
    start_time_increment = Column(Integer, nullable=True)
    min_notice_hours = Column(Integer, nullable=True)
    booking_window_days = Column(Integer, nullable=True)

    max_daily_bookings = Column(Integer, nullable=True)
    max_weekly_bookings = Column(Integer, nullable=True)

    round_robin_strategy = Column(
        String(32),
        nullable=False,
        default=RoundRobinStrategy.CYCLE.value,
    )
    round_robin_period = Column(
        String(16),
        nullable=False,
        default=RoundRobinPeriod.WEEK.value,
    )

    created_at = Column(DateTime, default=utcnow, nullable=False)

    hosts = relationship(
        "EventHost",
        back_populates="event",
        cascade="all, delete-orphan",
    )


class EventHost(Base):
    """
    A host taking part in an event.

    Creation order is the stable ordering used by round-robin rotation and
    every tie-break, so `created_at` is never rewritten.
    """

    __tablename__ = "event_hosts"
    __table_args__ = (
        UniqueConstraint("event_id", "host_id", name="uq_event_host"),
        CheckConstraint("priority >= 1 AND priority <= 10", name="ck_event_host_priority"),
    )

    id = Column(Integer, primary_key=True, index=True)

    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role = Column(String(16), nullable=False, default=HostRole.HOST.value)

    # Weight for the `priority` strategy (1..10)
    priority = Column(Integer, nullable=False, default=5)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    event = relationship("Event", back_populates="hosts")
    host = relationship("Host")
