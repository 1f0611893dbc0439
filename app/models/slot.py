# app/models/slot.py
from sqlalchemy import (
    Boolean,
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


class Slot(Base):
    """
    A materialized time slot.

    Webinar slots are created up front by an admin; every other meeting type
    gets its row the first time a booking lands on a computed time.

    `capacity` is copied from the event when the row is created and
    `booking_count` is only ever changed by a single conditional UPDATE, so
    the check constraint below is the last line against overbooking.
    """

    __tablename__ = "slots"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_slot_time_range"),
        CheckConstraint(
            "booking_count >= 0 AND booking_count <= capacity",
            name="ck_slot_capacity",
        ),
        UniqueConstraint(
            "event_id", "start_time", "assigned_host_id", name="uq_slot_event_start_host"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    assigned_host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)

    capacity = Column(Integer, nullable=False, default=1)
    booking_count = Column(Integer, nullable=False, default=0)

    is_cancelled = Column(Boolean, nullable=False, default=False)

    # Opaque id of the mirrored external calendar event, if any
    external_event_ref = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    event = relationship("Event", backref="slots")
    assigned_host = relationship("Host")
