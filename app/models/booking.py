# app/models/booking.py
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from app.models.base import Base
from app.timeutils import utcnow


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # Same attendee cannot hold two live seats in one slot
        Index(
            "uq_booking_slot_email_active",
            "slot_id",
            "email",
            unique=True,
            sqlite_where=text("cancelled_at IS NULL"),
            postgresql_where=text("cancelled_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    slot_id = Column(
        Integer,
        ForeignKey("slots.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

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

    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=True)
    # Always stored lowercased
    email = Column(String(255), nullable=False)
    attendee_timezone = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    cancelled_at = Column(DateTime, nullable=True)
    attended_at = Column(DateTime, nullable=True)

    slot = relationship("Slot", backref="bookings")
    assigned_host = relationship("Host")
