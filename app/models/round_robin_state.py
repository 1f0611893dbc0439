# app/models/round_robin_state.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint

from app.models.base import Base
from app.timeutils import utcnow


class RoundRobinState(Base):
    """
    Per-(event, host) assignment counters.

    Only touched through single conditional UPDATE statements
    (see app.services.round_robin_service) so concurrent commits never
    read-modify-write a stale count.
    """

    __tablename__ = "round_robin_states"
    __table_args__ = (
        UniqueConstraint("event_id", "host_id", name="uq_rr_state_event_host"),
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

    # Start of the counting period that period_booking_count belongs to
    period_start = Column(DateTime, nullable=False)
    period_booking_count = Column(Integer, nullable=False, default=0)
    total_assignments = Column(Integer, nullable=False, default=0)

    last_assigned_at = Column(DateTime, nullable=True)


class RoundRobinCursor(Base):
    """Rotation position for the `cycle` strategy, one row per event."""

    __tablename__ = "round_robin_cursors"

    id = Column(Integer, primary_key=True, index=True)

    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Index into the event's participating hosts (creation order)
    next_index = Column(Integer, nullable=False, default=0)
    # Bumped on every advance and release; picks carry the version they read
    version = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
