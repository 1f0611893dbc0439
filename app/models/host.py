# app/models/host.py
from sqlalchemy import Column, Integer, String, DateTime

from app.models.base import Base
from app.timeutils import utcnow


class Host(Base):
    __tablename__ = "hosts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)

    # Opaque pointer to stored calendar credentials; NULL means no calendar connected
    calendar_credentials_ref = Column(String(512), nullable=True)

    # Personal caps across all events; NULL falls back to settings defaults
    max_meetings_per_day = Column(Integer, nullable=True)
    max_meetings_per_week = Column(Integer, nullable=True)

    last_synced_at = Column(DateTime, nullable=True)
    calendar_sync_error = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def calendar_connected(self) -> bool:
        return bool(self.calendar_credentials_ref)
