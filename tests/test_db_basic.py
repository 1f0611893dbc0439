# tests/test_db_basic.py
import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from app.db.session import engine
from app.models import Base, Host, Slot

from factories import make_event, make_host, MONDAY


def test_db_can_create_schema():
    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        result = conn.execute(text("SELECT 1"))
        assert result.scalar() == 1


def test_create_and_read_host(db):
    host = make_host(db, "Test Host", calendar_ref="token-1")
    assert host.id is not None
    assert host.calendar_connected is True

    fetched = db.query(Host).filter_by(email="test.host@example.com").first()
    assert fetched is not None
    assert fetched.name == "Test Host"


def test_slot_capacity_check_rejects_overbooking(db):
    host = make_host(db, "Cap Host")
    event = make_event(db, [host])

    db.add(
        Slot(
            event_id=event.id,
            assigned_host_id=host.id,
            start_time=MONDAY,
            end_time=MONDAY.replace(minute=30),
            capacity=1,
            booking_count=2,
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
