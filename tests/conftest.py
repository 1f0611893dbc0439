# tests/conftest.py
import os

# Must be set before anything imports app.config
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_slot_engine.db")
os.environ.setdefault("COMPANY_TIMEZONE", "America/New_York")
os.environ.setdefault("DEFAULT_PATTERN_TIMEZONE", "America/New_York")

import pytest  # noqa: E402

from app.db.session import SessionLocal, engine  # noqa: E402
from app.models import Base  # noqa: E402


@pytest.fixture
def db():
    # Fresh schema per test
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
