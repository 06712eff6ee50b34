import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite://"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"
os.environ["TIMEZONE"] = "Atlantic/Canary"

from zoneinfo import ZoneInfo

import pytest

from campus_booking.db.base import Base
from campus_booking.db.session import SessionLocal, engine


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def canary():
    return ZoneInfo("Atlantic/Canary")
