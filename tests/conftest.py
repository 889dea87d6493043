"""Shared fixtures: throwaway SQLite databases, a pinned clock and habit factories."""

# pylint: disable=redefined-outer-name

from datetime import date, timedelta

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import habitstreaks.models  # noqa: F401  (registers tables)
from habitstreaks.clock import FixedClock
from habitstreaks.database import Base, build_engine
from habitstreaks.services.habit_service import HabitService

TODAY = date(2024, 1, 11)


def days(start: date, end: date):
    """Inclusive date range."""
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed database for tests that use several sessions from several threads."""
    engine = build_engine(f"sqlite:///{tmp_path / 'habits.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def service(clock):
    return HabitService(clock=clock)


@pytest.fixture
def make_habit(db, service):
    def _make(owner_id=1, **data):
        data.setdefault("name", "Meditate")
        data.setdefault("creation_date", date(2024, 1, 1))
        return service.create_habit(db, owner_id, data)

    return _make
