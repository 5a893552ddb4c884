"""
Shared fixtures: an in-memory SQLite store driven by a controllable clock.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from voteboard.database import Base
from voteboard.engine import RankingEngine
from voteboard.sql_store import SQLStore

START_TIME = 1_700_000_000


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: needs a live Redis server on localhost:6379."
    )


class FakeClock:
    """Stands in for time.time; moves only when told to."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield Session
    engine.dispose()


@pytest.fixture
def file_db_factory(tmp_path):
    """A SQLite file shared by many threads, each opening its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'voteboard.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        pool_size=20,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield Session
    engine.dispose()


@pytest.fixture
def db(db_factory):
    session = db_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(db, clock):
    return SQLStore(db, clock=clock)


@pytest.fixture
def ranking_engine(store, clock):
    return RankingEngine(store, clock=clock)
