"""Root conftest: shared fixtures for all zyra tests."""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure zyra/ is on sys.path
_zyra_dir = str(Path(__file__).resolve().parent)
if _zyra_dir not in sys.path:
    sys.path.insert(0, _zyra_dir)

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
import models  # noqa: F401  register all models with Base

# In-memory SQLite; StaticPool makes all connections share the same DB
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = sessionmaker(bind=TEST_ENGINE, autoflush=False, expire_on_commit=False)


@pytest.fixture(autouse=True)
def _setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db():
    """Yield a test database session."""
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory():
    """Sessionmaker bound to the in-memory test engine."""
    return TestSession


@pytest.fixture
def user_profile(db):
    from models.user import UserProfile

    profile = UserProfile(username="shopowner", email="owner@example.com", plan="Growth")
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def api_key(db, user_profile):
    from models.user import APIKey

    key = APIKey(user_id=user_profile.id)
    db.add(key)
    db.commit()
    db.refresh(key)
    return key


@pytest.fixture
def fake_redis(monkeypatch):
    """Route the emitter's sync Redis connections to one in-process fake server."""
    server = fakeredis.FakeServer()

    def _from_url(url, **kwargs):
        return fakeredis.FakeRedis(server=server, **kwargs)

    monkeypatch.setattr("services.activity_emitter.redis_lib.from_url", _from_url)
    return fakeredis.FakeRedis(server=server, decode_responses=True)


def _make_event(n: int = 0, phase: str = "execute", **overrides) -> dict:
    """Wire-format activity event."""
    event = {
        "id": f"loop-1-{n}",
        "userId": "1",
        "loopId": "loop-1",
        "eventType": "EXECUTE_PROGRESS",
        "phase": phase,
        "timestamp": "2026-10-19T12:00:00+00:00",
        "message": f"Optimizing product {n}",
        "status": "action",
    }
    event.update(overrides)
    return event


@pytest.fixture
def make_event():
    return _make_event
