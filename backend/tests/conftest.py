"""Pytest fixtures — file-backed SQLite database, fresh for every test."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from collective.auth import Principal, create_access_token
from collective.database import Base, get_db
from collective.main import app
from collective.models.event import Event
from collective.models.profile import Profile, UserRole

# Import all models so they register with Base.metadata
import collective.models  # noqa: F401

SQLITE_URL = "sqlite:///./test.db"

# Fixed clock for lifecycle tests; always UTC
T0 = datetime(2026, 6, 1, 18, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def auth_headers(uid: Optional[str] = None, service: bool = False) -> dict:
    """Bearer header for a profile id (or the service key)."""
    return {"Authorization": f"Bearer {create_access_token(uid, service=service)}"}


def create_profile(db, name: str = "Test Member", role: UserRole = UserRole.member) -> Profile:
    """Insert a profile row directly and return it."""
    profile = Profile(display_name=name, role=role)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def create_admin(db, name: str = "Admin") -> Profile:
    return create_profile(db, name=name, role=UserRole.admin)


def member(profile: Profile) -> Principal:
    return Principal.authenticated(profile.profile_id)


def create_event(
    db,
    host: Profile,
    title: str = "Open Mic",
    capacity: Optional[int] = None,
    is_published: bool = True,
    start: Optional[datetime] = None,
    **fields,
) -> Event:
    """Insert an event row directly and return it."""
    event_row = Event(
        host_profile_id=host.profile_id,
        title=title,
        start_time_utc=start or T0 + timedelta(days=7),
        capacity=capacity,
        is_published=is_published,
        **fields,
    )
    db.add(event_row)
    db.commit()
    db.refresh(event_row)
    return event_row


def create_test_profile(client: TestClient, uid: str, name: str = "Test Member") -> dict:
    """Helper — POST /api/profiles as ``uid`` and return response JSON."""
    resp = client.post("/api/profiles/", json={"display_name": name}, headers=auth_headers(uid))
    assert resp.status_code == 201, resp.text
    return resp.json()
