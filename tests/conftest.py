"""Pytest configuration and shared fixtures."""

import os

# Keep the application engine off the developer's database file
os.environ.setdefault("HERITAGE_DATABASE_URL", "sqlite://")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import heritage.db.models  # noqa: F401
from heritage.api.deps import get_db, get_event_sink
from heritage.api.main import app
from heritage.core.security import create_access_token
from heritage.db.base import Base

from tests.factories import create_museum, create_user


@pytest.fixture()
def engine():
    """In-memory SQLite engine shared by every connection in a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    """Fresh session on a fresh database for each test."""
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture()
def events():
    """Workflow events captured by the test event sink."""
    return []


@pytest.fixture()
def client(db_session, events):
    """API client bound to the test session, recording emitted events."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_sink] = lambda: events.append
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    """Build bearer headers for a user."""

    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture()
def people(db_session):
    """Two approved museums with their staff, a super admin and a visitor."""
    louvre = create_museum(db_session, name="Louvre")
    prado = create_museum(db_session, name="Prado")

    cast = SimpleNamespace(
        louvre=louvre,
        prado=prado,
        super_admin=create_user(db_session, role="super_admin", name="Platform Owner"),
        louvre_admin=create_user(db_session, role="museum_admin", museum=louvre),
        louvre_staff=create_user(db_session, role="museum_staff", museum=louvre),
        prado_admin=create_user(db_session, role="museum_admin", museum=prado),
        prado_staff=create_user(db_session, role="museum_staff", museum=prado),
        visitor=create_user(db_session, role="visitor"),
    )
    db_session.commit()
    return cast
