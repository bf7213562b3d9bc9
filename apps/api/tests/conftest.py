"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database (created fresh for every
test) and a scripted upstream (FakeUpstream); no network, Postgres or
Redis is needed.
"""
import os
import sys

# Settings are read at import time, so the environment comes first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["OPENROUTER_API_KEY"] = "test-key"
os.environ.pop("SENTRY_DSN", None)

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from fastapi.testclient import TestClient

from core.database import Base, SessionLocal, engine, get_db
import models  # noqa: F401
from services.openrouter_client import get_openrouter_client
from fixtures.sse_fixtures import FakeUpstream


@pytest.fixture(autouse=True)
def _schema():
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(db_session, upstream):
    """API client with the database session and the upstream replaced."""
    from main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_openrouter_client] = upstream.client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
