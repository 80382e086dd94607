"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")
os.environ.setdefault("GEO_LOOKUP_ENABLED", "false")
os.environ.setdefault("ANOMALY_SWEEP_ENABLED", "false")
os.environ["OPENAI_API_KEY"] = ""

from app.database import Base, get_db
from app import models  # noqa: F401
from app.services.anomaly_advisor import AnomalyAdvisor
from app.services.auth import create_access_token
from app.services.event_store import EventStore
from app.services.geo import NullGeoResolver
from tests.utils import StubReasoningClient


@pytest.fixture()
def engine():
    # One shared connection so request sessions and background-task sessions see the same data
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture()
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def reasoning_client() -> StubReasoningClient:
    return StubReasoningClient("OK")


@pytest.fixture()
def client(session_factory, reasoning_client):
    from fastapi.testclient import TestClient

    from app.dependencies import get_advisor_factory, get_geo_resolver, get_session_factory
    from app.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_advisor_factory] = lambda: (
        lambda db: AnomalyAdvisor(EventStore(db), reasoning_client, threshold=8)
    )
    app.dependency_overrides[get_geo_resolver] = lambda: NullGeoResolver()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    token = create_access_token("1", "admin@example.com")
    return {"Authorization": f"Bearer {token}"}
