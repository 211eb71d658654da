"""Pytest configuration and fixtures."""
import os

# Must be set before any app module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker

from app.db.base_class import Base
from app.models.feature_flag import FeatureFlag
from app.services.feature_flags import FlagStore
from app.services.health_checks import CheckResult, HealthAggregator, ProbeRegistry
from app.models.health import HealthCategory, HealthStatus

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}


class FakeClock:
    """Manually advanced seconds counter for TTL tests."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# --- Session-level fixtures ---

@pytest.fixture(scope="session")
def test_engine():
    """In-memory SQLite shared by every connection (session scope)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


# --- Per-test fixtures ---

@pytest.fixture
def session_factory(test_engine):
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=test_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def flag_store(session_factory, clock):
    """FlagStore reading the test database, driven by the fake clock."""
    def _load():
        s = session_factory()
        try:
            return {f.key: f.value for f in s.query(FeatureFlag).all()}
        finally:
            s.close()

    return FlagStore(loader=_load, ttl=60.0, clock=clock)


@pytest.fixture
def probe_registry():
    registry = ProbeRegistry()

    @registry.register("db-connection", HealthCategory.DATABASE)
    async def _db():
        return CheckResult("db-connection", HealthCategory.DATABASE, HealthStatus.OK, latency_ms=3)

    @registry.register("api-categories", HealthCategory.API)
    async def _slow():
        return CheckResult("api-categories", HealthCategory.API, HealthStatus.WARNING, latency_ms=2500)

    @registry.register("redis-ping", HealthCategory.CACHE)
    def _redis():
        raise ConnectionError("redis down")

    return registry


@pytest.fixture
async def client(session_factory, flag_store, probe_registry, monkeypatch):
    """
    Async HTTP client with:
      - get_db bound to the in-memory test database
      - flag store and probe registry replaced by test doubles
      - the 500 handler writing to the test database
    """
    from app.main import app as fastapi_app
    from app.api import deps
    import app.main as main_module

    def _override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    fastapi_app.dependency_overrides[deps.get_db] = _override_get_db
    fastapi_app.dependency_overrides[deps.get_flag_store] = lambda: flag_store
    fastapi_app.dependency_overrides[deps.get_health_aggregator] = lambda: HealthAggregator(probe_registry)
    monkeypatch.setattr(main_module, "SessionLocal", session_factory)

    transport = ASGITransport(app=fastapi_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)
