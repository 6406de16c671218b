import os
import sys
from pathlib import Path

from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

TEST_DATABASE_URL = "sqlite://"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("ENABLE_PROFILE_EXPIRY_SWEEP", "false")

from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.services.connection_profile_cache import profile_read_cache  # noqa: E402


def _create_testing_engine():
    return create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )


def _create_test_sessionmaker(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture(scope="session")
def engine():
    engine = _create_testing_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    connection = engine.connect()

    TestingSessionLocal = _create_test_sessionmaker(connection)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        connection.close()


@pytest.fixture(autouse=True)
def _reset_profile_cache() -> Generator[None, None, None]:
    profile_read_cache.invalidate()
    yield
    profile_read_cache.invalidate()


class PrefixedTestClient(TestClient):
    api_prefix = "/api"

    def request(self, method: str, url: str, *args, **kwargs):  # type: ignore[override]
        if url.startswith("/") and not url.startswith("/health"):
            url = f"{self.api_prefix}{url}"
        return super().request(method, url, *args, **kwargs)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    client = PrefixedTestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.pop(get_db, None)


class FrozenClock:
    """Callable clock for services; tests move it with ``advance_to``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance_to(self, now: datetime) -> None:
        self.now = now


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 7, 1, tzinfo=timezone.utc))


def _build_profile_payload(**overrides) -> dict:
    payload = {
        "profile_name": "Orders Warehouse",
        "profile_code": "ORD_WH",
        "connection_type": "database",
        "database_name": "orders",
        "database_type": "postgresql",
        "load_strategy": "incremental",
        "sync_column_name": "updated_at",
        "sync_column_type": "timestamp",
        "environment": "production",
        "batch_size": 500,
        "parallel_threads": 4,
        "min_pool_size": 2,
        "max_pool_size": 8,
        "connection_timeout_seconds": 30,
        "idle_timeout_seconds": 600,
        "max_retries": 3,
        "retry_backoff_multiplier": 1.5,
        "circuit_breaker_threshold": 5,
        "data_classification": "confidential",
        "contains_pii": False,
        "gdpr_applicable": False,
        "valid_from": "2024-01-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def profile_payload():
    return _build_profile_payload
