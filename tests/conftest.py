# tests/conftest.py
from __future__ import annotations

import os
import uuid
from collections.abc import Iterator
from typing import Any

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EPHEMERAL_STORE_BACKEND", "memory")

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from worldvibe.api.v1.dependencies import get_check_in_recorder, get_ephemeral_store
from worldvibe.core.settings import Settings
from worldvibe.db.session import Base
from worldvibe.main import app as fastapi_app
from worldvibe.schemas.check_in import CheckInPayload
from worldvibe.services.admission import AdmissionService
from worldvibe.services.ephemeral_store import MemoryEphemeralStore
from worldvibe.services.errors import PersistenceError, StoreUnavailableError
from worldvibe.services.metrics import AdmissionMetrics, get_admission_metrics
from worldvibe.services.recorder import SqlCheckInRecorder

TEST_DB_URL = "sqlite://"


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore:
    """Ephemeral store whose every call behaves like a Redis outage."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def _fail(self, name: str) -> Any:
        self.calls.append(name)
        raise StoreUnavailableError(f"{name}: connection refused")

    def get(self, key: str) -> str | None:
        return self._fail("get")

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        self._fail("set_with_ttl")

    def set_if_absent_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        return self._fail("set_if_absent_with_ttl")

    def ttl(self, key: str) -> int | None:
        return self._fail("ttl")

    def delete(self, key: str) -> None:
        self._fail("delete")

    def get_and_delete(self, key: str) -> str | None:
        return self._fail("get_and_delete")

    def ping(self) -> bool:
        return False


class ListRecorder:
    """Storage collaborator that keeps recorded payloads in memory."""

    def __init__(self) -> None:
        self.records: dict[str, CheckInPayload] = {}

    def record(self, payload: CheckInPayload) -> str:
        record_id = uuid.uuid4().hex
        self.records[record_id] = payload
        return record_id


class FailingRecorder:
    """Storage collaborator that always fails to persist."""

    def record(self, payload: CheckInPayload) -> str:
        raise PersistenceError("database is down")


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with fixed salts and the documented defaults."""
    return Settings(
        token_salt="test-token-salt",
        identity_salt="test-identity-salt",
        ephemeral_store_backend="memory",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> MemoryEphemeralStore:
    return MemoryEphemeralStore(clock=clock)


@pytest.fixture()
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture()
def metrics() -> AdmissionMetrics:
    return AdmissionMetrics()


@pytest.fixture()
def recorder() -> ListRecorder:
    return ListRecorder()


@pytest.fixture()
def failing_recorder() -> FailingRecorder:
    return FailingRecorder()


@pytest.fixture()
def service(
    store: MemoryEphemeralStore,
    recorder: ListRecorder,
    test_settings: Settings,
    metrics: AdmissionMetrics,
) -> AdmissionService:
    """Admission pipeline over the in-memory store and recorder."""
    return AdmissionService.from_settings(store, recorder, test_settings, metrics)


@pytest.fixture()
def payload() -> CheckInPayload:
    """A check-in that passes every content rule."""
    return CheckInPayload(
        emotion="joy",
        intensity=4,
        note="Feeling great after a long walk",
        region="us-ca",
        coordinates={"latitude": 37.77493, "longitude": -122.41942},
    )


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def sql_recorder(session_factory: sessionmaker[Session]) -> SqlCheckInRecorder:
    return SqlCheckInRecorder(session_factory)


@pytest.fixture(autouse=True)
def reset_admission_metrics() -> Iterator[None]:
    get_admission_metrics().reset()
    yield
    get_admission_metrics().reset()


@pytest.fixture()
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def api_store(app: FastAPI, store: MemoryEphemeralStore) -> Iterator[MemoryEphemeralStore]:
    """Route the API's ephemeral store dependency to the test store."""
    app.dependency_overrides[get_ephemeral_store] = lambda: store
    try:
        yield store
    finally:
        app.dependency_overrides.pop(get_ephemeral_store, None)


@pytest.fixture()
def api_recorder(app: FastAPI, sql_recorder: SqlCheckInRecorder) -> Iterator[SqlCheckInRecorder]:
    """Route the API's recorder dependency to the test database."""
    app.dependency_overrides[get_check_in_recorder] = lambda: sql_recorder
    try:
        yield sql_recorder
    finally:
        app.dependency_overrides.pop(get_check_in_recorder, None)


@pytest.fixture()
def client(
    app: FastAPI,
    api_store: MemoryEphemeralStore,
    api_recorder: SqlCheckInRecorder,
) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
