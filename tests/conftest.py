"""
Pytest configuration for EdConnect Records.

Provides fixtures for:
- In-memory stores with a deterministic clock
- Seeded collections for listing and hierarchy tests
- PostgreSQL connection management for integration tests
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator, List

import psycopg
import pytest

from edconnect_records.config import Settings, get_settings
from edconnect_records.domain.models import Record
from edconnect_records.infrastructure.db_factory import PoolManager
from edconnect_records.infrastructure.postgres_store import PostgresStore
from edconnect_records.infrastructure.store import InMemoryStore

EPOCH = datetime(2024, 9, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    """Drop cached settings so env overrides in one test do not leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class StepClock:
    """Clock that advances one minute per call."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self._next = start

    def __call__(self) -> datetime:
        current = self._next
        self._next = current + timedelta(minutes=1)
        return current


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store(clock: StepClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def make_records(store: InMemoryStore) -> Callable[..., List[Record]]:
    """
    Create ``count`` records in ``collection``; ``factory(i)`` supplies the data.
    """

    def _make(collection: str, count: int, factory=None) -> List[Record]:
        if not store.has_collection(collection):
            store.create_collection(collection)
        factory = factory or (lambda i: {"title": f"Item {i}"})
        return [store.create(collection, {"id": f"r{i:02d}", **factory(i)}) for i in range(1, count + 1)]

    return _make


@pytest.fixture
def category_chain(store: InMemoryStore) -> InMemoryStore:
    """
    Category tree A <- B <- C plus an unconnected D.
    """
    store.create_collection("blog_categories", unique_fields=("slug",))
    store.create("blog_categories", {"id": "A", "name": "Assessment", "slug": "assessment", "parent_id": None})
    store.create("blog_categories", {"id": "B", "name": "Dyslexia", "slug": "dyslexia", "parent_id": "A"})
    store.create("blog_categories", {"id": "C", "name": "Screening", "slug": "screening", "parent_id": "B"})
    store.create("blog_categories", {"id": "D", "name": "Wellbeing", "slug": "wellbeing", "parent_id": None})
    return store


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "edconnect"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def pool_manager(test_dsn: str, db_connection_available: bool) -> Generator[PoolManager, None, None]:
    """
    Session-scoped pool for integration tests. Skips if the database is down.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    manager = PoolManager(dsn=test_dsn, min_size=1, max_size=4)
    try:
        yield manager
    finally:
        manager.close_all()


@pytest.fixture
def pg_store(pool_manager: PoolManager) -> PostgresStore:
    return PostgresStore(pool_manager, statement_timeout_ms=5_000)


@pytest.fixture
def pg_collection(pg_store: PostgresStore) -> Generator[str, None, None]:
    """
    A throwaway collection with a unique ``slug`` field, dropped afterwards.
    """
    name = f"test_{uuid.uuid4().hex[:12]}"
    pg_store.create_collection(name, unique_fields=("slug",))
    try:
        yield name
    finally:
        pg_store.drop_collection(name)
