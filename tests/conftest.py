"""Shared pytest fixtures for all test suites."""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from docuhealth.config import DispatchConfig
from docuhealth.db.engine import create_schema, create_session_factory
from docuhealth.db.inmemory import InMemoryRecordStore
from docuhealth.db.models import Base
from docuhealth.db.sql_repositories import SqlRecordStore
from docuhealth.dispatch.dispatcher import Dispatcher
from docuhealth.errors import DispatchError
from docuhealth.models.processing import OcrResult, OperationHandle
from docuhealth.storage.inmemory import InMemoryObjectStager

MB = 1024 * 1024


class FixedClock:
    """Deterministic clock; call to read, ``advance`` to move forward."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeIntelligenceClient:
    """Scripted document-intelligence client that records every call."""

    def __init__(
        self,
        *,
        max_inline_bytes: int = 20 * MB,
        inline_result: OcrResult | None = None,
        batch_result: OcrResult | None = None,
        inline_error: DispatchError | None = None,
        start_error: DispatchError | None = None,
        await_error: DispatchError | None = None,
    ) -> None:
        self.max_inline_bytes = max_inline_bytes
        self.inline_result = inline_result or OcrResult(text="inline text", confidence_score=0.97)
        self.batch_result = batch_result or OcrResult(text="batch text", confidence_score=0.95)
        self.inline_error = inline_error
        self.start_error = start_error
        self.await_error = await_error
        self.inline_calls: list[tuple[int, str]] = []
        self.batch_starts: list[tuple[str, str, str]] = []
        self.awaited: list[tuple[OperationHandle, float | None]] = []

    async def process_inline(self, content: bytes, mime_type: str) -> OcrResult:
        self.inline_calls.append((len(content), mime_type))
        if self.inline_error is not None:
            raise self.inline_error
        return self.inline_result

    async def start_batch(
        self, input_locator: str, output_locator: str, mime_type: str
    ) -> OperationHandle:
        self.batch_starts.append((input_locator, output_locator, mime_type))
        if self.start_error is not None:
            raise self.start_error
        return OperationHandle(
            name=f"projects/p/locations/us/operations/op-{len(self.batch_starts)}",
            output_locator=output_locator,
        )

    async def await_batch(
        self, handle: OperationHandle, *, timeout_seconds: float | None = None
    ) -> OcrResult:
        self.awaited.append((handle, timeout_seconds))
        if self.await_error is not None:
            raise self.await_error
        return self.batch_result


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to 2026-10-13 06:30 UTC (12:00 IST)."""
    return FixedClock(datetime(2026, 10, 13, 6, 30, tzinfo=timezone.utc))


@pytest.fixture
def dispatch_config() -> DispatchConfig:
    return DispatchConfig(
        sync_threshold_bytes=10 * MB,
        validation_threshold=0.92,
        high_priority_threshold=0.88,
        normal_sla=timedelta(minutes=180),
        high_sla=timedelta(minutes=60),
        reporting_timezone="Asia/Kolkata",
        output_prefix="document-ai-output",
        bucket="docuhealth-test",
        batch_timeout_seconds=30.0,
    )


@pytest.fixture
def stager() -> InMemoryObjectStager:
    return InMemoryObjectStager(bucket="docuhealth-test", upload_prefix="uploads")


@pytest.fixture
def intelligence() -> FakeIntelligenceClient:
    return FakeIntelligenceClient()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def dispatcher(
    stager: InMemoryObjectStager,
    intelligence: FakeIntelligenceClient,
    store: InMemoryRecordStore,
    dispatch_config: DispatchConfig,
    clock: FixedClock,
) -> Dispatcher:
    return Dispatcher(
        stager=stager,
        intelligence=intelligence,
        store=store,
        config=dispatch_config,
        clock=clock,
    )


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created.

    StaticPool keeps a single connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_store(sqlite_engine: AsyncEngine) -> SqlRecordStore:
    return SqlRecordStore(create_session_factory(sqlite_engine))


@pytest_asyncio.fixture
async def file_sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with a connection per session.

    Use for concurrent writers; the StaticPool engine shares one connection, so a
    rollback in one session would undo another session's commit.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    # Ensure it's a postgres URL
    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    # Convert to async driver if needed
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)
    await create_schema(engine)

    yield engine

    # Cleanup: drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
