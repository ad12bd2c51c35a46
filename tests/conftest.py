"""
Pytest fixtures for the Cloud Tasks handler tests.

Provides:
- Async database session (in-memory SQLite)
- Queue connection registry
- Fake Cloud Tasks lookup service
- Recording lifecycle sink
- Sample task payload factories
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional
from uuid import uuid4

import orjson
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from cloud_tasks.db.models import Base
from cloud_tasks.handler.service.queue_config import ConnectionRegistry
from cloud_tasks.models.dto import ConnectionConfig, RemoteTask, RetryPolicy
from cloud_tasks.worker.registry import JobRegistry

HANDLER_URL = "https://app.example.com/handle-task"
NOW = 1_700_000_000


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest_asyncio.fixture
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for testing."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def db_session_factory(async_engine):
    """Context-manager session factory, same contract as get_db_session()."""
    maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    @asynccontextmanager
    async def _session():
        async with maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _session


# =============================================================================
# QUEUE FIXTURES
# =============================================================================

@pytest.fixture
def connection_config() -> ConnectionConfig:
    return ConnectionConfig(
        project="my-project",
        location="europe-west1",
        handler=HANDLER_URL,
        queue="default",
        service_account_email="tasks@my-project.iam.gserviceaccount.com",
    )


@pytest.fixture
def connection_registry(connection_config) -> ConnectionRegistry:
    return ConnectionRegistry({"cloudtasks": connection_config}, default="cloudtasks")


@pytest.fixture
def jobs() -> JobRegistry:
    """Fresh job registry per test."""
    return JobRegistry()


class FakeQueueService:
    """In-memory stand-in for CloudTasksService."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        first_attempt_at: Optional[int] = None,
    ) -> None:
        self.policy = policy or RetryPolicy(max_attempts=3)
        self.first_attempt_at = first_attempt_at
        self.policy_calls: list[tuple[str, str, str]] = []
        self.task_calls: list[tuple[str, str, str, str]] = []

    async def get_retry_policy(self, project: str, location: str, queue: str) -> RetryPolicy:
        self.policy_calls.append((project, location, queue))
        return self.policy

    async def get_task(self, project: str, location: str, queue: str, task: str) -> RemoteTask:
        self.task_calls.append((project, location, queue, task))
        return RemoteTask(name=task, first_attempt_dispatched_at=self.first_attempt_at)


@pytest.fixture
def queue_service() -> FakeQueueService:
    return FakeQueueService()


class RecordingSink:
    """Lifecycle sink keeping every event it receives, in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.exceptions: list[BaseException] = []
        self.failed_with: list[dict[str, Any]] = []

    async def on_started(self, job_id: str) -> None:
        self.events.append(("started", job_id))

    async def on_succeeded(self, job_id: str) -> None:
        self.events.append(("succeeded", job_id))

    async def on_errored(self, job_id: str, exception: BaseException) -> None:
        self.events.append(("errored", job_id))
        self.exceptions.append(exception)

    async def on_failed(self, job_id, exception, *, connection, queue, raw_payload) -> None:
        self.events.append(("failed", job_id))
        self.exceptions.append(exception)
        self.failed_with.append({"connection": connection, "queue": queue, "raw_payload": raw_payload})

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


# =============================================================================
# SAMPLE DATA FACTORIES
# =============================================================================

@pytest.fixture
def sample_task():
    """Factory for task payload dicts as the enqueuing side serializes them."""
    def _create(
        job: str = "reports.generate",
        args: Optional[list] = None,
        kwargs: Optional[dict] = None,
        connection: Optional[str] = None,
        uuid: Optional[str] = None,
    ) -> dict[str, Any]:
        command: dict[str, Any] = {"job": job, "args": args or [], "kwargs": kwargs or {}}
        if connection is not None:
            command["connection"] = connection
        return {
            "uuid": uuid or str(uuid4()),
            "displayName": job,
            "data": {
                "commandName": job,
                "command": orjson.dumps(command).decode(),
            },
        }
    return _create


@pytest.fixture
def sample_body(sample_task):
    """Factory for raw request bodies."""
    def _create(**kwargs) -> bytes:
        return orjson.dumps(sample_task(**kwargs))
    return _create
