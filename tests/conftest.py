import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.config.settings import AuthMode, Settings, get_settings
from outbox.infra.database import Base, Database, get_database, set_database
from outbox.main import create_app
from outbox.v1.core.registries import JobRegistry

# Import models to ensure they're registered
from outbox.v1.crm import models as crm_models  # noqa: F401
from outbox.v1.jobs.models import Job, JobStatus

CRON_SECRET = "test-cron-secret"


@pytest.fixture
def test_settings() -> Settings:
    """Settings tuned for fast, deterministic tests."""
    return Settings(
        environment="development",
        auth_mode=AuthMode.NONE,
        cron_secret=CRON_SECRET,
        job_lease_seconds=30,
        job_handler_timeout_s=5.0,
        job_batch_size=10,
        job_poll_interval_s=0.01,
        job_error_backoff_s=0.01,
        job_backoff_base_s=300.0,
        job_max_backoff_s=3600.0,
        job_backoff_jitter=0.0,
        job_drain_max_seconds=10.0,
        email_api_url="https://email.test/send",
        email_api_key="test-key",
        sales_alert_email="sales@example.com",
        books_api_url=None,
    )


@pytest.fixture
async def database(test_settings, tmp_path) -> AsyncGenerator[Database, None]:
    """
    Fresh database per test.

    Uses TEST_DATABASE_URL (e.g. a disposable Postgres) when set, otherwise a
    SQLite file so that separate sessions really are separate connections.
    """
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'outbox.db'}"
    db = Database(test_settings, url=url)

    if not url.startswith("sqlite"):
        async with db.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    await db.create_all()

    set_database(db)
    yield db
    set_database(None)
    await db.close()


@pytest.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


@pytest.fixture
def registry() -> JobRegistry:
    """Isolated handler registry so tests never touch the production handlers."""
    return JobRegistry()


@pytest.fixture
def app(test_settings, database) -> FastAPI:
    """Create a test FastAPI application bound to the test database."""
    app = create_app()

    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_database] = lambda: database

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def cron_headers() -> dict[str, str]:
    return {"X-Cron-Secret": CRON_SECRET}


@pytest.fixture
def make_job(database) -> Callable[..., Awaitable[Job]]:
    """Insert a job row directly, in any state."""

    async def _make_job(**fields: Any) -> Job:
        now = datetime.now(UTC)
        values: dict[str, Any] = {
            "job_type": "noop",
            "payload": {},
            "status": JobStatus.PENDING.value,
            "attempts": 0,
            "max_attempts": 3,
            "scheduled_for": now,
            "created_at": now,
            "updated_at": now,
        }
        values.update(fields)
        async with database.session() as session:
            job = Job(**values)
            session.add(job)
            await session.commit()
            return job

    return _make_job


@pytest.fixture
def make_due(database) -> Callable[[UUID], Awaitable[None]]:
    """Pull a pending job's scheduled_for into the past instead of waiting out backoff."""

    async def _make_due(job_id: UUID) -> None:
        async with database.session() as session:
            await session.execute(
                update(Job)
                .where(Job.job_id == job_id)
                .values(scheduled_for=datetime.now(UTC) - timedelta(seconds=1))
            )
            await session.commit()

    return _make_due


@pytest.fixture
def fetch_job(database) -> Callable[[UUID], Awaitable[Job]]:
    """Read the current row for a job."""

    async def _fetch_job(job_id: UUID) -> Job:
        async with database.session() as session:
            job = await session.get(Job, job_id, populate_existing=True)
            assert job is not None
            return job

    return _fetch_job
