import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.config.settings import Settings, SettingsDep
from outbox.infra.database import get_session
from outbox.v1.core.exceptions import create_success_response
from outbox.v1.jobs.models import JobStatus
from outbox.v1.jobs.store import JobStore

logger = logging.getLogger(__name__)
router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Outbox queue health status."""

    queue_depth: int = 0
    pending: int = 0
    processing: int = 0
    failed: int = 0
    expired_leases: int = 0
    oldest_pending_age_seconds: int | None = None


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, session: AsyncSession = Depends(get_session)
):
    """Health check endpoint with database and queue status."""

    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(session)
    overall_ok = db_health.connected

    queue_health = None
    if db_health.connected:
        try:
            queue_health = await _check_queue_health(session)
        except SQLAlchemyError:
            # Queue stats failing doesn't fail overall health
            logger.exception("Queue health check failed")

    health_data = {
        "ok": overall_ok,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": timestamp,
        "database": db_health.model_dump(),
        "queue": queue_health.model_dump() if queue_health else None,
    }

    return create_success_response(data=health_data)


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        await session.execute(text("SELECT 1"))

        end_time = datetime.now(UTC)
        response_time_ms = (end_time - start_time).total_seconds() * 1000

        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except (SQLAlchemyError, OSError) as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_queue_health(session: AsyncSession) -> QueueHealth:
    """Summarize backlog and stuck leases."""
    store = JobStore(session)
    now = datetime.now(UTC)

    by_status = await store.count_by_status()
    oldest = await store.oldest_due_pending(now)

    return QueueHealth(
        queue_depth=by_status[JobStatus.PENDING.value]
        + by_status[JobStatus.PROCESSING.value],
        pending=by_status[JobStatus.PENDING.value],
        processing=by_status[JobStatus.PROCESSING.value],
        failed=by_status[JobStatus.FAILED.value],
        expired_leases=await store.count_expired_leases(now),
        oldest_pending_age_seconds=int((now - oldest).total_seconds()) if oldest else None,
    )
