"""
Job service: the producer and operator entry points to the outbox.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.config.settings import Settings
from outbox.v1.jobs.models import Job, JobStatus
from outbox.v1.jobs.schemas import (
    JobCreate,
    JobEnqueueResponse,
    JobListFilters,
    JobStatsResponse,
)
from outbox.v1.jobs.store import JobStore

logger = logging.getLogger(__name__)


def build_idempotency_key(*parts: Any) -> str:
    """Join key parts, e.g. ("reorder", company_id, "2026-W42") -> "reorder:C1:2026-W42"."""
    if not parts:
        raise ValueError("at least one key part is required")
    return ":".join(str(part) for part in parts)


class JobService:
    """Service for enqueueing and inspecting outbox jobs."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def enqueue(
        self,
        session: AsyncSession,
        job_type: str,
        payload: dict[str, Any] | None = None,
        max_attempts: int | None = None,
        scheduled_for: datetime | None = None,
        idempotency_key: str | None = None,
    ) -> JobEnqueueResponse:
        """
        Insert a pending job.

        When `idempotency_key` is already taken, the existing job is returned
        with `deduplicated=True` instead of inserting a second row.

        Args:
            session: Database session
            job_type: Handler key
            payload: Handler parameters; stored as-is and never modified
            max_attempts: Attempt ceiling (defaults to settings)
            scheduled_for: Earliest run time (defaults to now)
            idempotency_key: Optional producer deduplication key

        Returns:
            Enqueue response with job_id and deduplication info
        """
        job_create = JobCreate(
            job_type=job_type,
            payload=payload or {},
            max_attempts=max_attempts,
            scheduled_for=scheduled_for,
            idempotency_key=idempotency_key,
        )
        return await self.enqueue_job(session, job_create)

    async def enqueue_job(
        self, session: AsyncSession, job_create: JobCreate
    ) -> JobEnqueueResponse:
        store = JobStore(session)

        if job_create.idempotency_key:
            existing_job = await store.find_by_idempotency_key(job_create.idempotency_key)
            if existing_job:
                logger.info(
                    "Job deduplicated",
                    extra={
                        "job_id": str(existing_job.job_id),
                        "idempotency_key": job_create.idempotency_key,
                        "job_type": job_create.job_type,
                    },
                )
                return JobEnqueueResponse(
                    job_id=existing_job.job_id,
                    status=existing_job.status,
                    deduplicated=True,
                )

        scheduled_for = job_create.scheduled_for
        if scheduled_for is not None and scheduled_for.tzinfo is None:
            scheduled_for = scheduled_for.replace(tzinfo=UTC)

        try:
            job = await store.insert(
                job_type=job_create.job_type,
                payload=job_create.payload,
                max_attempts=job_create.max_attempts
                or self.settings.job_default_max_attempts,
                scheduled_for=scheduled_for,
                idempotency_key=job_create.idempotency_key,
            )
        except IntegrityError:
            await session.rollback()
            if job_create.idempotency_key:
                # Race condition - another producer inserted the same key
                existing_job = await store.find_by_idempotency_key(
                    job_create.idempotency_key
                )
                if existing_job:
                    return JobEnqueueResponse(
                        job_id=existing_job.job_id,
                        status=existing_job.status,
                        deduplicated=True,
                    )
            raise

        logger.info(
            "Job enqueued",
            extra={
                "job_id": str(job.job_id),
                "job_type": job.job_type,
                "max_attempts": job.max_attempts,
                "idempotency_key": job.idempotency_key,
            },
        )

        return JobEnqueueResponse(job_id=job.job_id, status=job.status)

    async def enqueue_safely(
        self, session: AsyncSession, job_type: str, payload: dict[str, Any], **options: Any
    ) -> JobEnqueueResponse | None:
        """
        Enqueue from a request path where a queue outage must not fail the request.

        Store errors are logged and swallowed; the caller's response degrades to
        "side effect arrives late or not at all" rather than an error.
        """
        try:
            return await self.enqueue(session, job_type, payload, **options)
        except SQLAlchemyError:
            logger.exception(
                "Failed to enqueue job, continuing without it",
                extra={"job_type": job_type},
            )
            await session.rollback()
            return None

    async def get_job_by_id(self, session: AsyncSession, job_id: UUID) -> Job | None:
        return await JobStore(session).get(job_id)

    async def list_jobs(
        self, session: AsyncSession, filters: JobListFilters
    ) -> tuple[list[Job], int]:
        """List jobs newest-first with optional status/type filters."""
        statuses = [s.value for s in filters.status] if filters.status else None
        return await JobStore(session).list_jobs(
            statuses=statuses,
            job_type=filters.job_type,
            limit=filters.limit,
            offset=filters.offset,
        )

    async def get_job_stats(self, session: AsyncSession) -> JobStatsResponse:
        """Aggregate counts for the operator dashboard."""
        store = JobStore(session)
        now = datetime.now(UTC)

        by_status = await store.count_by_status()
        by_type = await store.count_by_type()
        queue_depth = by_status[JobStatus.PENDING.value] + by_status[
            JobStatus.PROCESSING.value
        ]
        failed_last_hour = await store.count_failed_since(now - timedelta(hours=1))
        expired_leases = await store.count_expired_leases(now)

        oldest = await store.oldest_due_pending(now)
        oldest_age = int((now - oldest).total_seconds()) if oldest else None

        return JobStatsResponse(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            queue_depth=queue_depth,
            failed_last_hour=failed_last_hour,
            expired_leases=expired_leases,
            oldest_pending_age_seconds=oldest_age,
        )

    async def retry_job(self, session: AsyncSession, job_id: UUID) -> bool:
        """
        Operator retry: move a failed job back to pending.

        Only `failed` jobs are eligible, so retrying twice in a row leaves a
        single pending job and the second call returns False. Attempts are not
        reset; the next lease grants one more attempt past the ceiling.
        """
        success = await JobStore(session).reset_failed(job_id)
        if success:
            logger.info("Job retried", extra={"job_id": str(job_id)})
        return success
