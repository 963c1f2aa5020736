"""
Job store access layer.

Every mutation is a single-row conditional UPDATE keyed on the row's current
status (and lease owner where relevant). A write that matches zero rows means
the job was not in the expected state, e.g. another worker won the lease race.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.v1.jobs.models import Job, JobStatus, can_transition

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 4000


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize timestamps read back from backends that drop tzinfo."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _truncate_error(error: str) -> str:
    return error if len(error) <= MAX_ERROR_LENGTH else error[: MAX_ERROR_LENGTH - 3] + "..."


class JobStore:
    """Conditional-update access to the `outbox` table for one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Producers

    async def insert(
        self,
        job_type: str,
        payload: dict[str, Any],
        max_attempts: int,
        scheduled_for: datetime | None = None,
        idempotency_key: str | None = None,
    ) -> Job:
        """Insert a new pending job and commit. Raises IntegrityError on key conflicts."""
        now = datetime.now(UTC)
        job = Job(
            job_type=job_type,
            payload=payload,
            status=JobStatus.PENDING.value,
            attempts=0,
            max_attempts=max_attempts,
            scheduled_for=scheduled_for or now,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        self.session.add(job)
        await self.session.commit()
        return job

    async def find_by_idempotency_key(self, idempotency_key: str) -> Job | None:
        result = await self.session.execute(
            select(Job).where(Job.idempotency_key == idempotency_key).limit(1)
        )
        return result.scalar_one_or_none()

    async def get(self, job_id: UUID) -> Job | None:
        result = await self.session.execute(
            select(Job).where(Job.job_id == job_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # Transitions

    async def _transition(
        self,
        sources: Sequence[JobStatus],
        target: JobStatus,
        *conditions: Any,
        **values: Any,
    ) -> int:
        """
        Move rows in one of `sources` that match `conditions` to `target`.

        Raises ValueError for an edge the state machine does not allow.
        Returns the number of rows written and commits.
        """
        for source in sources:
            if not can_transition(source, target):
                raise ValueError(
                    f"illegal job transition: {source.value} -> {target.value}"
                )

        result = await self.session.execute(
            update(Job)
            .where(Job.status.in_([source.value for source in sources]), *conditions)
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount or 0

    # Leasing

    @staticmethod
    def _leasable(now: datetime):
        """Predicate for rows a worker may claim at `now`."""
        fresh = and_(
            Job.status == JobStatus.PENDING.value,
            Job.scheduled_for <= now,
            or_(Job.locked_until.is_(None), Job.locked_until < now),
        )
        # Crash recovery: the previous owner's lease ran out mid-handler
        expired = and_(
            Job.status == JobStatus.PROCESSING.value,
            Job.locked_until < now,
            Job.attempts < Job.max_attempts,
        )
        return or_(fresh, expired)

    async def try_lease(
        self,
        job_id: UUID,
        worker_id: str,
        lease_seconds: float,
        now: datetime | None = None,
    ) -> bool:
        """Atomically claim one job. Returns False if it is no longer leasable."""
        now = now or datetime.now(UTC)
        written = await self._transition(
            (JobStatus.PENDING, JobStatus.PROCESSING),
            JobStatus.PROCESSING,
            Job.job_id == job_id,
            self._leasable(now),
            locked_until=now + timedelta(seconds=lease_seconds),
            locked_by=worker_id,
            attempts=Job.attempts + 1,
            updated_at=now,
        )
        return written == 1

    async def lease_due_jobs(
        self,
        worker_id: str,
        limit: int,
        lease_seconds: float,
        now: datetime | None = None,
    ) -> list[Job]:
        """
        Select up to `limit` due jobs and lease each one with a conditional update.

        Jobs whose conditional update matches no row were claimed by another
        worker between the read and the write; they are skipped this cycle.
        """
        now = now or datetime.now(UTC)

        candidates = await self.session.execute(
            select(Job.job_id)
            .where(self._leasable(now))
            .order_by(Job.scheduled_for, Job.created_at)
            .limit(limit)
        )
        candidate_ids = list(candidates.scalars().all())
        # Close the read transaction before issuing writes
        await self.session.commit()

        won: list[UUID] = []
        for job_id in candidate_ids:
            if await self.try_lease(job_id, worker_id, lease_seconds, now=now):
                won.append(job_id)
            else:
                logger.debug(
                    "Lease race lost",
                    extra={"job_id": str(job_id), "worker_id": worker_id},
                )

        if not won:
            return []

        result = await self.session.execute(
            select(Job)
            .where(Job.job_id.in_(won), Job.locked_by == worker_id)
            .order_by(Job.scheduled_for, Job.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def fail_expired_exhausted(self, now: datetime | None = None) -> int:
        """Fail jobs whose lease expired after their last allowed attempt."""
        now = now or datetime.now(UTC)
        return await self._transition(
            (JobStatus.PROCESSING,),
            JobStatus.FAILED,
            Job.locked_until < now,
            Job.attempts >= Job.max_attempts,
            locked_until=None,
            locked_by=None,
            last_error="lease expired before the handler reported an outcome",
            updated_at=now,
        )

    # Outcomes, guarded by lease ownership

    async def _finish(
        self, job_id: UUID, worker_id: str, target: JobStatus, **values: Any
    ) -> bool:
        written = await self._transition(
            (JobStatus.PROCESSING,),
            target,
            Job.job_id == job_id,
            Job.locked_by == worker_id,
            locked_until=None,
            locked_by=None,
            **values,
        )
        return written == 1

    async def mark_completed(
        self,
        job_id: UUID,
        worker_id: str,
        result: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> bool:
        now = now or datetime.now(UTC)
        values: dict[str, Any] = {"completed_at": now, "updated_at": now}
        if result is not None:
            values["result"] = result
        return await self._finish(job_id, worker_id, JobStatus.COMPLETED, **values)

    async def schedule_retry(
        self,
        job_id: UUID,
        worker_id: str,
        scheduled_for: datetime,
        error: str,
        now: datetime | None = None,
    ) -> bool:
        now = now or datetime.now(UTC)
        return await self._finish(
            job_id,
            worker_id,
            JobStatus.PENDING,
            scheduled_for=scheduled_for,
            last_error=_truncate_error(error),
            updated_at=now,
        )

    async def mark_failed(
        self,
        job_id: UUID,
        worker_id: str,
        error: str,
        now: datetime | None = None,
    ) -> bool:
        now = now or datetime.now(UTC)
        return await self._finish(
            job_id,
            worker_id,
            JobStatus.FAILED,
            last_error=_truncate_error(error),
            updated_at=now,
        )

    # Operator actions

    async def reset_failed(self, job_id: UUID, now: datetime | None = None) -> bool:
        """`failed -> pending`; attempts are kept as history."""
        now = now or datetime.now(UTC)
        written = await self._transition(
            (JobStatus.FAILED,),
            JobStatus.PENDING,
            Job.job_id == job_id,
            scheduled_for=now,
            locked_until=None,
            locked_by=None,
            updated_at=now,
        )
        return written == 1

    # Queries

    async def list_jobs(
        self,
        statuses: Sequence[str] | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        base_query = select(Job)
        if statuses:
            base_query = base_query.where(Job.status.in_(list(statuses)))
        if job_type:
            base_query = base_query.where(Job.job_type == job_type)

        count_query = select(func.count()).select_from(base_query.subquery())
        total = (await self.session.execute(count_query)).scalar() or 0

        jobs_query = (
            base_query.order_by(desc(Job.created_at), desc(Job.job_id))
            .offset(offset)
            .limit(limit)
        )
        jobs = (await self.session.execute(jobs_query)).scalars().all()
        return list(jobs), total

    async def count_by_status(self) -> dict[str, int]:
        result = await self.session.execute(
            select(Job.status, func.count(Job.job_id)).group_by(Job.status)
        )
        counts = {status.value: 0 for status in JobStatus}
        counts.update({status: count for status, count in result.all()})
        return counts

    async def count_by_type(self) -> dict[str, int]:
        result = await self.session.execute(
            select(Job.job_type, func.count(Job.job_id)).group_by(Job.job_type)
        )
        return {job_type: count for job_type, count in result.all()}

    async def count_failed_since(self, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count(Job.job_id)).where(
                Job.status == JobStatus.FAILED.value, Job.updated_at >= since
            )
        )
        return result.scalar() or 0

    async def count_expired_leases(self, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        result = await self.session.execute(
            select(func.count(Job.job_id)).where(
                Job.status == JobStatus.PROCESSING.value, Job.locked_until < now
            )
        )
        return result.scalar() or 0

    async def oldest_due_pending(self, now: datetime | None = None) -> datetime | None:
        now = now or datetime.now(UTC)
        result = await self.session.execute(
            select(func.min(Job.scheduled_for)).where(
                Job.status == JobStatus.PENDING.value, Job.scheduled_for <= now
            )
        )
        return as_utc(result.scalar())
