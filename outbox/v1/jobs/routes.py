"""
Outbox API endpoints.

Operator endpoints for enqueueing, inspecting and retrying jobs, plus the
cron-triggered drain.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.config.settings import Settings, SettingsDep
from outbox.infra.database import Database, get_database, get_session
from outbox.v1.core.exceptions import (
    ConflictError,
    NotFoundError,
    create_success_response,
)
from outbox.v1.core.security import CronDep, Operator, OperatorDep
from outbox.v1.jobs.models import JobStatus
from outbox.v1.jobs.schemas import (
    JobActionRequest,
    JobActionResponse,
    JobCreate,
    JobListFilters,
    JobListResponse,
    JobResponse,
)
from outbox.v1.jobs.service import JobService
from outbox.v1.jobs.worker import JobWorker

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])
runner_router = APIRouter(prefix="/outbox", tags=["outbox"])


@router.post("", response_model=dict)
async def enqueue_job(
    job_request: JobCreate,
    operator: Operator = OperatorDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Enqueue a new outbox job."""

    job_service = JobService(settings)

    try:
        result = await job_service.enqueue_job(session, job_request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(
        "Job enqueued via API",
        extra={
            "job_id": str(result.job_id),
            "job_type": job_request.job_type,
            "operator": operator.name,
            "deduplicated": result.deduplicated,
        },
    )

    return create_success_response(data=result.model_dump(mode="json"))


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(
        default=None, description="Filter by status"
    ),
    job_type: str | None = Query(default=None, description="Filter by job type"),
    limit: int = Query(default=50, ge=1, le=500, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    operator: Operator = OperatorDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """List jobs newest first with filtering and pagination."""

    job_service = JobService(settings)
    filters = JobListFilters(status=status, job_type=job_type, limit=limit, offset=offset)
    jobs, total = await job_service.list_jobs(session, filters)

    response_data = JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )

    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/stats/overview", response_model=dict)
async def get_job_stats(
    operator: Operator = OperatorDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get queue statistics."""

    job_service = JobService(settings)
    stats = await job_service.get_job_stats(session)

    return create_success_response(data=stats.model_dump())


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID,
    operator: Operator = OperatorDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get a specific job by ID."""

    job_service = JobService(settings)
    job = await job_service.get_job_by_id(session, job_id)

    if not job:
        raise NotFoundError("Job not found", details={"job_id": str(job_id)})

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )


@router.post("/batch/retry", response_model=dict)
async def retry_jobs_batch(
    request: JobActionRequest,
    operator: Operator = OperatorDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Retry multiple failed jobs."""

    job_service = JobService(settings)
    success_ids = []
    failed_ids = []
    errors = {}

    for job_id in request.job_ids:
        if await job_service.retry_job(session, job_id):
            success_ids.append(job_id)
        else:
            failed_ids.append(job_id)
            errors[str(job_id)] = "Job not found or not eligible for retry"

    logger.info(
        "Batch job retry via API",
        extra={
            "success_count": len(success_ids),
            "failed_count": len(failed_ids),
            "operator": operator.name,
        },
    )

    response = JobActionResponse(
        success_ids=success_ids, failed_ids=failed_ids, errors=errors
    )

    return create_success_response(data=response.model_dump(mode="json"))


@router.post("/{job_id}/retry", response_model=dict)
async def retry_job(
    job_id: UUID,
    operator: Operator = OperatorDep,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Move a failed job back to pending."""

    job_service = JobService(settings)
    success = await job_service.retry_job(session, job_id)

    if not success:
        job = await job_service.get_job_by_id(session, job_id)
        if job is None:
            raise NotFoundError("Job not found", details={"job_id": str(job_id)})
        raise ConflictError(
            "Only failed jobs can be retried",
            details={"job_id": str(job_id), "status": job.status},
        )

    logger.info(
        "Job retried via API",
        extra={"job_id": str(job_id), "operator": operator.name},
    )

    return create_success_response(data={"success": True, "job_id": str(job_id)})


@runner_router.post("/run", response_model=dict, dependencies=[CronDep])
async def run_outbox(
    max_seconds: float | None = Query(
        default=None, gt=0, le=300, description="Drain time budget"
    ),
    settings: Settings = SettingsDep,
    database: Database = Depends(get_database),
) -> dict[str, Any]:
    """Drain due jobs within a time budget (cron-triggered worker)."""

    worker = JobWorker(settings, database)
    summary = await worker.drain(max_seconds=max_seconds)

    logger.info(
        "Outbox drain finished",
        extra={"worker_id": worker.worker_id, **summary.model_dump()},
    )

    return create_success_response(data=summary.model_dump())
