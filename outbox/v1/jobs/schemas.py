"""
Outbox job Pydantic schemas.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from outbox.v1.jobs.models import JobStatus


class JobCreate(BaseModel):
    """Schema for creating a new job."""

    job_type: str = Field(..., min_length=1, max_length=100, description="Handler key")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job parameters")
    max_attempts: int | None = Field(
        default=None, ge=1, le=100, description="Attempts before terminal failure"
    )
    scheduled_for: datetime | None = Field(
        default=None, description="Earliest time to run the job"
    )
    idempotency_key: str | None = Field(
        default=None, max_length=255, description="Producer deduplication key"
    )


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    job_id: UUID
    job_type: str
    payload: dict[str, Any]
    status: str
    attempts: int
    max_attempts: int
    scheduled_for: datetime

    # Lease
    locked_until: datetime | None = None
    locked_by: str | None = None

    # Outcome
    last_error: str | None = None
    result: dict[str, Any] | None = None

    idempotency_key: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class JobListFilters(BaseModel):
    """Schema for job listing filters."""

    status: list[JobStatus] | None = Field(
        default=None, description="Filter by job status"
    )
    job_type: str | None = Field(default=None, description="Filter by job type")
    limit: int = Field(
        default=50, ge=1, le=500, description="Maximum results to return"
    )
    offset: int = Field(default=0, ge=0, description="Results offset for pagination")


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class JobStatsResponse(BaseModel):
    """Schema for queue statistics."""

    total_jobs: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    queue_depth: int  # pending + processing
    failed_last_hour: int
    expired_leases: int
    oldest_pending_age_seconds: int | None = None


class JobActionRequest(BaseModel):
    """Schema for batch job actions."""

    job_ids: list[UUID] = Field(..., min_length=1, description="Job IDs to act upon")


class JobActionResponse(BaseModel):
    """Schema for job action responses."""

    success_ids: list[UUID]
    failed_ids: list[UUID]
    errors: dict[str, str]  # job_id -> error message


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue response."""

    job_id: UUID
    status: str
    deduplicated: bool = Field(
        default=False, description="Whether an existing job was returned"
    )


class RunSummary(BaseModel):
    """Outcome counts for one or more worker cycles."""

    leased: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    lost_leases: int = 0
    errors: int = 0
    expired_failed: int = 0
    cycles: int = 0
    duration_ms: int = 0
