"""
Outbox job model and state machine.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, TIMESTAMP, CheckConstraint, Index, Integer, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from outbox.infra.database import Base


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Every edge the store is allowed to write. `failed -> pending` is operator-only.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset(
        {
            JobStatus.PROCESSING,
            JobStatus.COMPLETED,
            JobStatus.PENDING,
            JobStatus.FAILED,
        }
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset({JobStatus.PENDING}),
}


def can_transition(current: JobStatus | str, target: JobStatus | str) -> bool:
    """Check whether `current -> target` is an edge of the job state machine."""
    return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]


def utcnow() -> datetime:
    return datetime.now(UTC)


class Job(Base):
    """
    A durable record of one side effect that must eventually happen.

    Rows are inserted by producers, leased by workers through conditional
    updates and never deleted by the queue itself.
    """

    __tablename__ = "outbox"

    job_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    job_type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Handler discriminator"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Handler-specific parameters, write-once",
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Job status: pending|processing|completed|failed",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Leases granted so far"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, comment="Attempt ceiling before failure"
    )
    scheduled_for: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        comment="Earliest time the job may be leased",
    )

    # Lease
    locked_until: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Lease expiry"
    )
    locked_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Worker holding the lease"
    )

    # Outcome
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Most recent failure reason"
    )
    result: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Handler result on success"
    )

    idempotency_key: Mapped[str | None] = mapped_column(
        Text, nullable=True, unique=True, comment="Producer deduplication key"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="outbox_status_check",
        ),
        CheckConstraint("max_attempts >= 1", name="outbox_max_attempts_check"),
        CheckConstraint("attempts >= 0", name="outbox_attempts_check"),
        Index("ix_outbox_status_scheduled_for", "status", "scheduled_for"),
        Index("ix_outbox_job_type_status", "job_type", "status"),
        Index("ix_outbox_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Job {self.job_id} type={self.job_type} status={self.status} "
            f"attempts={self.attempts}/{self.max_attempts}>"
        )
