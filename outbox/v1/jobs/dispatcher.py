"""
Dispatcher: runs the registered handler for a leased job and classifies the outcome.
"""

import asyncio
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.config.logging import get_logger
from outbox.v1.core.registries import JobRegistry, job_registry
from outbox.v1.jobs.errors import FatalJobError, RetryableJobError
from outbox.v1.jobs.models import Job
from outbox.v1.jobs.retry import OutcomeKind

logger = get_logger(__name__)

UNKNOWN_JOB_TYPE = "unknown job_type"

# Malformed payloads never get better on retry; pydantic's ValidationError is a ValueError
FATAL_EXCEPTIONS: tuple[type[BaseException], ...] = (FatalJobError, ValueError)


@dataclass(frozen=True)
class JobContext:
    """What a handler knows about the job it is executing."""

    job_id: UUID
    job_type: str
    attempt: int
    max_attempts: int


@dataclass(frozen=True)
class DispatchOutcome:
    kind: OutcomeKind
    result: dict[str, Any] | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


class Dispatcher:
    """
    Looks up `job_type` in the registry and runs the handler with a timeout.

    Handler exceptions never propagate; they become a DispatchOutcome.
    """

    def __init__(self, timeout_s: float, registry: JobRegistry | None = None):
        self.timeout_s = timeout_s
        self.registry = registry if registry is not None else job_registry

    async def dispatch(self, session: AsyncSession, job: Job) -> DispatchOutcome:
        job_logger = logger.bind(
            job_id=str(job.job_id), job_type=job.job_type, attempt=job.attempts
        )

        if job.job_type not in self.registry:
            job_logger.error("No handler registered for job type")
            return DispatchOutcome(kind=OutcomeKind.FATAL, error=UNKNOWN_JOB_TYPE)

        handler = self.registry.get(job.job_type)

        ctx = JobContext(
            job_id=job.job_id,
            job_type=job.job_type,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
        )

        try:
            result = await asyncio.wait_for(
                handler.handle(session, ctx, dict(job.payload or {})),
                timeout=self.timeout_s,
            )
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            job_logger.warning("Handler timed out", timeout_s=self.timeout_s)
            return DispatchOutcome(
                kind=OutcomeKind.RETRYABLE,
                error=f"handler timed out after {self.timeout_s:g}s",
            )
        except FATAL_EXCEPTIONS as e:
            job_logger.error("Handler failed permanently", error=_describe(e))
            return DispatchOutcome(kind=OutcomeKind.FATAL, error=_describe(e))
        except (RetryableJobError, httpx.TransportError) as e:
            job_logger.warning("Handler failed transiently", error=_describe(e))
            return DispatchOutcome(kind=OutcomeKind.RETRYABLE, error=_describe(e))
        except Exception as e:
            job_logger.exception("Handler raised unexpected error")
            return DispatchOutcome(kind=OutcomeKind.RETRYABLE, error=_describe(e))

        if result is not None and not isinstance(result, dict):
            result = {"value": result}

        return DispatchOutcome(kind=OutcomeKind.SUCCESS, result=result)
