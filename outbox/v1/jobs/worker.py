"""
Polling outbox worker: leases due jobs, dispatches them and records outcomes.
"""

import asyncio
import os
import signal
import socket
import time
import uuid
from datetime import UTC, datetime

from outbox.config.logging import add_worker_context, get_logger, setup_logging
from outbox.config.settings import Settings
from outbox.infra.database import Database
from outbox.v1.core.registries import JobRegistry, job_registry
from outbox.v1.jobs.dispatcher import DispatchOutcome, Dispatcher
from outbox.v1.jobs.models import Job
from outbox.v1.jobs.retry import RetryAction, RetryPolicy
from outbox.v1.jobs.schemas import RunSummary
from outbox.v1.jobs.store import JobStore

logger = get_logger(__name__)


class JobWorker:
    """
    Outbox worker process.

    Features:
    - Lease acquisition by single-row conditional UPDATE (safe across processes)
    - Crash recovery: expired leases become claimable again
    - Bounded handler execution via the dispatcher timeout
    - Exponential backoff retries up to each job's max_attempts
    - Store outages are logged and retried, never fatal to the loop
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        registry: JobRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        worker_id: str | None = None,
    ):
        self.settings = settings
        self.database = database
        self.dispatcher = Dispatcher(
            timeout_s=settings.job_handler_timeout_s,
            registry=registry if registry is not None else job_registry,
        )
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.worker_id = worker_id or (
            f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"
        )
        self.running = False
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """Run the polling loop until stop() is called."""
        if self.running:
            raise RuntimeError("Worker is already running")

        self.running = True
        self._stop_event.clear()
        logger.info(
            "Starting job worker",
            worker_id=self.worker_id,
            batch_size=self.settings.job_batch_size,
            poll_interval_s=self.settings.job_poll_interval_s,
            lease_seconds=self.settings.job_lease_seconds,
        )

        try:
            while self.running:
                try:
                    summary = await self.run_once()
                except Exception:
                    logger.exception(
                        "Error in worker loop", worker_id=self.worker_id
                    )
                    await self._sleep(self.settings.job_error_backoff_s)
                    continue

                # Keep draining while there is work; sleep only when idle
                if summary.leased == 0:
                    await self._sleep(self.settings.job_poll_interval_s)
        finally:
            self.running = False
            logger.info("Job worker stopped", worker_id=self.worker_id)

    def stop(self) -> None:
        """Ask the loop to exit after the current cycle."""
        logger.info("Stopping job worker", worker_id=self.worker_id)
        self.running = False
        self._stop_event.set()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> RunSummary:
        """Run one leasing cycle and process every job it claimed."""
        started = time.monotonic()
        summary = RunSummary(cycles=1)

        async with self.database.session() as session:
            store = JobStore(session)
            summary.expired_failed = await store.fail_expired_exhausted()
            jobs = await store.lease_due_jobs(
                worker_id=self.worker_id,
                limit=self.settings.job_batch_size,
                lease_seconds=self.settings.job_lease_seconds,
            )

        summary.leased = len(jobs)
        if jobs:
            logger.info(
                "Leased jobs",
                worker_id=self.worker_id,
                job_count=len(jobs),
                job_ids=[str(job.job_id) for job in jobs],
            )
            outcomes = await asyncio.gather(
                *(self._process_job(job) for job in jobs), return_exceptions=True
            )
            for job, action in zip(jobs, outcomes):
                if isinstance(action, asyncio.CancelledError):
                    raise action
                if isinstance(action, BaseException):
                    # The lease expires and the job is reclaimed
                    summary.errors += 1
                    logger.error(
                        "Failed to process leased job",
                        worker_id=self.worker_id,
                        job_id=str(job.job_id),
                        job_type=job.job_type,
                        exc_info=action,
                    )
                elif action is None:
                    summary.lost_leases += 1
                elif action == RetryAction.COMPLETE:
                    summary.completed += 1
                elif action == RetryAction.RETRY:
                    summary.retried += 1
                else:
                    summary.failed += 1

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        return summary

    async def drain(self, max_seconds: float | None = None) -> RunSummary:
        """Run cycles until nothing is due or the time budget is spent."""
        budget = max_seconds if max_seconds is not None else self.settings.job_drain_max_seconds
        started = time.monotonic()
        total = RunSummary()

        while time.monotonic() - started < budget:
            summary = await self.run_once()
            total.cycles += 1
            total.leased += summary.leased
            total.completed += summary.completed
            total.retried += summary.retried
            total.failed += summary.failed
            total.lost_leases += summary.lost_leases
            total.errors += summary.errors
            total.expired_failed += summary.expired_failed
            if summary.leased == 0:
                break

        total.duration_ms = int((time.monotonic() - started) * 1000)
        return total

    async def _process_job(self, job: Job) -> RetryAction | None:
        """
        Dispatch one leased job and write its next state.

        Returns the action applied, or None when the lease was lost before the
        outcome could be written.
        """
        job_logger = logger.bind(
            job_id=str(job.job_id),
            job_type=job.job_type,
            attempt=job.attempts,
            worker_id=self.worker_id,
        )
        job_logger.info("Processing job started")

        async with self.database.session() as session:
            outcome = await self.dispatcher.dispatch(session, job)
            # Drop anything the handler left uncommitted
            await session.rollback()
            applied = await self._record_outcome(JobStore(session), job, outcome)

        if applied is None:
            job_logger.warning("Lease lost before outcome was recorded")
        elif applied == RetryAction.COMPLETE:
            job_logger.info("Job completed")
        elif applied == RetryAction.RETRY:
            job_logger.info("Job scheduled for retry", error=outcome.error)
        else:
            job_logger.error("Job failed", error=outcome.error)

        return applied

    async def _record_outcome(
        self, store: JobStore, job: Job, outcome: DispatchOutcome
    ) -> RetryAction | None:
        now = datetime.now(UTC)
        decision = self.retry_policy.decide(
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            outcome=outcome.kind,
            now=now,
        )

        if decision.action == RetryAction.COMPLETE:
            written = await store.mark_completed(
                job.job_id, self.worker_id, result=outcome.result, now=now
            )
        elif decision.action == RetryAction.RETRY:
            written = await store.schedule_retry(
                job.job_id,
                self.worker_id,
                scheduled_for=decision.scheduled_for,
                error=outcome.error or "retryable failure",
                now=now,
            )
        else:
            written = await store.mark_failed(
                job.job_id, self.worker_id, error=outcome.error or "failed", now=now
            )

        return decision.action if written else None


async def run_worker(settings: Settings) -> None:
    """Entry point body: configure, register handlers, poll until signalled."""
    # Importing registers the production handlers
    from outbox.v1.jobs import registry_init  # noqa: F401

    database = Database(settings)
    worker = JobWorker(settings, database)
    add_worker_context(worker.worker_id)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    try:
        await worker.start()
    finally:
        await database.close()


def main() -> None:
    from outbox.config.settings import settings

    setup_logging()
    asyncio.run(run_worker(settings))


if __name__ == "__main__":
    main()
