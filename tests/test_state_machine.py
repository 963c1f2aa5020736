import pytest

from outbox.v1.jobs.models import Job, JobStatus, can_transition
from outbox.v1.jobs.store import JobStore

ALLOWED = [
    (JobStatus.PENDING, JobStatus.PROCESSING),
    (JobStatus.PROCESSING, JobStatus.PROCESSING),
    (JobStatus.PROCESSING, JobStatus.COMPLETED),
    (JobStatus.PROCESSING, JobStatus.PENDING),
    (JobStatus.PROCESSING, JobStatus.FAILED),
    (JobStatus.FAILED, JobStatus.PENDING),
]


@pytest.mark.parametrize("current,target", ALLOWED)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (current, target)
        for current in JobStatus
        for target in JobStatus
        if (current, target) not in ALLOWED
    ],
)
def test_disallowed_transitions(current, target):
    assert not can_transition(current, target)


def test_completed_is_absorbing():
    assert not any(can_transition(JobStatus.COMPLETED, target) for target in JobStatus)


def test_transitions_accept_plain_strings():
    assert can_transition("failed", "pending")
    assert not can_transition("pending", "completed")


async def test_store_refuses_edges_outside_the_state_machine(db_session, make_job, fetch_job):
    job = await make_job(status="completed", attempts=1)
    store = JobStore(db_session)

    with pytest.raises(ValueError, match="illegal job transition: completed -> pending"):
        await store._transition(
            (JobStatus.COMPLETED,), JobStatus.PENDING, Job.job_id == job.job_id
        )
    with pytest.raises(ValueError, match="illegal job transition: pending -> completed"):
        await store._transition(
            (JobStatus.PENDING,), JobStatus.COMPLETED, Job.job_id == job.job_id
        )

    assert (await fetch_job(job.job_id)).status == JobStatus.COMPLETED.value


async def test_store_transition_only_matches_rows_in_source_status(
    db_session, make_job, fetch_job
):
    pending = await make_job()
    failed = await make_job(status="failed", attempts=3)
    store = JobStore(db_session)

    written = await store._transition(
        (JobStatus.FAILED,),
        JobStatus.PENDING,
        Job.job_id.in_([pending.job_id, failed.job_id]),
    )

    assert written == 1
    assert (await fetch_job(failed.job_id)).status == JobStatus.PENDING.value
