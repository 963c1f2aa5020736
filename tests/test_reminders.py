from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from outbox.v1.crm.models import Company, Contact, MarketingStatus
from outbox.v1.jobs.models import Job
from outbox.v1.jobs.service import JobService
from outbox.v1.reminders.service import generate_reorder_reminders, week_bucket

TODAY = date(2026, 10, 14)


@pytest.fixture
async def seed_crm(db_session):
    """A small CRM: two lapsed customers, one of them without subscribers."""
    db_session.add_all(
        [
            Company(
                company_id="C1",
                company_name="Acme Print",
                category="customer",
                last_invoice_at=date(2026, 6, 1),
            ),
            Company(
                company_id="C2",
                company_name="Recent Ltd",
                category="customer",
                last_invoice_at=date(2026, 9, 1),
            ),
            Company(
                company_id="C3",
                company_name="Dist Co",
                category="distributor",
                last_invoice_at=date(2026, 1, 1),
            ),
            Company(
                company_id="C4",
                company_name="Quiet Finishing",
                category="customer",
                last_invoice_at=date(2026, 3, 1),
            ),
            Company(
                company_id="C5",
                company_name="Never Ordered",
                category="customer",
                last_invoice_at=None,
            ),
        ]
    )
    await db_session.flush()
    db_session.add_all(
        [
            Contact(
                contact_id="P2",
                company_id="C1",
                email="b@acme.test",
                marketing_status=MarketingStatus.SUBSCRIBED,
            ),
            Contact(
                contact_id="P1",
                company_id="C1",
                email="a@acme.test",
                marketing_status=MarketingStatus.SUBSCRIBED,
            ),
            Contact(
                contact_id="P3",
                company_id="C1",
                email="c@acme.test",
                marketing_status=MarketingStatus.UNSUBSCRIBED,
            ),
            Contact(
                contact_id="P4",
                company_id="C4",
                email="d@quiet.test",
                marketing_status=MarketingStatus.PENDING,
            ),
            Contact(
                contact_id="P5",
                company_id="C2",
                email="e@recent.test",
                marketing_status=MarketingStatus.SUBSCRIBED,
            ),
        ]
    )
    await db_session.commit()


async def _jobs(session) -> list[Job]:
    result = await session.execute(select(Job).order_by(Job.created_at))
    return list(result.scalars().all())


def test_week_bucket():
    assert week_bucket(TODAY) == "2026-W42"
    assert week_bucket(date(2026, 1, 5)) == "2026-W02"
    # ISO weeks can belong to the previous year
    assert week_bucket(date(2027, 1, 1)) == "2026-W53"


async def test_generate_reorder_reminders(db_session, test_settings, seed_crm):
    summary = await generate_reorder_reminders(
        db_session, JobService(test_settings), test_settings, today=TODAY
    )

    assert summary.campaign_key == "auto_reorder_2026-W42"
    assert summary.companies_found == 2
    assert summary.companies_processed == 2
    assert summary.jobs_created == 1
    assert summary.skipped_no_contacts == 1
    assert summary.deduplicated == 0
    assert summary.errors == []

    jobs = await _jobs(db_session)
    assert len(jobs) == 1
    job = jobs[0]
    assert job.job_type == "send_offer_email"
    assert job.status == "pending"
    assert job.max_attempts == 3
    assert job.idempotency_key == "reorder:C1:auto_reorder:2026-W42"
    assert job.payload == {
        "company_id": "C1",
        "contact_ids": ["P1", "P2"],
        "offer_key": "reorder_90_day",
        "campaign_key": "auto_reorder_2026-W42",
    }


async def test_rerun_same_week_deduplicates(db_session, test_settings, seed_crm):
    job_service = JobService(test_settings)
    await generate_reorder_reminders(db_session, job_service, test_settings, today=TODAY)

    summary = await generate_reorder_reminders(
        db_session, job_service, test_settings, today=date(2026, 10, 16)
    )

    assert summary.jobs_created == 0
    assert summary.deduplicated == 1
    assert len(await _jobs(db_session)) == 1


async def test_next_week_creates_new_job(db_session, test_settings, seed_crm):
    job_service = JobService(test_settings)
    await generate_reorder_reminders(db_session, job_service, test_settings, today=TODAY)

    summary = await generate_reorder_reminders(
        db_session, job_service, test_settings, today=date(2026, 10, 21)
    )

    assert summary.campaign_key == "auto_reorder_2026-W43"
    assert summary.jobs_created == 1
    keys = {job.idempotency_key for job in await _jobs(db_session)}
    assert keys == {
        "reorder:C1:auto_reorder:2026-W42",
        "reorder:C1:auto_reorder:2026-W43",
    }


async def test_batch_limit(db_session, test_settings, seed_crm):
    limited = test_settings.model_copy(update={"reminder_batch_limit": 1})

    summary = await generate_reorder_reminders(
        db_session, JobService(limited), limited, today=TODAY
    )

    # Oldest invoice first, so only the contactless C4 is looked at
    assert summary.companies_found == 1
    assert summary.skipped_no_contacts == 1
    assert summary.jobs_created == 0


async def test_enqueue_failure_is_reported_and_run_continues(
    db_session, test_settings, seed_crm, monkeypatch
):
    db_session.add(
        Contact(
            contact_id="P6",
            company_id="C4",
            email="f@quiet.test",
            marketing_status=MarketingStatus.SUBSCRIBED,
        )
    )
    await db_session.commit()

    job_service = JobService(test_settings)
    original_enqueue = job_service.enqueue

    async def flaky_enqueue(session, job_type, payload=None, **kwargs):
        if payload["company_id"] == "C4":
            raise OperationalError("INSERT", {}, Exception("connection reset"))
        return await original_enqueue(session, job_type, payload, **kwargs)

    monkeypatch.setattr(job_service, "enqueue", flaky_enqueue)

    summary = await generate_reorder_reminders(
        db_session, job_service, test_settings, today=TODAY
    )

    assert summary.errors == ["Quiet Finishing: OperationalError"]
    assert summary.companies_processed == 2
    assert summary.jobs_created == 1


async def test_no_lapsed_customers(db_session, test_settings):
    summary = await generate_reorder_reminders(
        db_session, JobService(test_settings), test_settings, today=TODAY
    )

    assert summary.companies_found == 0
    assert summary.jobs_created == 0


async def test_reorder_reminders_route(async_client, cron_headers, db_session):
    db_session.add(
        Company(
            company_id="C9",
            company_name="Old Customer",
            category="customer",
            last_invoice_at=date(2000, 1, 1),
        )
    )
    await db_session.flush()
    db_session.add(
        Contact(
            contact_id="P9",
            company_id="C9",
            email="old@customer.test",
            marketing_status=MarketingStatus.SUBSCRIBED,
        )
    )
    await db_session.commit()

    response = await async_client.post("/v1/cron/reorder-reminders")
    assert response.status_code == 401

    response = await async_client.post(
        "/v1/cron/reorder-reminders", headers=cron_headers
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["jobs_created"] == 1
    assert data["campaign_key"].startswith("auto_reorder_")

    response = await async_client.post(
        "/v1/cron/reorder-reminders", headers=cron_headers
    )
    assert response.json()["data"]["deduplicated"] == 1
