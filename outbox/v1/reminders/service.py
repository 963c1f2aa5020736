"""
Reorder reminder producer.

Finds customers that have not ordered for a while and enqueues one
`send_offer_email` job per company. The idempotency key is bucketed by ISO
week, so running the cron several times in the same week creates each
company's job once.
"""

import logging
import time
from collections import defaultdict
from datetime import UTC, date, datetime, timedelta

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.config.settings import Settings
from outbox.v1.crm.models import Company, Contact, MarketingStatus
from outbox.v1.jobs.registry_init import SEND_OFFER_EMAIL
from outbox.v1.jobs.service import JobService, build_idempotency_key

logger = logging.getLogger(__name__)

CUSTOMER_CATEGORY = "customer"
REMINDER_MAX_ATTEMPTS = 3


class ReminderRunSummary(BaseModel):
    """Result of one reminder fan-out run."""

    campaign_key: str
    companies_found: int = 0
    companies_processed: int = 0
    jobs_created: int = 0
    deduplicated: int = 0
    skipped_no_contacts: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0


def week_bucket(day: date) -> str:
    """ISO year-week label, e.g. 2026-W42."""
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


async def find_lapsed_customers(
    session: AsyncSession, threshold: date, limit: int
) -> list[Company]:
    result = await session.execute(
        select(Company)
        .where(
            Company.category == CUSTOMER_CATEGORY,
            Company.last_invoice_at.is_not(None),
            Company.last_invoice_at < threshold,
        )
        .order_by(Company.last_invoice_at, Company.company_id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def subscribed_contacts_by_company(
    session: AsyncSession, company_ids: list[str]
) -> dict[str, list[str]]:
    if not company_ids:
        return {}
    result = await session.execute(
        select(Contact.company_id, Contact.contact_id)
        .where(
            Contact.company_id.in_(company_ids),
            Contact.marketing_status == MarketingStatus.SUBSCRIBED,
        )
        .order_by(Contact.contact_id)
    )
    contacts: dict[str, list[str]] = defaultdict(list)
    for company_id, contact_id in result.all():
        contacts[company_id].append(contact_id)
    return contacts


async def generate_reorder_reminders(
    session: AsyncSession,
    job_service: JobService,
    settings: Settings,
    today: date | None = None,
) -> ReminderRunSummary:
    """
    Enqueue reorder reminder jobs for lapsed customers.

    Args:
        session: Database session
        job_service: Service used to enqueue
        settings: Threshold, batch limit and offer key come from here
        today: Reference date (defaults to today in UTC)

    Returns:
        Counts for the run; per-company failures are listed in `errors`
    """
    started = time.monotonic()
    today = today or datetime.now(UTC).date()
    week = week_bucket(today)
    campaign_key = f"auto_reorder_{week}"
    threshold = today - timedelta(days=settings.reminder_threshold_days)

    summary = ReminderRunSummary(campaign_key=campaign_key)

    companies = await find_lapsed_customers(
        session, threshold, settings.reminder_batch_limit
    )
    summary.companies_found = len(companies)
    # Plain tuples survive the rollback after a failed enqueue
    targets = [(company.company_id, company.company_name) for company in companies]
    contacts = await subscribed_contacts_by_company(
        session, [company_id for company_id, _ in targets]
    )

    for company_id, company_name in targets:
        summary.companies_processed += 1

        contact_ids = contacts.get(company_id)
        if not contact_ids:
            summary.skipped_no_contacts += 1
            continue

        try:
            result = await job_service.enqueue(
                session,
                SEND_OFFER_EMAIL,
                payload={
                    "company_id": company_id,
                    "contact_ids": contact_ids,
                    "offer_key": settings.reminder_offer_key,
                    "campaign_key": campaign_key,
                },
                max_attempts=REMINDER_MAX_ATTEMPTS,
                idempotency_key=build_idempotency_key(
                    "reorder", company_id, "auto_reorder", week
                ),
            )
        except SQLAlchemyError as e:
            await session.rollback()
            logger.exception(
                "Failed to enqueue reorder reminder",
                extra={"company_id": company_id},
            )
            summary.errors.append(f"{company_name}: {e.__class__.__name__}")
            continue

        if result.deduplicated:
            summary.deduplicated += 1
        else:
            summary.jobs_created += 1

    summary.duration_ms = int((time.monotonic() - started) * 1000)

    logger.info(
        "Reorder reminders generated",
        extra={
            "campaign_key": campaign_key,
            "companies_found": summary.companies_found,
            "jobs_created": summary.jobs_created,
            "deduplicated": summary.deduplicated,
            "error_count": len(summary.errors),
        },
    )

    return summary
