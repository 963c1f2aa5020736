"""
Outbox job handlers.

Each handler implements the JobHandler protocol and is registered under its
job_type in registry_init. Handlers can run more than once for the same job,
so every external call carries an idempotency key derived from the job id.
"""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.config.settings import Settings
from outbox.v1.crm.models import Contact, MarketingStatus
from outbox.v1.integrations.books import BooksClient
from outbox.v1.integrations.email import EmailClient
from outbox.v1.jobs.dispatcher import JobContext
from outbox.v1.jobs.errors import FatalJobError

logger = logging.getLogger(__name__)


class Recipient(BaseModel):
    email: str = Field(..., min_length=3)
    full_name: str | None = None
    contact_id: str | None = None


class OfferEmailPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    offer_key: str = Field(..., min_length=1)
    campaign_key: str | None = None
    company_id: str | None = None
    contact_id: str | None = None
    contact_ids: list[str] = Field(default_factory=list)
    recipients: list[Recipient] = Field(default_factory=list)
    offer_url: str | None = None
    custom_message: str | None = None
    subject: str | None = None

    @model_validator(mode="after")
    def _has_audience(self) -> "OfferEmailPayload":
        if not (self.recipients or self.contact_ids or self.contact_id):
            raise ValueError("one of recipients, contact_ids or contact_id is required")
        return self

    def all_contact_ids(self) -> list[str]:
        ids = list(self.contact_ids)
        if self.contact_id and self.contact_id not in ids:
            ids.append(self.contact_id)
        return ids


class SendOfferEmailHandler:
    """
    Sends an offer email to each subscribed recipient.

    Payload expected:
    {
        "offer_key": "reorder_90_day",
        "campaign_key": "auto_reorder_2026-W42",   # optional
        "company_id": "C1",                        # optional
        "contact_ids": ["C1-1"],                   # or "contact_id", or "recipients"
        "recipients": [{"email": "...", "full_name": "...", "contact_id": "..."}],
        "offer_url": "https://...",                # optional
        "custom_message": "..."                    # optional
    }
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.transport = transport

    async def handle(
        self,
        session: AsyncSession,
        ctx: JobContext,
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Resolve recipients and send one email each."""
        data = OfferEmailPayload.model_validate(payload)

        recipients = list(data.recipients)
        skipped: list[str] = []

        contact_ids = data.all_contact_ids()
        if contact_ids:
            result = await session.execute(
                select(Contact).where(Contact.contact_id.in_(contact_ids))
            )
            contacts = {c.contact_id: c for c in result.scalars().all()}
            for contact_id in contact_ids:
                contact = contacts.get(contact_id)
                # Consent can be withdrawn between enqueue and send
                if contact is None or contact.marketing_status != MarketingStatus.SUBSCRIBED:
                    skipped.append(contact_id)
                    continue
                recipients.append(
                    Recipient(
                        email=contact.email,
                        full_name=contact.full_name,
                        contact_id=contact.contact_id,
                    )
                )

        if not recipients:
            logger.info(
                "No subscribed recipients for offer email",
                extra={"job_id": str(ctx.job_id), "skipped": skipped},
            )
            return {"status": "skipped", "reason": "no_subscribed_recipients", "skipped": skipped}

        template_data = {
            "offer_key": data.offer_key,
            "campaign_key": data.campaign_key,
            "company_id": data.company_id,
            "offer_url": data.offer_url,
            "custom_message": data.custom_message,
        }

        sent: list[str] = []
        async with EmailClient.from_settings(self.settings, transport=self.transport) as client:
            for recipient in recipients:
                await client.send(
                    to=recipient.email,
                    subject=data.subject or "An offer from Technifold",
                    template=data.offer_key,
                    data={**template_data, "full_name": recipient.full_name},
                    idempotency_key=f"{ctx.job_id}:{recipient.contact_id or recipient.email}",
                )
                sent.append(recipient.contact_id or recipient.email)

        logger.info(
            "Offer emails sent",
            extra={
                "job_id": str(ctx.job_id),
                "offer_key": data.offer_key,
                "sent_count": len(sent),
                "skipped_count": len(skipped),
            },
        )

        return {"status": "sent", "sent": sent, "skipped": skipped}


class LeadAlertPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: str = Field(..., min_length=3)
    full_name: str | None = None
    company_name: str | None = None
    phone: str | None = None
    source: str | None = None
    message: str | None = None


class InboundLeadAlertHandler:
    """
    Alerts the sales inbox about a lead captured on the website.

    Payload expected:
    {
        "email": "lead@example.com",
        "full_name": "...",      # optional
        "company_name": "...",   # optional
        "source": "contact_form" # optional
    }
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.transport = transport

    async def handle(
        self,
        session: AsyncSession,
        ctx: JobContext,
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        lead = LeadAlertPayload.model_validate(payload)

        who = lead.full_name or lead.email
        subject = f"New inbound lead: {who}"
        if lead.company_name:
            subject += f" ({lead.company_name})"

        async with EmailClient.from_settings(self.settings, transport=self.transport) as client:
            await client.send(
                to=self.settings.sales_alert_email,
                subject=subject,
                template="inbound_lead_alert",
                data=lead.model_dump(),
                idempotency_key=f"{ctx.job_id}:lead_alert",
            )

        return {"status": "sent", "to": self.settings.sales_alert_email}


class OrderItem(BaseModel):
    product_code: str
    description: str | None = None
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)


class SyncOrderPayload(BaseModel):
    order_id: str
    company_id: str
    items: list[OrderItem] = Field(..., min_length=1)
    total: float = Field(..., ge=0)
    currency: str = "GBP"
    payment_reference: str | None = None


class SyncOrderHandler:
    """
    Mirrors a paid order into the books system: invoice, then payment.

    Payload expected:
    {
        "order_id": "...", "company_id": "...",
        "items": [{"product_code": "...", "quantity": 1, "unit_price": 10.0}],
        "total": 10.0, "currency": "GBP", "payment_reference": "pi_..."
    }
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.transport = transport

    async def handle(
        self,
        session: AsyncSession,
        ctx: JobContext,
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        order = SyncOrderPayload.model_validate(payload)

        client = BooksClient.from_settings(self.settings, transport=self.transport)
        if client is None:
            logger.info(
                "Books API not configured, skipping order sync",
                extra={"order_id": order.order_id},
            )
            return {"status": "skipped", "reason": "books_not_configured"}

        async with client:
            invoice = await client.create_invoice(
                company_id=order.company_id,
                reference_number=order.order_id,
                line_items=[
                    {
                        "product_code": item.product_code,
                        "description": item.description,
                        "quantity": item.quantity,
                        "rate": item.unit_price,
                    }
                    for item in order.items
                ],
                idempotency_key=f"{ctx.job_id}:invoice",
            )
            invoice_id = invoice.get("invoice_id")
            if not invoice_id:
                raise FatalJobError("books API response did not include invoice_id")

            payment = await client.record_payment(
                invoice_id=invoice_id,
                amount=order.total,
                payment_date=datetime.now(UTC).date().isoformat(),
                payment_mode="stripe",
                reference=order.payment_reference,
                idempotency_key=f"{ctx.job_id}:payment",
            )

        logger.info(
            "Order synced to books",
            extra={"order_id": order.order_id, "invoice_id": invoice_id},
        )

        return {
            "status": "synced",
            "invoice_id": invoice_id,
            "invoice_number": invoice.get("invoice_number"),
            "payment_id": payment.get("payment_id"),
        }


class QuotePayload(BaseModel):
    company_id: str
    company_name: str | None = None
    line_items: list[dict[str, Any]] = Field(..., min_length=1)
    notes: str | None = None


class CreateQuoteHandler:
    """Creates a quote (estimate) in the books system for an admin-built quote."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.transport = transport

    async def handle(
        self,
        session: AsyncSession,
        ctx: JobContext,
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        quote = QuotePayload.model_validate(payload)

        client = BooksClient.from_settings(self.settings, transport=self.transport)
        if client is None:
            raise FatalJobError("books API is not configured", code="NOT_CONFIGURED")

        async with client:
            estimate = await client.create_quote(
                company_id=quote.company_id,
                line_items=quote.line_items,
                notes=quote.notes,
                idempotency_key=f"{ctx.job_id}:quote",
            )

        return {"status": "created", "estimate_id": estimate.get("estimate_id")}
