"""Books/CRM client used to mirror paid orders and quotes."""

from typing import Any

import httpx

from outbox.config.settings import Settings
from outbox.v1.integrations.base import ServiceClient


class BooksClient(ServiceClient):
    service_name = "books API"

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "BooksClient | None":
        """Build a client, or None when no books API is configured."""
        if not settings.books_api_url:
            return None
        headers = (
            {"Authorization": f"Bearer {settings.books_api_token}"}
            if settings.books_api_token
            else {}
        )
        return cls(
            settings.books_api_url,
            timeout=settings.http_timeout_s,
            headers=headers,
            transport=transport,
        )

    async def create_invoice(
        self,
        company_id: str,
        reference_number: str,
        line_items: list[dict[str, Any]],
        idempotency_key: str,
    ) -> dict[str, Any]:
        return await self.post(
            "/invoices",
            json={
                "customer_id": company_id,
                "reference_number": reference_number,
                "line_items": line_items,
            },
            headers={"Idempotency-Key": idempotency_key},
        )

    async def record_payment(
        self,
        invoice_id: str,
        amount: float,
        payment_date: str,
        payment_mode: str,
        reference: str | None,
        idempotency_key: str,
    ) -> dict[str, Any]:
        return await self.post(
            "/customerpayments",
            json={
                "invoice_id": invoice_id,
                "amount": amount,
                "date": payment_date,
                "payment_mode": payment_mode,
                "reference_number": reference,
            },
            headers={"Idempotency-Key": idempotency_key},
        )

    async def create_quote(
        self,
        company_id: str,
        line_items: list[dict[str, Any]],
        notes: str | None,
        idempotency_key: str,
    ) -> dict[str, Any]:
        return await self.post(
            "/estimates",
            json={"customer_id": company_id, "line_items": line_items, "notes": notes},
            headers={"Idempotency-Key": idempotency_key},
        )
