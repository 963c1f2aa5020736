"""Transactional email provider client."""

from typing import Any

import httpx

from outbox.config.settings import Settings
from outbox.v1.integrations.base import ServiceClient


class EmailClient(ServiceClient):
    """Sends one email per call; the provider deduplicates on Idempotency-Key."""

    service_name = "email provider"

    def __init__(
        self,
        api_url: str,
        api_key: str | None,
        sender: str,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        super().__init__(api_url, timeout=timeout, headers=headers, transport=transport)
        self.sender = sender

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "EmailClient":
        return cls(
            api_url=settings.email_api_url,
            api_key=settings.email_api_key,
            sender=settings.email_from,
            timeout=settings.http_timeout_s,
            transport=transport,
        )

    async def send(
        self,
        to: str,
        subject: str,
        template: str,
        data: dict[str, Any],
        idempotency_key: str,
    ) -> dict[str, Any]:
        body = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "template": template,
            "data": data,
        }
        return await self.post("", json=body, headers={"Idempotency-Key": idempotency_key})
