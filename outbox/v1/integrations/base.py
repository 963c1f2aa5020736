"""Base async HTTP client for external collaborators (email provider, books/CRM)."""

import logging
from typing import Any

import httpx

from outbox.v1.jobs.errors import FatalJobError, RetryableJobError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 409, 425, 429})


class ServiceClient:
    """
    Thin httpx wrapper that maps HTTP failures onto job error classes.

    429, 408 and 5xx responses and transport errors are transient; any other
    4xx is a permanent rejection of the request.
    """

    service_name = "service"

    def __init__(
        self,
        base_url: str,
        timeout: float = 20.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.default_headers = headers or {}
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=self.default_headers,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        if response.status_code >= 500 or response.status_code in RETRYABLE_STATUS_CODES:
            raise RetryableJobError(
                f"{self.service_name} returned {response.status_code}: {response.text[:200]}",
                code=f"HTTP_{response.status_code}",
            )
        if response.status_code >= 400:
            raise FatalJobError(
                f"{self.service_name} rejected request with {response.status_code}: "
                f"{response.text[:200]}",
                code=f"HTTP_{response.status_code}",
            )

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            raise RetryableJobError(
                f"{self.service_name} returned invalid JSON", code="INVALID_JSON"
            ) from None
        return data if isinstance(data, dict) else {"data": data}

    async def post(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make POST request"""
        try:
            response = await self.client.post(path, json=json, headers=headers)
        except httpx.TransportError as e:
            logger.warning(
                "Collaborator connection error",
                extra={"service": self.service_name, "path": path, "error": str(e)},
            )
            raise RetryableJobError(
                f"{self.service_name} unreachable: {e}", code="CONNECTION_ERROR"
            ) from e
        return self._handle_response(response)
