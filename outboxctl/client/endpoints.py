"""API Endpoint Wrappers"""

from typing import Any

import httpx

from ..utils.config_manager import config
from .base import APIClient, OutboxError

__all__ = ["OutboxClient", "OutboxError"]


class OutboxClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_headers = headers or api_config.get("headers") or {}

        self.api = APIClient(
            base_url=final_base_url,
            timeout=int(api_config.get("timeout", 30)),
            headers=final_headers,
            transport=transport,
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Jobs Endpoints
    def list_jobs(
        self,
        status: list[str] | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List jobs newest first"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if job_type:
            params["job_type"] = job_type
        return self.api.get("/jobs", params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        """Get specific job by ID"""
        return self.api.get(f"/jobs/{job_id}")

    def job_stats(self) -> dict[str, Any]:
        """Get queue statistics"""
        return self.api.get("/jobs/stats/overview")

    def retry_job(self, job_id: str) -> dict[str, Any]:
        """Move a failed job back to pending"""
        return self.api.post(f"/jobs/{job_id}/retry")

    def enqueue_job(
        self,
        job_type: str,
        payload: dict[str, Any],
        max_attempts: int | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Enqueue a job"""
        data: dict[str, Any] = {"job_type": job_type, "payload": payload}
        if max_attempts is not None:
            data["max_attempts"] = max_attempts
        if idempotency_key:
            data["idempotency_key"] = idempotency_key
        return self.api.post("/jobs", data)
