from uuid import UUID

from sqlalchemy.exc import OperationalError

from outbox.v1.jobs.models import JobStatus
from outbox.v1.jobs.service import JobService


async def test_capture_lead_queues_sales_alert(async_client, fetch_job):
    response = await async_client.post(
        "/v1/leads/capture",
        json={
            "email": "Buyer@Example.com",
            "full_name": "Pat Buyer",
            "company_name": "Print Co",
            "message": "Please call me",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["data"]["received"] is True
    assert body["data"]["alert_queued"] is True

    job = await fetch_job(UUID(body["data"]["job_id"]))
    assert job.job_type == "inbound_lead_alert"
    assert job.status == JobStatus.PENDING.value
    assert job.payload["email"] == "buyer@example.com"
    assert job.payload["source"] == "website_form"
    assert job.payload["company_name"] == "Print Co"


async def test_capture_lead_survives_queue_outage(async_client, monkeypatch):
    async def unavailable(self, *args, **kwargs):
        raise OperationalError("INSERT INTO outbox", {}, Exception("database is locked"))

    monkeypatch.setattr(JobService, "enqueue", unavailable)

    response = await async_client.post(
        "/v1/leads/capture", json={"email": "lead@example.com"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["data"]["received"] is True
    assert body["data"]["alert_queued"] is False
    assert body["data"]["job_id"] is None


async def test_capture_lead_rejects_bad_email(async_client):
    response = await async_client.post("/v1/leads/capture", json={"email": "not-an-email"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
