"""
Public lead capture endpoint.

The sales alert is a side effect: if the queue is unavailable the submission
is still acknowledged and the failure is logged.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.config.settings import Settings, SettingsDep
from outbox.infra.database import get_session
from outbox.v1.core.exceptions import create_success_response
from outbox.v1.jobs.registry_init import INBOUND_LEAD_ALERT
from outbox.v1.jobs.service import JobService
from outbox.v1.leads.schemas import LeadCapture, LeadCaptureResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("/capture", response_model=dict)
async def capture_lead(
    lead: LeadCapture,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Accept a contact form submission and queue the sales alert."""

    payload = lead.model_dump()
    payload["email"] = lead.email.lower()

    result = await JobService(settings).enqueue_safely(
        session, INBOUND_LEAD_ALERT, payload
    )

    logger.info(
        "Lead captured",
        extra={"source": lead.source, "alert_queued": result is not None},
    )

    response = LeadCaptureResponse(
        alert_queued=result is not None,
        job_id=str(result.job_id) if result else None,
    )
    return create_success_response(data=response.model_dump())
