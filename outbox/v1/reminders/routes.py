from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from outbox.config.settings import Settings, SettingsDep
from outbox.infra.database import get_session
from outbox.v1.core.exceptions import create_success_response
from outbox.v1.core.security import CronDep
from outbox.v1.jobs.service import JobService
from outbox.v1.reminders.service import generate_reorder_reminders

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post("/reorder-reminders", response_model=dict, dependencies=[CronDep])
async def reorder_reminders(
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Enqueue this week's reorder reminders (daily cron)."""

    summary = await generate_reorder_reminders(session, JobService(settings), settings)

    return create_success_response(data=summary.model_dump())
