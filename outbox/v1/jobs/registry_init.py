"""
Job registry initialization.

Registers all job handlers with the global job registry.
"""

import logging

from outbox.config.settings import settings
from outbox.v1.core.registries import job_registry
from outbox.v1.jobs.handlers import (
    CreateQuoteHandler,
    InboundLeadAlertHandler,
    SendOfferEmailHandler,
    SyncOrderHandler,
)

logger = logging.getLogger(__name__)

SEND_OFFER_EMAIL = "send_offer_email"
INBOUND_LEAD_ALERT = "inbound_lead_alert"
ZOHO_SYNC_ORDER = "zoho_sync_order"
ZOHO_CREATE_QUOTE = "zoho_create_quote"


def register_job_handlers() -> None:
    """Register all job handlers with the job registry."""

    if job_registry.is_frozen():
        return

    logger.info("Registering job handlers")

    # Marketing and sales email
    job_registry.register(SEND_OFFER_EMAIL, SendOfferEmailHandler(settings))
    job_registry.register(INBOUND_LEAD_ALERT, InboundLeadAlertHandler(settings))

    # Books/CRM mirroring
    job_registry.register(ZOHO_SYNC_ORDER, SyncOrderHandler(settings))
    job_registry.register(ZOHO_CREATE_QUOTE, CreateQuoteHandler(settings))

    logger.info(
        "Job handlers registered", extra={"registered_handlers": job_registry.list()}
    )


# Auto-register handlers when module is imported
register_job_handlers()
