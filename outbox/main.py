from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from outbox.config.logging import setup_logging
from outbox.config.settings import settings
from outbox.v1.core.exceptions import (
    OutboxException,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    outbox_exception_handler,
    validation_exception_handler,
)
from outbox.v1.core.registries import job_registry
from outbox.v1.healthz import router as health_router
from outbox.v1.jobs import registry_init  # noqa: F401
from outbox.v1.jobs.routes import router as jobs_router
from outbox.v1.jobs.routes import runner_router
from outbox.v1.leads.routes import router as leads_router
from outbox.v1.reminders.routes import router as reminders_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    # Initialize structured logging
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Transactional outbox for email, CRM and books side effects",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    app.add_middleware(RequestContextMiddleware)

    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(OutboxException, outbox_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")
    app.include_router(runner_router, prefix="/v1")
    app.include_router(reminders_router, prefix="/v1")
    app.include_router(leads_router, prefix="/v1")

    # Handlers are fixed at startup outside development
    if settings.environment != "development":
        job_registry.freeze()

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "outbox.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
