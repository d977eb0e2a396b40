"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from docuhealth.api.deps import Services, build_services
from docuhealth.api.routes.dashboard import router as dashboard_router
from docuhealth.api.routes.health import router as health_router
from docuhealth.api.routes.ingest import router as ingest_router
from docuhealth.api.routes.metrics import router as metrics_router
from docuhealth.api.routes.validations import router as validations_router
from docuhealth.config import get_settings

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the application.

    Args:
        services: Pre-built collaborators (tests); built from settings at startup
            when omitted

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.services is not None:
            yield
            return

        app.state.services = await build_services(get_settings())
        logger.info("Dispatcher services initialized")
        try:
            yield
        finally:
            await app.state.services.aclose()
            app.state.services = None

    app = FastAPI(title="DocuHealth Dispatcher API", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(ingest_router)
    app.include_router(dashboard_router)
    app.include_router(validations_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "DocuHealth Dispatcher API", "version": "0.1.0"}

    return app


app = create_app()
