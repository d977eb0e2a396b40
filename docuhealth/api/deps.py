"""Service wiring and HTTP error mapping for the API layer.

Collaborators are built once per application and handed to routes through
FastAPI dependencies, so tests can inject in-memory implementations.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncEngine

from docuhealth.config import DispatchConfig, Settings
from docuhealth.db.engine import (
    create_async_engine_from_settings,
    create_schema,
    create_session_factory,
)
from docuhealth.db.repositories import RecordStore
from docuhealth.db.sql_repositories import SqlRecordStore
from docuhealth.dispatch.dispatcher import Dispatcher, utc_now
from docuhealth.errors import (
    ConfigurationError,
    DispatchError,
    DuplicateRecord,
    InvalidTransition,
    NotFound,
    OperationFailed,
    PayloadTooLargeForSync,
    QuotaExceeded,
    StorageUnavailable,
    UnknownDocument,
    UpstreamError,
    UpstreamTimeout,
)
from docuhealth.intelligence.client import build_intelligence_client
from docuhealth.metrics.aggregator import MetricsAggregator
from docuhealth.storage.stager import build_object_stager
from docuhealth.utils.logging import StructuredDispatchLogger
from docuhealth.utils.metrics import PrometheusDispatchMetrics

ERROR_STATUS: dict[type[DispatchError], int] = {
    DuplicateRecord: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    NotFound: status.HTTP_404_NOT_FOUND,
    UnknownDocument: status.HTTP_404_NOT_FOUND,
    PayloadTooLargeForSync: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
    OperationFailed: status.HTTP_502_BAD_GATEWAY,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    QuotaExceeded: status.HTTP_503_SERVICE_UNAVAILABLE,
    ConfigurationError: status.HTTP_503_SERVICE_UNAVAILABLE,
    UpstreamTimeout: status.HTTP_504_GATEWAY_TIMEOUT,
}


@dataclass
class Services:
    """Collaborators shared by all requests of one application."""

    store: RecordStore
    dispatcher: Dispatcher
    aggregator: MetricsAggregator
    engine: AsyncEngine | None = None
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def aclose(self) -> None:
        for close in self.closers:
            await close()
        if self.engine is not None:
            await self.engine.dispose()


async def build_services(settings: Settings) -> Services:
    """Build production collaborators from settings.

    Raises:
        ConfigurationError: If dispatch policy or provider settings are missing
        ValueError: If DATABASE_URL is unset
    """
    config = DispatchConfig.from_settings(settings)
    stager = build_object_stager(settings)
    intelligence = build_intelligence_client(settings, stager)

    engine = create_async_engine_from_settings(settings)
    await create_schema(engine)
    store = SqlRecordStore(create_session_factory(engine))

    dispatcher = Dispatcher(
        stager=stager,
        intelligence=intelligence,
        store=store,
        config=config,
        metrics=PrometheusDispatchMetrics(),
        logger=StructuredDispatchLogger(),
    )
    aggregator = MetricsAggregator(store, config.tz, utc_now)
    return Services(
        store=store,
        dispatcher=dispatcher,
        aggregator=aggregator,
        engine=engine,
        closers=[intelligence.aclose, stager.aclose],
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the application's services."""
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services not initialized",
        )
    return services


def http_error(error: DispatchError) -> HTTPException:
    """Translate a domain error into an HTTP error response."""
    status_code = ERROR_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=status_code, detail=error.to_payload())
