"""Dashboard endpoints - GET /dashboard/metrics, GET /dashboard/audit-events."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from docuhealth.api.deps import Services, get_services
from docuhealth.models.audit import AuditEvent
from docuhealth.models.metrics import MetricsSnapshot

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/metrics", response_model=MetricsSnapshot)
async def dashboard_metrics(
    services: Annotated[Services, Depends(get_services)],
) -> MetricsSnapshot:
    """Current dashboard snapshot, recomputed on every call."""
    return await services.aggregator.snapshot()


@router.get("/audit-events", response_model=list[AuditEvent])
async def audit_events(
    services: Annotated[Services, Depends(get_services)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[AuditEvent]:
    """Most recent audit events first."""
    return await services.store.list_audit_events(limit)
