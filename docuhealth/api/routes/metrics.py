"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - dispatch_latency_ms{mode, status}
    - dispatch_outcomes_total{mode, status}
    - dispatch_errors_total{kind}
    - validation_tickets_total{priority}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
