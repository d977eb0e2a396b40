"""Health check endpoints.

- /health: liveness, always 200 while the process runs
- /healthz: database connectivity plus provider configuration status
"""

from typing import Any

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text

from docuhealth.config import Settings, get_settings
from docuhealth.db.engine import create_async_engine_from_settings

router = APIRouter()


async def check_db(settings: Settings) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        engine = create_async_engine_from_settings(settings)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        finally:
            await engine.dispose()
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


async def check_provider(settings: Settings) -> tuple[bool, str]:
    """Report whether Document AI and storage settings are present.

    Returns:
        (is_ok, status_message)
    """
    required = (
        settings.doc_ai_project_id,
        settings.doc_ai_location,
        settings.doc_ai_processor_id,
        settings.doc_ai_gcs_bucket,
        settings.gcp_access_token,
    )
    if all(required):
        return (True, "configured")
    return (False, "not_configured")


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz() -> dict[str, Any] | Response:
    """Health check endpoint.

    Returns:
        200 with component status if the database is reachable
        503 if it is not
    """
    settings = get_settings()

    db_ok, db_status = await check_db(settings)
    provider_ok, provider_status = await check_provider(settings)

    response_body = {
        "status": "ok" if db_ok and provider_ok else "degraded",
        "components": {
            "db": db_status,
            "provider": provider_status,
        },
    }

    if not db_ok:
        return JSONResponse(content=response_body, status_code=503)

    return response_body
