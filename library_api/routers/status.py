"""Service status endpoint (no authentication required)."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from library_api.models import StatusResponse

router = APIRouter(prefix="/api", tags=["Health"])


@router.get("/status", response_model=StatusResponse)
async def service_status(request: Request):
    """Report service and database health."""
    settings = request.app.state.settings
    db_service = getattr(request.app.state, "db_service", None)

    db_status = "unavailable"
    if db_service is not None:
        health_info = await db_service.health_check()
        db_status = health_info.get("status", "unknown")

    return StatusResponse(
        status="ok" if db_status == "healthy" else "degraded",
        message=settings.api_title,
        timestamp=datetime.now(timezone.utc),
        version=settings.api_version,
        database_status=db_status,
    )
