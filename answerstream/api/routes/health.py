"""
Health Routes
=============

FastAPI routes for health check endpoints.
"""

from fastapi import APIRouter

from answerstream.config.settings import get_settings
from answerstream.models.schemas import HealthStatus
from answerstream.api.routes.stream import get_active_stream_count

router = APIRouter(prefix="/v1", tags=["Health"])


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    """Basic health check endpoint."""
    return HealthStatus(
        status="healthy",
        version=get_settings().app_version,
        active_streams=get_active_stream_count(),
    )
