"""Core routes: health, metrics.

No auth: the service sits behind the admin UI's network boundary.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from app.avatars.config import get_avatar_settings
from app.events.bus import get_event_bus
from app.storage.config import get_storage_settings
from app.telemetry import get_metrics_text

router = APIRouter(tags=["core"])


class HealthResponse(BaseModel):
    status: str
    event_bus_running: bool
    pending_events: int
    storage_configured: bool
    image_transform_configured: bool


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    bus = get_event_bus()
    storage = get_storage_settings()
    return HealthResponse(
        status="ok",
        event_bus_running=bus.is_running,
        pending_events=bus.pending_count,
        storage_configured=bool(storage.STORAGE_R2_ENABLED and storage.STORAGE_R2_ENDPOINT_URL),
        image_transform_configured=bool(get_avatar_settings().GEMINI_API_KEY),
    )


@router.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics for the avatar pipeline and regeneration trigger."""
    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)
