"""FastAPI application for the player avatar service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.avatars.routes import router as avatars_router
from app.config import get_settings
from app.database import close_db, init_db
from app.events import get_event_bus, register_handlers
from app.players.routes import router as players_router
from app.routes.core import router as core_router
from app.scheduler import start_scheduler, stop_scheduler
from app.storage.r2_client import get_storage_r2_client
from app.telemetry.sentry import init_sentry

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking (before FastAPI app creation)
# Only activates if SENTRY_DSN is set in environment
init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting player avatar service...")
    await init_db()

    bus = get_event_bus()
    register_handlers(bus)
    await bus.start()

    # Recovers generations whose notification was dropped or lost on restart
    start_scheduler()

    yield

    logger.info("Shutting down player avatar service...")
    stop_scheduler()
    await bus.stop()
    client = get_storage_r2_client()
    if client is not None:
        await client.close()
    await close_db()


app = FastAPI(
    title="Player Avatar Service",
    description="Player registry with AI-generated avatars",
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(core_router)
app.include_router(players_router)
app.include_router(avatars_router)
