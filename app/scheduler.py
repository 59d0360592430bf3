"""Background scheduler for periodic avatar maintenance jobs."""

import logging
import os
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import get_settings

logger = logging.getLogger(__name__)

# Flag to prevent multiple scheduler instances (e.g., with --reload)
_scheduler_started = False
scheduler = AsyncIOScheduler()


async def sweep_pending_avatars() -> int:
    """Re-announce photos of players stuck in pending (dropped or lost events)."""
    from app.database import async_session_maker
    from app.events.bus import get_event_bus, run_sweeper
    from app.storage.media import StorageUnavailableError, get_media_store

    try:
        media = get_media_store()
    except StorageUnavailableError as e:
        logger.warning(f"[SWEEPER] Skipped: {e}")
        return 0

    settings = get_settings()
    emitted = await run_sweeper(
        get_event_bus(),
        async_session_maker,
        media,
        older_than_seconds=settings.AVATAR_SWEEPER_PENDING_AGE_SECONDS,
    )
    if emitted > 0:
        logger.info(f"[SWEEPER] Re-announced {emitted} pending player photos")
    return emitted


def start_scheduler():
    """Start the background scheduler. The sweeper also runs once immediately."""
    global _scheduler_started

    if _scheduler_started:
        logger.warning("Scheduler already started, skipping duplicate initialization")
        return

    # Uvicorn sets this env var in the reloader subprocess
    if os.environ.get("UVICORN_RELOADED"):
        logger.info("Skipping scheduler in reload subprocess")
        return

    settings = get_settings()
    if not settings.AVATAR_SWEEPER_ENABLED:
        logger.info("Scheduler: avatar sweeper disabled (AVATAR_SWEEPER_ENABLED=false)")
        return

    scheduler.add_job(
        sweep_pending_avatars,
        trigger=IntervalTrigger(seconds=settings.AVATAR_SWEEPER_INTERVAL_SECONDS),
        id="avatar_sweeper",
        name=f"Avatar Sweeper (every {settings.AVATAR_SWEEPER_INTERVAL_SECONDS}s)",
        next_run_time=datetime.now(timezone.utc),
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=settings.AVATAR_SWEEPER_INTERVAL_SECONDS,
    )

    scheduler.start()
    _scheduler_started = True
    logger.info(f"Scheduler started: avatar sweeper every {settings.AVATAR_SWEEPER_INTERVAL_SECONDS}s")


def stop_scheduler():
    """Stop the background scheduler."""
    global _scheduler_started
    if scheduler.running:
        scheduler.shutdown()
        _scheduler_started = False
        logger.info("Scheduler stopped")
