"""
Event-driven infrastructure for the avatar pipeline.

Architecture:
- asyncio.Queue for immediate dispatch (in-memory, fast)
- Blob uploads announce OBJECT_FINALIZED, player document writes announce PLAYER_UPDATED
- Handlers bridge those notifications to the avatar pipeline and the regeneration trigger

Usage:
    from app.events import get_event_bus, register_handlers

    bus = get_event_bus()
    register_handlers(bus)
    await bus.start()
    await bus.emit(OBJECT_FINALIZED, {"path": "player-photos/p1.jpg", "contentType": "image/jpeg"})
"""

from app.events.bus import (
    Event,
    EventBus,
    OBJECT_FINALIZED,
    PLAYER_UPDATED,
    get_event_bus,
    run_sweeper,
    sweep_stale_pending,
)
from app.events.handlers import (
    avatar_upload_handler,
    regeneration_handler,
    register_handlers,
)

__all__ = [
    "Event",
    "EventBus",
    "OBJECT_FINALIZED",
    "PLAYER_UPDATED",
    "get_event_bus",
    "run_sweeper",
    "sweep_stale_pending",
    "avatar_upload_handler",
    "regeneration_handler",
    "register_handlers",
]
