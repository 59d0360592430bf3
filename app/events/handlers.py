"""
Handlers bridging bus notifications to the avatar components.

- OBJECT_FINALIZED → avatar pipeline (guard clause inside the pipeline)
- PLAYER_UPDATED   → regeneration trigger (edge detection inside the trigger)

Both components return structured results instead of raising; the handlers
only log them. Imports are deferred so the storage and repository modules
can import the bus without a cycle.
"""

import logging

from app.events.bus import OBJECT_FINALIZED, PLAYER_UPDATED, Event, EventBus

logger = logging.getLogger("players.events")


async def avatar_upload_handler(event: Event):
    """Handle OBJECT_FINALIZED: generate the avatar for a new player photo."""
    from app.avatars.pipeline import get_avatar_pipeline, should_process

    path = event.payload.get("path")
    content_type = event.payload.get("contentType")

    if not should_process(path, content_type):
        logger.debug(f"[AVATAR] Ignoring {path} ({content_type})")
        return

    try:
        pipeline = get_avatar_pipeline()
    except Exception as e:
        logger.error(f"[AVATAR] Pipeline unavailable for {path}: {e}")
        return

    result = await pipeline.handle_upload(path, content_type)
    if result is None:
        return
    if result.success:
        logger.info(f"[AVATAR] player={result.player_id} completed ({result.avatar_url})")
    else:
        logger.warning(f"[AVATAR] player={result.player_id} failed: {result.error}")


async def regeneration_handler(event: Event):
    """Handle PLAYER_UPDATED: re-submit the stored photo on a regeneration request."""
    from app.avatars.regeneration import get_regeneration_trigger, is_regeneration_edge

    player_id = event.payload.get("player_id")
    before = event.payload.get("before")
    after = event.payload.get("after")

    if not player_id or not is_regeneration_edge(before, after):
        return

    try:
        trigger = get_regeneration_trigger()
    except Exception as e:
        logger.error(f"[REGEN] Trigger unavailable for player {player_id}: {e}")
        return

    result = await trigger.handle_update(player_id, before, after)
    if result is not None and not result.success:
        logger.warning(f"[REGEN] player={player_id} failed: {result.error}")


def register_handlers(bus: EventBus) -> None:
    """Subscribe the avatar handlers to their notifications."""
    bus.subscribe(OBJECT_FINALIZED, avatar_upload_handler)
    bus.subscribe(PLAYER_UPDATED, regeneration_handler)
