"""Avatar endpoints.

- POST /avatars/regenerate: callable regeneration ({playerId, originalPhotoUrl})
- POST /hooks/storage/object-finalized: object-creation notifications
  delivered from outside the process (bucket webhooks)
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from app.avatars.pipeline import get_avatar_pipeline, should_process
from app.avatars.processor import get_image_info
from app.config import get_settings
from app.events.bus import OBJECT_FINALIZED, get_event_bus
from app.models import GenerationStatus
from app.players.repository import PlayerNotFoundError, PlayerRepository, get_player_repository
from app.players.validator import TOO_LARGE_MESSAGE, validate_photo_upload
from app.storage.media import PlayerMediaStore, get_media_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["avatars"])

REGENERATE_MODE_FLAG = "flag"
REGENERATE_MODE_DIRECT = "direct"

# Pillow format name -> stored content type
IMAGE_FORMAT_CONTENT_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}


class OriginalPhotoError(Exception):
    """The photo behind originalPhotoUrl cannot be used as a player photo."""

    pass


class RegenerateAvatarRequest(BaseModel):
    playerId: str = ""
    originalPhotoUrl: Optional[str] = None


class ObjectFinalizedNotification(BaseModel):
    path: str
    contentType: Optional[str] = None


def _regenerate_response(success: bool, avatar_url: Optional[str] = None, error: Optional[str] = None) -> dict:
    response = {"success": success}
    if avatar_url:
        response["avatarUrl"] = avatar_url
    if error:
        response["error"] = error
    return response


async def fetch_original_photo(
    url: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> tuple[bytes, str]:
    """Download a photo by URL and check it like an admin upload.

    The content type is taken from the decoded image, not the response headers.

    Returns:
        Tuple of (bytes, content_type)

    Raises:
        httpx.HTTPError: on transport errors or a non-2xx response
        OriginalPhotoError: if the body is too large, not an image, or of a
            type players cannot have
    """
    settings = get_settings()
    max_bytes = settings.PLAYER_PHOTO_MAX_BYTES

    async with httpx.AsyncClient(
        timeout=settings.ORIGINAL_PHOTO_FETCH_TIMEOUT_SECONDS,
        follow_redirects=True,
        transport=transport,
    ) as client:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > max_bytes:
                    raise OriginalPhotoError(TOO_LARGE_MESSAGE)

    photo = bytes(body)
    info = get_image_info(photo)
    if info is None:
        raise OriginalPhotoError("Original photo is not an image")

    content_type = IMAGE_FORMAT_CONTENT_TYPES.get(info["format"], f"image/{str(info['format']).lower()}")
    error = validate_photo_upload(content_type, len(photo))
    if error:
        raise OriginalPhotoError(error)
    return photo, content_type


async def ensure_canonical_photo(
    media: PlayerMediaStore, player_id: str, original_photo_url: Optional[str]
) -> Optional[str]:
    """Canonical photo key, storing it from ``original_photo_url`` when missing."""
    key = await media.find_photo_key(player_id)
    if key is not None:
        return key
    if not original_photo_url:
        return None

    logger.info(f"Regenerate: fetching original photo for player {player_id}")
    photo, content_type = await fetch_original_photo(original_photo_url)
    return await media.upload_photo(player_id, photo, content_type, announce=False)


async def _mark_failed(players: PlayerRepository, player_id: str) -> None:
    """Record a failed generation. Logs instead of raising."""
    try:
        await players.update(player_id, generation_status=GenerationStatus.FAILED)
    except Exception as e:
        logger.error(f"Regenerate: could not record failure for player {player_id}: {e}")


@router.post("/avatars/regenerate")
async def regenerate_avatar(request: RegenerateAvatarRequest):
    """Regenerate one player's avatar.

    In ``flag`` mode the request only sets regenerateRequested; the
    regeneration trigger does the rest. In ``direct`` mode the pipeline runs
    inline and the response carries the new avatar URL.
    """
    player_id = request.playerId.strip()
    if not player_id:
        raise HTTPException(status_code=400, detail="playerId is required")

    players = get_player_repository()
    mode = get_settings().AVATAR_REGENERATE_MODE

    try:
        if mode != REGENERATE_MODE_DIRECT:
            await players.update(player_id, regenerate_requested=True)
            return _regenerate_response(True)

        await players.update(player_id, generation_status=GenerationStatus.PENDING)
    except PlayerNotFoundError:
        raise HTTPException(status_code=404, detail=f"Player {player_id} not found")

    # From here on the record is pending, so every outcome must settle it
    try:
        media = get_media_store()
        key = await ensure_canonical_photo(media, player_id, request.originalPhotoUrl)
    except Exception as e:
        logger.error(f"Regenerate: could not prepare photo for player {player_id}: {e}", exc_info=True)
        await _mark_failed(players, player_id)
        return _regenerate_response(False, error=str(e) or type(e).__name__)

    if key is None:
        await _mark_failed(players, player_id)
        return _regenerate_response(False, error="Original photo not found")

    result = await get_avatar_pipeline().process(key)
    return _regenerate_response(result.success, avatar_url=result.avatar_url, error=result.error)


@router.post("/hooks/storage/object-finalized", status_code=202)
async def object_finalized(notification: ObjectFinalizedNotification):
    """Queue an external upload notification for the avatar pipeline."""
    if not should_process(notification.path, notification.contentType):
        return {"queued": False, "path": notification.path}

    queued = await get_event_bus().emit(
        OBJECT_FINALIZED,
        {"path": notification.path, "contentType": notification.contentType},
    )
    return {"queued": queued, "path": notification.path}
