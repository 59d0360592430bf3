"""Regeneration trigger.

Fires on a PLAYER_UPDATED notification whose ``regenerateRequested`` goes
from falsy to true. It never calls the pipeline: it re-uploads the stored
original photo, and the resulting OBJECT_FINALIZED notification drives the
pipeline like any other upload.

Order matters: the flag is cleared (and status set to pending) before any
blob I/O, so a crash later on cannot leave the flag set.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from app.models import GenerationStatus
from app.players.repository import PlayerRepository
from app.storage.media import PlayerMediaStore
from app.telemetry.metrics import record_regeneration

logger = logging.getLogger(__name__)

REGENERATE_FIELD = "regenerateRequested"


@dataclass
class RegenerationResult:
    success: bool
    player_id: str
    photo_key: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def is_regeneration_edge(before: Optional[dict], after: Optional[dict]) -> bool:
    """True only for a falsy -> true transition of the request flag."""
    was_requested = bool((before or {}).get(REGENERATE_FIELD))
    is_requested = (after or {}).get(REGENERATE_FIELD) is True
    return is_requested and not was_requested


class RegenerationTrigger:
    """Re-submits a player's stored photo when regeneration is requested."""

    def __init__(self, players: PlayerRepository, media: Optional[PlayerMediaStore]):
        self.players = players
        self.media = media

    async def handle_update(
        self,
        player_id: str,
        before: Optional[dict],
        after: Optional[dict],
    ) -> Optional[RegenerationResult]:
        """Process one player update.

        Returns:
            None when the update is not a regeneration request, else the outcome.
            Never raises.
        """
        if not is_regeneration_edge(before, after):
            return None

        logger.info(f"Regeneration requested for player {player_id}")

        # Step 1: durable flag clear before any blob I/O
        try:
            await self.players.update(
                player_id,
                generation_status=GenerationStatus.PENDING,
                regenerate_requested=False,
            )
        except Exception as e:
            logger.error(f"Regeneration: could not reset player {player_id}: {e}")
            record_regeneration("failed")
            return RegenerationResult(success=False, player_id=player_id, error=str(e))

        photo_key = None
        try:
            # Step 2: the stored original
            if self.media is None:
                raise RuntimeError("Blob storage is not configured")
            photo_key = await self.media.find_photo_key(player_id)
            if photo_key is None:
                logger.warning(f"Regeneration: no original photo for player {player_id}")
                await self.players.update(player_id, generation_status=GenerationStatus.FAILED)
                record_regeneration("failed")
                return RegenerationResult(
                    success=False,
                    player_id=player_id,
                    error="Original photo not found",
                )

            # Step 3: download and write back, which re-announces the upload
            photo = await self.media.download(photo_key)
            if photo is None:
                raise RuntimeError(f"Could not download original photo: {photo_key}")

            content_type = await self.media.content_type(photo_key) or "image/jpeg"
            if not await self.media.reupload_photo(photo_key, photo, content_type):
                raise RuntimeError(f"Could not re-upload original photo: {photo_key}")

            logger.info(f"Regeneration: re-submitted {photo_key} for player {player_id}")
            record_regeneration("completed")
            return RegenerationResult(success=True, player_id=player_id, photo_key=photo_key)

        except Exception as e:
            logger.error(f"Regeneration failed for player {player_id}: {e}", exc_info=True)
            try:
                await self.players.update(
                    player_id,
                    generation_status=GenerationStatus.FAILED,
                    regenerate_requested=False,
                )
            except Exception as update_error:
                logger.error(
                    f"Regeneration: could not record failure for player {player_id}: {update_error}"
                )
            record_regeneration("failed")
            return RegenerationResult(
                success=False, player_id=player_id, photo_key=photo_key, error=str(e)
            )


def get_regeneration_trigger() -> RegenerationTrigger:
    from app.players.repository import get_player_repository
    from app.storage.media import StorageUnavailableError, get_media_store

    # Without storage the trigger still clears the flag and records the failure
    try:
        media = get_media_store()
    except StorageUnavailableError as e:
        logger.error(f"Regeneration: {e}")
        media = None
    return RegenerationTrigger(players=get_player_repository(), media=media)
