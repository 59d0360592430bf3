"""Admin operations on players.

Registration ordering: the photo is stored without announcing it, then the
document is inserted, and only then is the upload announced. A failed insert
removes the photo again, so the pipeline never runs for a player that has no
document and no document exists without its photo.
"""

import logging
from typing import Optional
from uuid import uuid4

from app.models import GenerationStatus, Player, PlayerStatus
from app.players.repository import PlayerNotFoundError, PlayerRepository
from app.players.validator import validate_photo_upload, validate_player_name
from app.storage.media import PlayerMediaStore

logger = logging.getLogger(__name__)

UPLOAD_FAILED_MESSAGE = "Unable to upload player image. Please check your connection and try again."
SAVE_FAILED_MESSAGE = "Unable to save player information. Please try again."


class PlayerServiceError(Exception):
    """Admin operation failed; ``message`` is safe to show to the user."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PlayerService:
    def __init__(self, players: PlayerRepository, media: Optional[PlayerMediaStore]):
        self.players = players
        self.media = media

    def _require_media(self) -> PlayerMediaStore:
        if self.media is None:
            logger.error("Players: blob storage is not configured")
            raise PlayerServiceError(UPLOAD_FAILED_MESSAGE, status_code=503)
        return self.media

    @staticmethod
    def _check_photo(photo_bytes: bytes, content_type: Optional[str]) -> None:
        error = validate_photo_upload(content_type, len(photo_bytes))
        if error:
            raise PlayerServiceError(error)

    async def register_player(self, name: str, photo_bytes: bytes, content_type: str) -> Player:
        """Create a player from a name and a photo.

        Raises:
            PlayerServiceError: on invalid input or a storage/database failure
        """
        error = validate_player_name(name)
        if error:
            raise PlayerServiceError(error)
        self._check_photo(photo_bytes, content_type)
        media = self._require_media()

        player_id = uuid4().hex
        key = await media.upload_photo(player_id, photo_bytes, content_type, announce=False)
        if key is None:
            raise PlayerServiceError(UPLOAD_FAILED_MESSAGE, status_code=502)

        player = Player(
            id=player_id,
            name=name.strip(),
            original_photo_url=media.photo_url(key),
            avatar_url=None,
            status=PlayerStatus.ACTIVE.value,
            generation_status=GenerationStatus.PENDING.value,
            regenerate_requested=False,
        )
        try:
            player = await self.players.create(player)
        except Exception as e:
            logger.error(f"Players: could not save {player_id}: {e}", exc_info=True)
            await media.delete_photos(player_id)
            raise PlayerServiceError(SAVE_FAILED_MESSAGE, status_code=500) from e

        player = await self._announce(media, player, key, content_type)
        logger.info(f"Players: registered {player_id} (generation {player.generation_status})")
        return player

    async def _announce(self, media: PlayerMediaStore, player: Player, key: str, content_type: str) -> Player:
        """Queue avatar generation for a stored photo.

        A notification that cannot be queued leaves nothing to finish the
        generation, so the player is marked failed instead of staying pending.
        """
        if await media.announce(key, content_type):
            return player
        logger.error(f"Players: could not queue avatar generation for {player.id}")
        return await self.players.update(player.id, generation_status=GenerationStatus.FAILED)

    async def get_player(self, player_id: str) -> Player:
        player = await self.players.get(player_id)
        if player is None:
            raise PlayerNotFoundError(player_id)
        return player

    async def list_players(self, status: Optional[str] = None) -> list[Player]:
        if status is not None:
            self._parse_status(status)
        return await self.players.list_all(status=status)

    async def update_player(
        self,
        player_id: str,
        name: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Player:
        """Edit name and/or lifecycle status.

        Raises:
            PlayerNotFoundError: if the player does not exist
            PlayerServiceError: on invalid values
        """
        fields = {}
        if name is not None:
            error = validate_player_name(name)
            if error:
                raise PlayerServiceError(error)
            fields["name"] = name.strip()
        if status is not None:
            fields["status"] = self._parse_status(status)
        if not fields:
            return await self.get_player(player_id)
        return await self.players.update(player_id, **fields)

    async def replace_photo(self, player_id: str, photo_bytes: bytes, content_type: str) -> Player:
        """Store a new source photo and generate a fresh avatar from it."""
        self._check_photo(photo_bytes, content_type)
        await self.get_player(player_id)
        media = self._require_media()

        key = await media.upload_photo(player_id, photo_bytes, content_type, announce=False)
        if key is None:
            raise PlayerServiceError(UPLOAD_FAILED_MESSAGE, status_code=502)

        # A photo stored under another extension would shadow the new one
        await media.delete_photos(player_id, keep=key)

        player = await self.players.update(
            player_id,
            original_photo_url=media.photo_url(key),
            generation_status=GenerationStatus.PENDING,
        )
        return await self._announce(media, player, key, content_type)

    async def deactivate_player(self, player_id: str) -> Player:
        return await self.players.update(player_id, status=PlayerStatus.INACTIVE)

    async def request_regeneration(self, player_id: str) -> Player:
        """Set the regeneration flag; the trigger picks it up from the update."""
        player = await self.players.update(player_id, regenerate_requested=True)
        logger.info(f"Players: regeneration requested for {player_id}")
        return player

    async def delete_player(self, player_id: str) -> int:
        """Delete the document, then the player's blobs (best-effort).

        Returns:
            Number of blobs deleted
        """
        await self.players.delete(player_id)
        if self.media is None:
            logger.warning(f"Players: storage unavailable, media for {player_id} left behind")
            return 0
        return await self.media.delete_player_media(player_id)

    @staticmethod
    def _parse_status(status: str) -> PlayerStatus:
        try:
            return PlayerStatus(status)
        except ValueError:
            raise PlayerServiceError(f"Unknown player status: {status}")


def get_player_service() -> PlayerService:
    from app.players.repository import get_player_repository
    from app.storage.media import StorageUnavailableError, get_media_store

    try:
        media = get_media_store()
    except StorageUnavailableError as e:
        logger.warning(f"Players: {e}")
        media = None
    return PlayerService(get_player_repository(), media)
