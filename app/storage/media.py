"""Player media store: photos and avatars on top of the R2 client.

Owns the storage path conventions and the upload surface: a photo stored
with ``announce=True`` emits OBJECT_FINALIZED so the avatar pipeline picks
it up, exactly like a bucket object-creation notification would.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from app.events.bus import OBJECT_FINALIZED, EventBus
from app.storage.config import (
    AVATAR_CONTENT_TYPE,
    PLAYER_AVATAR_PREFIX,
    build_player_avatar_key,
    build_player_photo_key,
    build_player_photo_prefix,
    extension_for_content_type,
    get_storage_settings,
)
from app.storage.r2_client import StorageR2Client

logger = logging.getLogger(__name__)


class StorageUnavailableError(Exception):
    """Blob storage is not configured."""

    pass


class PlayerMediaStore:
    """Photo/avatar operations keyed by player ID."""

    def __init__(self, client: StorageR2Client, bus: Optional[EventBus] = None):
        self.client = client
        self.bus = bus

    # ==========================================================================
    # Photos
    # ==========================================================================

    async def upload_photo(
        self,
        player_id: str,
        image_bytes: bytes,
        content_type: str,
        announce: bool = True,
        metadata: Optional[dict[str, str]] = None,
    ) -> Optional[str]:
        """Store a source photo at its canonical path.

        Returns:
            Object key if stored, None otherwise
        """
        key = build_player_photo_key(player_id, extension_for_content_type(content_type))
        if not await self.client.put_object(key, image_bytes, content_type, metadata=metadata):
            return None
        if announce:
            await self.announce(key, content_type)
        return key

    async def reupload_photo(self, key: str, image_bytes: bytes, content_type: str) -> bool:
        """Write a photo back to the same key with a fresh timestamp and announce it."""
        metadata = {"regenerated-at": datetime.now(timezone.utc).isoformat()}
        if not await self.client.put_object(key, image_bytes, content_type, metadata=metadata):
            return False
        return await self.announce(key, content_type)

    async def announce(self, key: str, content_type: str) -> bool:
        """Emit the object-creation notification for a stored object.

        Returns:
            False if the notification could not be queued
        """
        if self.bus is None:
            logger.warning(f"Media: no event bus, {key} not announced")
            return False
        return await self.bus.emit(OBJECT_FINALIZED, {"path": key, "contentType": content_type})

    async def find_photo_key(self, player_id: str) -> Optional[str]:
        """Canonical photo key for a player, whatever extension it was stored with."""
        keys = await self.client.list_objects(build_player_photo_prefix(player_id))
        if not keys:
            return None
        if len(keys) > 1:
            logger.warning(f"Media: {len(keys)} photos for player {player_id}, using {sorted(keys)[0]}")
        return sorted(keys)[0]

    async def download(self, key: str) -> Optional[bytes]:
        return await self.client.get_object(key)

    async def content_type(self, key: str) -> Optional[str]:
        head = await self.client.head_object(key)
        return head.get("content_type") if head else None

    def photo_url(self, key: str) -> str:
        """Reference stored in originalPhotoUrl."""
        return self.client.public_url(key) or f"r2://{self.client.bucket}/{key}"

    # ==========================================================================
    # Avatars
    # ==========================================================================

    async def upload_avatar(self, player_id: str, image_bytes: bytes) -> Optional[str]:
        """Store a normalized avatar and return a URL that resolves without auth.

        Returns:
            Public URL (or long-lived signed URL), None if upload or signing failed
        """
        key = build_player_avatar_key(player_id)
        if not await self.client.put_object(key, image_bytes, AVATAR_CONTENT_TYPE):
            return None

        public = self.client.public_url(key)
        if public:
            return public

        expires = get_storage_settings().STORAGE_SIGNED_URL_EXPIRES_SECONDS
        return await self.client.generate_presigned_url(key, expires_in=expires)

    # ==========================================================================
    # Cleanup
    # ==========================================================================

    async def delete_photos(self, player_id: str, keep: Optional[str] = None) -> int:
        """Delete a player's photos, optionally sparing one key."""
        deleted = 0
        for key in await self.client.list_objects(build_player_photo_prefix(player_id)):
            if key == keep:
                continue
            if await self.client.delete_object(key):
                deleted += 1
        return deleted

    async def delete_player_media(self, player_id: str) -> int:
        """Delete every photo and avatar for a player (best-effort).

        Returns:
            Number of objects deleted
        """
        deleted = 0
        try:
            deleted += await self.delete_photos(player_id)
            for key in await self.client.list_objects(f"{PLAYER_AVATAR_PREFIX}{player_id}."):
                if await self.client.delete_object(key):
                    deleted += 1
        except Exception as e:
            logger.error(f"Media: cleanup failed for player {player_id}: {e}")
        logger.info(f"Media: Deleted {deleted} objects for player {player_id}")
        return deleted


def get_media_store() -> PlayerMediaStore:
    """Media store wired to the global R2 client and event bus.

    Raises:
        StorageUnavailableError: if R2 is disabled or not configured
    """
    from app.events.bus import get_event_bus
    from app.storage.r2_client import get_storage_r2_client

    client = get_storage_r2_client()
    if client is None:
        raise StorageUnavailableError("Blob storage is not configured (STORAGE_R2_ENABLED)")
    return PlayerMediaStore(client, bus=get_event_bus())
