"""Blob Storage Configuration.

Settings for the S3-compatible bucket (Cloudflare R2) that holds player
photos and generated avatars, plus the key conventions for both.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


# Storage path conventions (must stay bit-exact: the pipeline trigger keys on them)
PLAYER_PHOTO_PREFIX = "player-photos/"
PLAYER_AVATAR_PREFIX = "player-avatars/"
AVATAR_EXTENSION = "png"
AVATAR_CONTENT_TYPE = "image/png"

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


class StorageSettings(BaseSettings):
    """Storage-specific settings (supplements main app Settings)."""

    # ==========================================================================
    # R2 Storage Configuration
    # ==========================================================================

    STORAGE_R2_ENABLED: bool = False
    STORAGE_R2_ENDPOINT_URL: str = ""  # https://<account_id>.r2.cloudflarestorage.com
    STORAGE_R2_ACCESS_KEY_ID: str = ""
    STORAGE_R2_SECRET_ACCESS_KEY: str = ""
    STORAGE_R2_BUCKET: str = "player-media"

    # Public read URL for the bucket (custom domain or r2.dev URL).
    # When empty, avatars get presigned URLs instead.
    STORAGE_PUBLIC_BASE_URL: str = ""

    # SigV4 caps presigned URLs at 7 days
    STORAGE_SIGNED_URL_EXPIRES_SECONDS: int = 7 * 24 * 3600

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_storage_settings() -> StorageSettings:
    """Get cached Storage settings instance."""
    return StorageSettings()


# ==========================================================================
# Key Builders
# ==========================================================================


def build_player_photo_key(player_id: str, ext: str) -> str:
    """Build key for a player's source photo.

    Args:
        player_id: Player document ID
        ext: File extension without dot (jpg, png, webp)

    Returns:
        Key: player-photos/{player_id}.{ext}
    """
    return f"{PLAYER_PHOTO_PREFIX}{player_id}.{ext}"


def build_player_avatar_key(player_id: str) -> str:
    """Build key for a player's generated avatar.

    Returns:
        Key: player-avatars/{player_id}.png
    """
    return f"{PLAYER_AVATAR_PREFIX}{player_id}.{AVATAR_EXTENSION}"


def build_player_photo_prefix(player_id: str) -> str:
    """Prefix matching every photo of one player, whatever its extension."""
    return f"{PLAYER_PHOTO_PREFIX}{player_id}."


def player_id_from_key(key: str) -> str:
    """Derive the player ID from an object key (file name minus extension).

    Raises:
        ValueError: if the file name yields no ID
    """
    file_name = key.rsplit("/", 1)[-1]
    player_id = file_name.split(".", 1)[0]
    if not player_id:
        raise ValueError(f"Cannot derive player ID from object key: {key!r}")
    return player_id


def extension_for_content_type(content_type: Optional[str]) -> str:
    """File extension for an image MIME type (jpg when unknown)."""
    if not content_type:
        return "jpg"
    return CONTENT_TYPE_EXTENSIONS.get(content_type.split(";")[0].strip().lower(), "jpg")
