"""Blob storage for player photos and generated avatars.

Storage: Cloudflare R2 (S3-compatible, aioboto3)
Layout:  player-photos/{playerId}.{ext}, player-avatars/{playerId}.png
"""

from app.storage.config import get_storage_settings, StorageSettings

__all__ = ["get_storage_settings", "StorageSettings"]
