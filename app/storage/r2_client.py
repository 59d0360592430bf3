"""Cloudflare R2 Client for Player Media.

Provides async S3-compatible operations for storing and retrieving
player photos and generated avatars.

Usage:
    client = get_storage_r2_client()
    if client:
        await client.put_object("player-avatars/p1.png", data, "image/png")
        data = await client.get_object("player-photos/p1.jpg")
"""

import logging
from typing import Optional

from app.storage.config import get_storage_settings

logger = logging.getLogger(__name__)
storage_settings = get_storage_settings()


class StorageR2Client:
    """Async Cloudflare R2 client for player media.

    S3-compatible API optimized for image storage and retrieval.
    """

    def __init__(
        self,
        endpoint_url: str,
        access_key_id: str,
        secret_access_key: str,
        bucket: str,
    ):
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.bucket = bucket
        self._session = None

    async def _get_client(self):
        """Get or create aioboto3 S3 client."""
        if self._session is None:
            import aioboto3

            self._session = aioboto3.Session()
        return self._session.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    # ==========================================================================
    # Low-level operations
    # ==========================================================================

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str = "image/png",
        metadata: Optional[dict[str, str]] = None,
    ) -> bool:
        """Upload binary object to R2.

        Args:
            key: Object key
            body: Binary content to upload
            content_type: MIME type (default: image/png)
            metadata: Optional user metadata (x-amz-meta-*)

        Returns:
            True if successful, False otherwise
        """
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": body,
            "ContentType": content_type,
        }
        if metadata:
            params["Metadata"] = metadata

        try:
            async with await self._get_client() as client:
                await client.put_object(**params)
                logger.debug(f"StorageR2: Uploaded {key} ({len(body)} bytes)")
                return True
        except Exception as e:
            logger.error(f"StorageR2: Failed to upload {key}: {e}")
            return False

    async def get_object(self, key: str) -> Optional[bytes]:
        """Download binary object from R2.

        Args:
            key: Object key

        Returns:
            Binary content or None if not found/error
        """
        try:
            async with await self._get_client() as client:
                response = await client.get_object(
                    Bucket=self.bucket,
                    Key=key,
                )
                body = await response["Body"].read()
                logger.debug(f"StorageR2: Downloaded {key} ({len(body)} bytes)")
                return body
        except Exception as e:
            error_str = str(e).lower()
            if "nosuchkey" in error_str or "not found" in error_str or "404" in error_str:
                logger.warning(f"StorageR2: Object not found: {key}")
            else:
                logger.error(f"StorageR2: Failed to download {key}: {e}")
            return None

    async def head_object(self, key: str) -> Optional[dict]:
        """Fetch object headers (content type, metadata).

        Returns:
            Dict with content_type, content_length and metadata, or None if missing
        """
        try:
            async with await self._get_client() as client:
                response = await client.head_object(
                    Bucket=self.bucket,
                    Key=key,
                )
                return {
                    "content_type": response.get("ContentType"),
                    "content_length": response.get("ContentLength"),
                    "metadata": response.get("Metadata", {}),
                }
        except Exception:
            return None

    async def delete_object(self, key: str) -> bool:
        """Delete object from R2.

        Returns:
            True if successful, False otherwise
        """
        try:
            async with await self._get_client() as client:
                await client.delete_object(
                    Bucket=self.bucket,
                    Key=key,
                )
                logger.debug(f"StorageR2: Deleted {key}")
                return True
        except Exception as e:
            logger.error(f"StorageR2: Failed to delete {key}: {e}")
            return False

    async def list_objects(self, prefix: str) -> list[str]:
        """List objects with given prefix.

        Args:
            prefix: Key prefix (e.g., "player-photos/abc123.")

        Returns:
            List of object keys
        """
        try:
            async with await self._get_client() as client:
                response = await client.list_objects_v2(
                    Bucket=self.bucket,
                    Prefix=prefix,
                )
                contents = response.get("Contents", [])
                return [obj["Key"] for obj in contents]
        except Exception as e:
            logger.error(f"StorageR2: Failed to list {prefix}: {e}")
            return []

    async def generate_presigned_url(self, key: str, expires_in: int) -> Optional[str]:
        """Build a signed GET URL for an object.

        Returns:
            URL string or None on error
        """
        try:
            async with await self._get_client() as client:
                return await client.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self.bucket, "Key": key},
                    ExpiresIn=expires_in,
                )
        except Exception as e:
            logger.error(f"StorageR2: Failed to sign URL for {key}: {e}")
            return None

    def public_url(self, key: str) -> Optional[str]:
        """Public URL for a key, if the bucket is exposed through a base URL."""
        base_url = storage_settings.STORAGE_PUBLIC_BASE_URL.rstrip("/")
        if not base_url:
            return None
        return f"{base_url}/{key}"

    async def close(self) -> None:
        """Close the client session."""
        self._session = None
        logger.debug("StorageR2: Client closed")


# ==========================================================================
# Global client instance
# ==========================================================================

_storage_r2_client: Optional[StorageR2Client] = None


def get_storage_r2_client() -> Optional[StorageR2Client]:
    """Get Storage R2 client if enabled and configured.

    Returns:
        StorageR2Client instance or None if disabled/not configured
    """
    global _storage_r2_client

    if not storage_settings.STORAGE_R2_ENABLED:
        return None

    if not storage_settings.STORAGE_R2_ENDPOINT_URL:
        logger.warning("Storage R2 enabled but STORAGE_R2_ENDPOINT_URL not set")
        return None

    if _storage_r2_client is None:
        _storage_r2_client = StorageR2Client(
            endpoint_url=storage_settings.STORAGE_R2_ENDPOINT_URL,
            access_key_id=storage_settings.STORAGE_R2_ACCESS_KEY_ID,
            secret_access_key=storage_settings.STORAGE_R2_SECRET_ACCESS_KEY,
            bucket=storage_settings.STORAGE_R2_BUCKET,
        )
        logger.info(f"StorageR2: Client initialized (bucket={storage_settings.STORAGE_R2_BUCKET})")

    return _storage_r2_client
