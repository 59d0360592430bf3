"""Avatar generation pipeline.

Triggered by an OBJECT_FINALIZED notification for a player photo.

Flow:
1. Resolve the player ID from the object key (file name minus extension)
2. Resolve the prompt from the settings document (defaults on any problem)
3. Download the photo
4. Gemini transform, up to 3 attempts with 1s/2s backoff
5. Normalize to a 512x512 PNG
6. Upload to player-avatars/{playerId}.png and obtain a durable URL
7. Set avatarUrl + generationStatus=completed

Any failure in 1, 3-7 lands in one top-level handler that assigns the
placeholder avatar and generationStatus=failed. The invocation itself never
raises, so the notification is never redelivered because of a pipeline error.
Re-running for the same player overwrites the record with the latest outcome.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional

from app.avatars.config import get_avatar_settings
from app.avatars.gemini import ImageTransformer
from app.avatars.processor import normalize_avatar
from app.avatars.retry import with_retry
from app.avatars.settings_reader import get_avatar_prompt, get_placeholder_avatar_url
from app.models import GenerationStatus
from app.players.repository import PlayerRepository, SettingsRepository
from app.storage.config import PLAYER_PHOTO_PREFIX, player_id_from_key
from app.storage.media import PlayerMediaStore
from app.telemetry.metrics import record_generation, record_ia_attempt

logger = logging.getLogger(__name__)


class AvatarPipelineError(Exception):
    """Fatal error for one pipeline invocation."""

    pass


@dataclass
class AvatarResult:
    """Structured outcome of one pipeline invocation."""

    success: bool
    player_id: Optional[str]
    avatar_url: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def should_process(path: Optional[str], content_type: Optional[str]) -> bool:
    """Upload guard: only images created under the photo prefix."""
    if not path or not path.startswith(PLAYER_PHOTO_PREFIX):
        return False
    if not content_type or not content_type.startswith("image/"):
        return False
    return True


class AvatarPipeline:
    """Photo → stylized avatar, recorded on the player document."""

    def __init__(
        self,
        players: PlayerRepository,
        settings: SettingsRepository,
        media: Optional[PlayerMediaStore],
        transformer: Optional[ImageTransformer],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_attempts: Optional[int] = None,
        output_size: Optional[int] = None,
    ):
        avatar_settings = get_avatar_settings()
        self.players = players
        self.settings = settings
        self.media = media
        self.transformer = transformer
        self.sleep = sleep
        self.max_attempts = max_attempts or avatar_settings.AVATAR_IA_MAX_ATTEMPTS
        self.output_size = output_size or avatar_settings.AVATAR_OUTPUT_SIZE

    async def handle_upload(self, path: str, content_type: Optional[str]) -> Optional[AvatarResult]:
        """Entry point for object-creation notifications.

        Returns:
            None when the object is not a player photo, else the pipeline result
        """
        if not should_process(path, content_type):
            logger.debug(f"Skipping {path} ({content_type}): not a player photo")
            return None
        return await self.process(path)

    async def process(self, path: str) -> AvatarResult:
        """Run the pipeline for a stored photo. Never raises."""
        start = time.monotonic()
        player_id: Optional[str] = None

        try:
            player_id = player_id_from_key(path)
            logger.info(f"Starting avatar generation for player: {player_id}")

            prompt = await get_avatar_prompt(self.settings)
            logger.debug(f"Using prompt: {prompt[:80]}")

            if self.media is None:
                raise AvatarPipelineError("Blob storage is not configured")

            photo = await self.media.download(path)
            if photo is None:
                raise AvatarPipelineError(f"Could not download player photo: {path}")
            logger.info(f"Downloaded player photo {path} ({len(photo)} bytes)")

            generated = await self._generate(player_id, photo, prompt)

            avatar = normalize_avatar(generated, self.output_size)
            if avatar is None:
                raise AvatarPipelineError("Generated image could not be decoded")

            # Upload must land before the document points at it
            avatar_url = await self.media.upload_avatar(player_id, avatar)
            if not avatar_url:
                raise AvatarPipelineError(f"Avatar upload failed for player {player_id}")
            logger.info(f"Uploaded avatar for player {player_id}: {avatar_url}")

            await self.players.update(
                player_id,
                avatar_url=avatar_url,
                generation_status=GenerationStatus.COMPLETED,
            )

            elapsed = time.monotonic() - start
            record_generation("completed", elapsed)
            logger.info(f"Avatar generation completed for player {player_id} in {elapsed:.1f}s")
            return AvatarResult(success=True, player_id=player_id, avatar_url=avatar_url)

        except Exception as e:
            logger.error(f"Error generating avatar for {path}: {e}", exc_info=True)
            if player_id is not None:
                await self._record_failure(player_id)
            record_generation("failed", time.monotonic() - start)
            return AvatarResult(success=False, player_id=player_id, error=str(e))

    async def _generate(self, player_id: str, photo: bytes, prompt: str) -> bytes:
        if self.transformer is None:
            raise AvatarPipelineError("Image transformer not configured")

        async def attempt() -> bytes:
            try:
                image = await self.transformer.transform(photo, prompt)
            except Exception:
                record_ia_attempt(False)
                raise
            record_ia_attempt(True)
            return image

        return await with_retry(
            attempt,
            max_attempts=self.max_attempts,
            sleep=self.sleep,
            label=f"Avatar transform for player {player_id}",
        )

    async def _record_failure(self, player_id: str) -> None:
        """Assign the placeholder and mark failed. Logs instead of raising."""
        try:
            placeholder = await get_placeholder_avatar_url(self.settings)
            await self.players.update(
                player_id,
                avatar_url=placeholder,
                generation_status=GenerationStatus.FAILED,
            )
            logger.info(f"Set placeholder avatar for player {player_id}")
        except Exception as update_error:
            logger.error(
                f"Failed to record failed status for player {player_id}: {update_error}"
            )


def get_avatar_pipeline() -> AvatarPipeline:
    """Pipeline wired to the app's repositories, storage and Gemini."""
    from app.avatars.gemini import get_image_transformer
    from app.players.repository import get_player_repository, get_settings_repository
    from app.storage.media import StorageUnavailableError, get_media_store

    # Without storage the run still ends with the placeholder and failed status
    try:
        media = get_media_store()
    except StorageUnavailableError as e:
        logger.error(f"Avatar pipeline: {e}")
        media = None

    return AvatarPipeline(
        players=get_player_repository(),
        settings=get_settings_repository(),
        media=media,
        transformer=get_image_transformer(),
    )
