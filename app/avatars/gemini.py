"""Gemini image transform for avatar generation.

Sends the player's photo plus the configured prompt to Gemini
``generateContent`` and returns the first inline image of the first
candidate.

Usage:
    transformer = get_image_transformer()
    avatar_bytes = await transformer.transform(photo_bytes, prompt)
"""

import base64
import logging
from typing import Optional, Protocol

import httpx

from app.avatars.config import (
    GENERATION_CONFIG,
    SAFETY_SETTINGS,
    SYSTEM_INSTRUCTION,
    get_avatar_settings,
)

logger = logging.getLogger(__name__)


class ImageTransformError(Exception):
    """Image transform call failed or returned no image."""

    pass


class ImageTransformer(Protocol):
    """Anything that turns (photo, prompt) into image bytes."""

    async def transform(self, image_bytes: bytes, prompt: str) -> bytes:
        ...


def detect_mime_type(image_bytes: bytes) -> str:
    """Sniff the MIME type from magic bytes (JPEG when unknown)."""
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def build_request(image_bytes: bytes, prompt: str) -> dict:
    """generateContent payload: photo + prompt, fixed sampling and safety."""
    return {
        "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
        "contents": [
            {
                "role": "user",
                "parts": [
                    {
                        "inline_data": {
                            "mime_type": detect_mime_type(image_bytes),
                            "data": base64.b64encode(image_bytes).decode("utf-8"),
                        }
                    },
                    {"text": prompt},
                ],
            }
        ],
        "generationConfig": dict(GENERATION_CONFIG),
        "safetySettings": list(SAFETY_SETTINGS),
    }


def extract_image(data: dict) -> bytes:
    """Decode the first inline image of the first candidate.

    Raises:
        ImageTransformError: no candidate, no content parts, or no image part
    """
    candidates = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback", {}).get("blockReason")
        raise ImageTransformError(
            f"Gemini returned no candidates{f' (blocked: {feedback})' if feedback else ''}"
        )

    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts:
        reason = candidates[0].get("finishReason", "unknown")
        raise ImageTransformError(f"Gemini candidate has no content parts (finishReason={reason})")

    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            return base64.b64decode(inline["data"])

    raise ImageTransformError("Gemini response contains no image data")


class GeminiImageTransformer:
    """Gemini img2img over the Generative Language REST API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 120.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def transform(self, image_bytes: bytes, prompt: str) -> bytes:
        """Generate the stylized avatar.

        Raises:
            ImageTransformError: on transport errors, HTTP errors or an imageless response
        """
        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json=build_request(image_bytes, prompt),
                )
        except httpx.TimeoutException as e:
            raise ImageTransformError(f"Gemini timeout after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ImageTransformError(f"Gemini request failed: {e}") from e

        if response.status_code != 200:
            raise ImageTransformError(
                f"Gemini API error {response.status_code}: {response.text[:300]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ImageTransformError(f"Gemini returned invalid JSON: {e}") from e

        image = extract_image(data)
        logger.info(f"Gemini generated {len(image)} bytes")
        return image


def get_image_transformer() -> Optional[GeminiImageTransformer]:
    """Configured transformer, or None when GEMINI_API_KEY is missing."""
    settings = get_avatar_settings()
    if not settings.GEMINI_API_KEY:
        logger.warning("Avatar generation requested but GEMINI_API_KEY not configured")
        return None
    return GeminiImageTransformer(
        api_key=settings.GEMINI_API_KEY,
        model=settings.AVATAR_GEMINI_MODEL,
        base_url=settings.GEMINI_BASE_URL,
        timeout=settings.AVATAR_GEMINI_TIMEOUT_SECONDS,
    )
