"""Admin form validation for new players and photo uploads.

Returns a user-facing message, or None when the input is acceptable.
"""

from typing import Optional

from app.config import get_settings

INVALID_TYPE_MESSAGE = "Please select a JPEG, PNG, or WebP image"
TOO_LARGE_MESSAGE = "Image size must be less than 5MB"
EMPTY_PHOTO_MESSAGE = "Please select a player photo"
NAME_REQUIRED_MESSAGE = "Player name is required"


def validate_player_name(name: Optional[str]) -> Optional[str]:
    if name is None or not name.strip():
        return NAME_REQUIRED_MESSAGE
    return None


def validate_photo_upload(content_type: Optional[str], size_bytes: int) -> Optional[str]:
    """Check type and size of an uploaded photo."""
    settings = get_settings()

    if content_type not in settings.PLAYER_PHOTO_ALLOWED_TYPES:
        return INVALID_TYPE_MESSAGE
    if size_bytes <= 0:
        return EMPTY_PHOTO_MESSAGE
    if size_bytes > settings.PLAYER_PHOTO_MAX_BYTES:
        return TOO_LARGE_MESSAGE
    return None
