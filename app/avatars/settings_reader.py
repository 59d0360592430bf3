"""Reader for the avatar settings document.

The document is re-read on every call (no caching) and its shape varies
across schema versions, so every accessor resolves fields through an
ordered list of names and ends in a hardcoded default.
"""

import logging
from typing import Any, Iterable, Optional

from app.avatars.config import (
    AVATAR_SETTINGS_KEY,
    DEFAULT_AVATAR_PROMPT,
    DEFAULT_PLACEHOLDER_AVATAR_URL,
    ENABLED_FIELD,
    PLACEHOLDER_FIELD,
    PROMPT_FIELDS,
)
from app.players.repository import SettingsRepository

logger = logging.getLogger(__name__)


def resolve_field(data: Optional[dict], names: Iterable[str], default: Any) -> Any:
    """Return the first non-empty value among ``names``, else ``default``."""
    if not data:
        return default
    for name in names:
        value = data.get(name)
        if value not in (None, ""):
            return value
    return default


async def _read_settings(settings: SettingsRepository) -> Optional[dict]:
    try:
        data = await settings.get(AVATAR_SETTINGS_KEY)
    except Exception as e:
        logger.warning(f"Error reading avatar settings, using defaults: {e}")
        return None
    if data is None:
        logger.warning("Avatar settings document not found, using defaults")
    return data


async def get_avatar_prompt(settings: SettingsRepository) -> str:
    """Current generation prompt. Never raises."""
    data = await _read_settings(settings)
    return resolve_field(data, PROMPT_FIELDS, DEFAULT_AVATAR_PROMPT)


async def get_placeholder_avatar_url(settings: SettingsRepository) -> str:
    """Fallback avatar URL for failed generations. Never raises."""
    data = await _read_settings(settings)
    return resolve_field(data, (PLACEHOLDER_FIELD,), DEFAULT_PLACEHOLDER_AVATAR_URL)


def normalize_avatar_settings(data: Optional[dict]) -> dict:
    """Single-schema view of the document for the admin API."""
    enabled = data.get(ENABLED_FIELD) if data else None
    return {
        "avatarPrompt": resolve_field(data, PROMPT_FIELDS, DEFAULT_AVATAR_PROMPT),
        "placeholderAvatarUrl": resolve_field(
            data, (PLACEHOLDER_FIELD,), DEFAULT_PLACEHOLDER_AVATAR_URL
        ),
        "enabled": True if enabled is None else bool(enabled),
    }


async def fetch_avatar_settings(settings: SettingsRepository) -> dict:
    return normalize_avatar_settings(await settings.get(AVATAR_SETTINGS_KEY))


async def update_avatar_settings(settings: SettingsRepository, fields: dict) -> dict:
    """Write admin changes in the newest schema.

    A prompt update also drops the legacy prompt field so readers cannot
    pick up a stale value.
    """
    current = await settings.get(AVATAR_SETTINGS_KEY) or {}
    merged = normalize_avatar_settings(current)
    merged.update({k: v for k, v in fields.items() if v is not None})
    extra = {k: v for k, v in current.items() if k not in PROMPT_FIELDS and k not in merged}
    await settings.set(AVATAR_SETTINGS_KEY, {**extra, **merged})
    return normalize_avatar_settings(merged)
