#!/usr/bin/env python3
"""
Seed the avatar generation settings document.

Usage:
  python scripts/create_avatar_settings.py
  python scripts/create_avatar_settings.py --prompt "Turn this photo into ..." --force
"""

import argparse
import asyncio
import logging
import os
import sys

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.avatars.config import (
    AVATAR_SETTINGS_KEY,
    DEFAULT_AVATAR_PROMPT,
    DEFAULT_PLACEHOLDER_AVATAR_URL,
)
from app.database import async_session_maker, close_db, init_db
from app.players.repository import SettingsRepository

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def create_avatar_settings(
    settings: SettingsRepository,
    prompt: str = DEFAULT_AVATAR_PROMPT,
    placeholder: str = DEFAULT_PLACEHOLDER_AVATAR_URL,
    force: bool = False,
) -> bool:
    """Write the settings document.

    Returns:
        True if written, False if it already existed and ``force`` was not set
    """
    existing = await settings.get(AVATAR_SETTINGS_KEY)
    if existing is not None and not force:
        logger.info(f"Settings document '{AVATAR_SETTINGS_KEY}' already exists, use --force to overwrite")
        return False

    await settings.set(
        AVATAR_SETTINGS_KEY,
        {"avatarPrompt": prompt, "placeholderAvatarUrl": placeholder, "enabled": True},
    )
    logger.info(f"Settings document '{AVATAR_SETTINGS_KEY}' written")
    return True


async def main(prompt: str, placeholder: str, force: bool):
    await init_db()
    try:
        await create_avatar_settings(
            SettingsRepository(async_session_maker), prompt, placeholder, force
        )
    finally:
        await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the avatar generation settings")
    parser.add_argument("--prompt", default=DEFAULT_AVATAR_PROMPT, help="Generation prompt")
    parser.add_argument(
        "--placeholder", default=DEFAULT_PLACEHOLDER_AVATAR_URL, help="Fallback avatar URL"
    )
    parser.add_argument("--force", action="store_true", help="Overwrite an existing document")
    args = parser.parse_args()
    asyncio.run(main(args.prompt, args.placeholder, args.force))
