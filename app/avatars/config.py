"""Avatar Generation Configuration.

Settings for the Gemini image transform, retry policy and output format,
plus the fixed request parameters and fallbacks used by the pipeline.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


# Settings document holding prompt / placeholder / enabled
AVATAR_SETTINGS_KEY = "avatarGeneration"

# Prompt field names, newest schema first
PROMPT_FIELDS = ("avatarPrompt", "geminiAvatarPrompt")
PLACEHOLDER_FIELD = "placeholderAvatarUrl"
ENABLED_FIELD = "enabled"

DEFAULT_AVATAR_PROMPT = (
    "Transform this photo into a cartoon elf character with holiday theme, "
    "maintaining facial features and expression"
)
DEFAULT_PLACEHOLDER_AVATAR_URL = "https://via.placeholder.com/512"

SYSTEM_INSTRUCTION = (
    "You are an illustrator turning portrait photos into stylized avatars. "
    "Preserve the person's likeness: keep face shape, skin tone, hairstyle, "
    "eye color, expression and any distinctive features recognizable. "
    "Return a single square image of the same person and no text."
)

# Fixed sampling parameters
GENERATION_CONFIG = {
    "temperature": 1,
    "topP": 0.95,
    "topK": 40,
    "maxOutputTokens": 8192,
    "responseModalities": ["IMAGE", "TEXT"],
}

HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_NONE"} for category in HARM_CATEGORIES
]


class AvatarSettings(BaseSettings):
    """Avatar pipeline settings (supplements main app Settings)."""

    # ==========================================================================
    # Gemini
    # ==========================================================================

    GEMINI_API_KEY: str = ""
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    AVATAR_GEMINI_MODEL: str = "gemini-2.5-flash-image"
    AVATAR_GEMINI_TIMEOUT_SECONDS: float = 120.0

    # ==========================================================================
    # Retry policy
    # ==========================================================================

    AVATAR_IA_MAX_ATTEMPTS: int = 3

    # ==========================================================================
    # Output
    # ==========================================================================

    AVATAR_OUTPUT_SIZE: int = 512

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_avatar_settings() -> AvatarSettings:
    """Get cached Avatar settings instance."""
    return AvatarSettings()
