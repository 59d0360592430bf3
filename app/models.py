"""Database models using SQLModel."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlayerStatus(str, Enum):
    """Lifecycle tag, independent of avatar generation."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class GenerationStatus(str, Enum):
    """Avatar generation outcome."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# Attribute name -> JSON key used in snapshots and API payloads
PLAYER_FIELD_ALIASES = {
    "id": "id",
    "name": "name",
    "original_photo_url": "originalPhotoUrl",
    "avatar_url": "avatarUrl",
    "status": "status",
    "generation_status": "generationStatus",
    "regenerate_requested": "regenerateRequested",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}


class Player(SQLModel, table=True):
    """Registered player with its source photo and generated avatar."""

    __tablename__ = "players"

    id: str = Field(primary_key=True, max_length=64, description="Also the storage file stem")
    name: str = Field(max_length=255)
    original_photo_url: Optional[str] = Field(default=None, max_length=1000)
    avatar_url: Optional[str] = Field(
        default=None, max_length=2000, description="NULL until generation completes"
    )
    # Nullable for rows written before these fields existed (see scripts/migrate_player_fields.py)
    status: Optional[str] = Field(default=PlayerStatus.ACTIVE.value, max_length=20, index=True)
    generation_status: Optional[str] = Field(
        default=GenerationStatus.PENDING.value,
        max_length=20,
        description="pending, completed, failed",
    )
    regenerate_requested: Optional[bool] = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> dict:
        """Snapshot with the camelCase keys used by the admin UI."""
        doc = {}
        for attr, key in PLAYER_FIELD_ALIASES.items():
            value = getattr(self, attr)
            if isinstance(value, datetime):
                value = value.isoformat()
            doc[key] = value
        return doc


class SettingsDocument(SQLModel, table=True):
    """Schemaless settings record (one row per settings key)."""

    __tablename__ = "settings_documents"

    key: str = Field(primary_key=True, max_length=100)
    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow)
