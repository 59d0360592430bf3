"""Document store access for players and settings.

Every player update emits PLAYER_UPDATED with before/after snapshots, which
is the document update surface the regeneration trigger listens on.
"""

import logging
from enum import Enum
from typing import Any, Optional

from sqlalchemy import select

from app.events.bus import PLAYER_UPDATED, EventBus
from app.models import Player, SettingsDocument, utcnow

logger = logging.getLogger(__name__)

UPDATABLE_PLAYER_FIELDS = {
    "name",
    "original_photo_url",
    "avatar_url",
    "status",
    "generation_status",
    "regenerate_requested",
}


class PlayerNotFoundError(Exception):
    """Player document does not exist."""

    def __init__(self, player_id: str):
        super().__init__(f"Player document not found: {player_id}")
        self.player_id = player_id


class PlayerRepository:
    """Async CRUD over the players table."""

    def __init__(self, session_factory, bus: Optional[EventBus] = None):
        self.session_factory = session_factory
        self.bus = bus

    async def create(self, player: Player) -> Player:
        async with self.session_factory() as session:
            session.add(player)
            await session.commit()
            await session.refresh(player)
        logger.info(f"Players: created {player.id} ({player.name})")
        return player

    async def get(self, player_id: str) -> Optional[Player]:
        async with self.session_factory() as session:
            return await session.get(Player, player_id)

    async def list_all(self, status: Optional[str] = None) -> list[Player]:
        """All players, newest first, optionally filtered by lifecycle status."""
        query = select(Player).order_by(Player.created_at.desc())
        if status:
            query = query.where(Player.status == status)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def update(self, player_id: str, **fields: Any) -> Player:
        """Apply a partial update and announce it.

        Raises:
            PlayerNotFoundError: if the document does not exist
            ValueError: on unknown field names
        """
        unknown = set(fields) - UPDATABLE_PLAYER_FIELDS
        if unknown:
            raise ValueError(f"Unknown player fields: {sorted(unknown)}")

        async with self.session_factory() as session:
            player = await session.get(Player, player_id)
            if player is None:
                raise PlayerNotFoundError(player_id)

            before = player.to_document()
            for name, value in fields.items():
                setattr(player, name, value.value if isinstance(value, Enum) else value)
            player.updated_at = utcnow()
            session.add(player)
            await session.commit()
            await session.refresh(player)
            after = player.to_document()

        if self.bus is not None:
            await self.bus.emit(
                PLAYER_UPDATED,
                {"player_id": player_id, "before": before, "after": after},
            )
        return player

    async def delete(self, player_id: str) -> None:
        """Raises PlayerNotFoundError if the document does not exist."""
        async with self.session_factory() as session:
            player = await session.get(Player, player_id)
            if player is None:
                raise PlayerNotFoundError(player_id)
            await session.delete(player)
            await session.commit()
        logger.info(f"Players: deleted {player_id}")


class SettingsRepository:
    """Keyed JSON documents (the settings collection)."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def get(self, key: str) -> Optional[dict]:
        async with self.session_factory() as session:
            doc = await session.get(SettingsDocument, key)
            return dict(doc.data) if doc is not None else None

    async def set(self, key: str, data: dict) -> dict:
        """Replace the whole document."""
        async with self.session_factory() as session:
            doc = await session.get(SettingsDocument, key)
            if doc is None:
                doc = SettingsDocument(key=key, data=dict(data))
            else:
                doc.data = dict(data)
                doc.updated_at = utcnow()
            session.add(doc)
            await session.commit()
        return dict(data)

    async def merge(self, key: str, fields: dict) -> dict:
        """Update some fields, creating the document when missing."""
        async with self.session_factory() as session:
            doc = await session.get(SettingsDocument, key)
            if doc is None:
                merged = dict(fields)
                doc = SettingsDocument(key=key, data=merged)
            else:
                # Reassign so the JSON column is flagged dirty
                merged = {**doc.data, **fields}
                doc.data = merged
                doc.updated_at = utcnow()
            session.add(doc)
            await session.commit()
        return merged


def get_player_repository() -> PlayerRepository:
    """Repository wired to the app session factory and event bus."""
    from app.database import async_session_maker
    from app.events.bus import get_event_bus

    return PlayerRepository(async_session_maker, bus=get_event_bus())


def get_settings_repository() -> SettingsRepository:
    from app.database import async_session_maker

    return SettingsRepository(async_session_maker)
