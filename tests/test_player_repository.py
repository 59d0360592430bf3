"""Tests for the player and settings repositories (in-memory SQLite)."""

import asyncio

import pytest

from app.events.bus import PLAYER_UPDATED
from app.models import GenerationStatus, Player, PlayerStatus
from app.players.repository import PlayerNotFoundError


class TestPlayerRepository:
    @pytest.mark.asyncio
    async def test_create_defaults(self, players):
        await players.create(Player(id="p1", name="Alice"))

        player = await players.get("p1")
        assert player.status == "active"
        assert player.generation_status == "pending"
        assert player.avatar_url is None
        assert player.regenerate_requested is False

    @pytest.mark.asyncio
    async def test_get_missing(self, players):
        assert await players.get("nope") is None

    @pytest.mark.asyncio
    async def test_list_newest_first_and_filter(self, players):
        await players.create(Player(id="p1", name="Alice"))
        await asyncio.sleep(0.01)
        await players.create(Player(id="p2", name="Bob", status="inactive"))

        assert [p.id for p in await players.list_all()] == ["p2", "p1"]
        assert [p.id for p in await players.list_all(status="active")] == ["p1"]

    @pytest.mark.asyncio
    async def test_update_emits_snapshots(self, players, bus):
        await players.create(Player(id="p1", name="Alice"))

        updated = await players.update(
            "p1", avatar_url="https://a/p1.png", generation_status=GenerationStatus.COMPLETED
        )

        assert updated.generation_status == "completed"
        event = bus._queue.get_nowait()
        assert event.event_type == PLAYER_UPDATED
        assert event.payload["player_id"] == "p1"
        assert event.payload["before"]["generationStatus"] == "pending"
        assert event.payload["before"]["avatarUrl"] is None
        assert event.payload["after"]["generationStatus"] == "completed"
        assert event.payload["after"]["avatarUrl"] == "https://a/p1.png"

    @pytest.mark.asyncio
    async def test_update_enum_stored_as_value(self, players):
        await players.create(Player(id="p1", name="Alice"))

        await players.update("p1", status=PlayerStatus.INACTIVE)

        assert (await players.get("p1")).status == "inactive"

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, players):
        with pytest.raises(PlayerNotFoundError, match="Player document not found: ghost"):
            await players.update("ghost", name="x")

    @pytest.mark.asyncio
    async def test_update_unknown_field(self, players):
        await players.create(Player(id="p1", name="Alice"))
        with pytest.raises(ValueError):
            await players.update("p1", id="other")

    @pytest.mark.asyncio
    async def test_delete(self, players):
        await players.create(Player(id="p1", name="Alice"))

        await players.delete("p1")

        assert await players.get("p1") is None
        with pytest.raises(PlayerNotFoundError):
            await players.delete("p1")

    def test_document_keys(self):
        doc = Player(id="p1", name="Alice").to_document()
        assert set(doc) == {
            "id", "name", "originalPhotoUrl", "avatarUrl", "status",
            "generationStatus", "regenerateRequested", "createdAt", "updatedAt",
        }
        assert isinstance(doc["createdAt"], str)


class TestSettingsRepository:
    @pytest.mark.asyncio
    async def test_missing(self, settings_repo):
        assert await settings_repo.get("avatarGeneration") is None

    @pytest.mark.asyncio
    async def test_set_replaces(self, settings_repo):
        await settings_repo.set("k", {"a": 1, "b": 2})
        await settings_repo.set("k", {"a": 3})

        assert await settings_repo.get("k") == {"a": 3}

    @pytest.mark.asyncio
    async def test_merge(self, settings_repo):
        await settings_repo.merge("k", {"a": 1})
        merged = await settings_repo.merge("k", {"b": 2})

        assert merged == {"a": 1, "b": 2}
        assert await settings_repo.get("k") == {"a": 1, "b": 2}
