"""Tests for the event bus and the avatar handlers wired onto it."""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from unittest.mock import AsyncMock, MagicMock, patch

from app.avatars.pipeline import AvatarPipeline
from app.avatars.regeneration import RegenerationTrigger
from app.events.bus import (
    OBJECT_FINALIZED,
    PLAYER_UPDATED,
    Event,
    EventBus,
    run_sweeper,
    sweep_stale_pending,
)
from app.events.handlers import avatar_upload_handler, regeneration_handler, register_handlers
from app.models import Player, utcnow
from app.players.repository import PlayerRepository, SettingsRepository
from app.storage.media import PlayerMediaStore


class TestEventBus:
    @pytest.mark.asyncio
    async def test_dispatch_in_subscription_order(self):
        bus = EventBus()
        order = []

        async def first(event):
            order.append("first")

        async def second(event):
            order.append("second")

        bus.subscribe(OBJECT_FINALIZED, first)
        bus.subscribe(OBJECT_FINALIZED, second)
        await bus.emit(OBJECT_FINALIZED, {"path": "x"})
        await bus.drain()

        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_subscribe_is_idempotent(self):
        bus = EventBus()
        calls = []

        async def handler(event):
            calls.append(event)

        bus.subscribe(PLAYER_UPDATED, handler)
        bus.subscribe(PLAYER_UPDATED, handler)
        await bus.emit(PLAYER_UPDATED, {"player_id": "p1"})
        await bus.drain()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        calls = []

        async def failing(event):
            raise RuntimeError("boom")

        async def ok(event):
            calls.append(event)

        bus.subscribe(OBJECT_FINALIZED, failing)
        bus.subscribe(OBJECT_FINALIZED, ok)

        await bus.emit(OBJECT_FINALIZED, {"path": "x"})
        await bus.drain()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_queue_full_drops(self):
        bus = EventBus(max_queue_size=1)

        assert await bus.emit(OBJECT_FINALIZED, {"path": "a"}) is True
        assert await bus.emit(OBJECT_FINALIZED, {"path": "b"}) is False

    @pytest.mark.asyncio
    async def test_background_consumer(self):
        bus = EventBus(stop_timeout=1.0)
        received = asyncio.Event()

        async def handler(event):
            received.set()

        bus.subscribe(OBJECT_FINALIZED, handler)
        await bus.start()
        assert bus.is_running
        await bus.emit(OBJECT_FINALIZED, {"path": "x"})
        await asyncio.wait_for(received.wait(), timeout=1.0)
        await bus.stop()

        assert not bus.is_running

    @pytest.mark.asyncio
    async def test_stop_processes_queued_events(self):
        bus = EventBus(stop_timeout=1.0)
        paths = []

        async def handler(event):
            paths.append(event.payload["path"])

        bus.subscribe(OBJECT_FINALIZED, handler)
        await bus.start()
        await bus.emit(OBJECT_FINALIZED, {"path": "a"})
        await bus.emit(OBJECT_FINALIZED, {"path": "b"})
        await bus.stop()

        assert sorted(paths) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_slow_event_does_not_block_later_ones(self):
        bus = EventBus(stop_timeout=1.0)
        release = asyncio.Event()
        done = []

        async def handler(event):
            if event.payload["path"] == "slow":
                await release.wait()
            done.append(event.payload["path"])

        bus.subscribe(OBJECT_FINALIZED, handler)
        await bus.start()
        await bus.emit(OBJECT_FINALIZED, {"path": "slow"})
        await bus.emit(OBJECT_FINALIZED, {"path": "fast"})

        for _ in range(100):
            if done:
                break
            await asyncio.sleep(0.01)

        assert done == ["fast"]
        assert bus.inflight_count == 1

        release.set()
        await bus.stop()
        assert done == ["fast", "slow"]
        assert bus.inflight_count == 0

    @pytest.mark.asyncio
    async def test_concurrency_limit(self):
        bus = EventBus(max_concurrency=1)
        running = 0
        peak = 0

        async def handler(event):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0)
            running -= 1

        bus.subscribe(OBJECT_FINALIZED, handler)
        for path in ("a", "b", "c"):
            await bus.emit(OBJECT_FINALIZED, {"path": path})
        await bus.drain()

        assert peak == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_stuck_events_after_timeout(self):
        bus = EventBus(stop_timeout=0.1)
        started = asyncio.Event()

        async def handler(event):
            started.set()
            await asyncio.Event().wait()

        bus.subscribe(OBJECT_FINALIZED, handler)
        await bus.start()
        await bus.emit(OBJECT_FINALIZED, {"path": "stuck"})
        await asyncio.wait_for(started.wait(), timeout=1.0)

        await bus.stop()
        await asyncio.sleep(0.01)

        assert not bus.is_running
        assert bus.inflight_count == 0

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            EventBus(max_concurrency=0)


class TestHandlers:
    @pytest.mark.asyncio
    async def test_upload_handler_skips_non_photos(self):
        with patch("app.avatars.pipeline.get_avatar_pipeline") as factory:
            await avatar_upload_handler(Event(OBJECT_FINALIZED, {"path": "other/a.jpg", "contentType": "image/jpeg"}))
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_handler_runs_pipeline(self):
        pipeline = MagicMock()
        pipeline.handle_upload = AsyncMock(return_value=None)
        with patch("app.avatars.pipeline.get_avatar_pipeline", return_value=pipeline):
            await avatar_upload_handler(
                Event(OBJECT_FINALIZED, {"path": "player-photos/p1.jpg", "contentType": "image/jpeg"})
            )
        pipeline.handle_upload.assert_awaited_once_with("player-photos/p1.jpg", "image/jpeg")

    @pytest.mark.asyncio
    async def test_regeneration_handler_ignores_other_updates(self):
        with patch("app.avatars.regeneration.get_regeneration_trigger") as factory:
            await regeneration_handler(
                Event(PLAYER_UPDATED, {"player_id": "p1", "before": {"name": "a"}, "after": {"name": "b"}})
            )
        factory.assert_not_called()


class TestEndToEnd:
    """Upload → pipeline, and flag → trigger → upload → pipeline, through the bus."""

    @pytest.fixture
    def wired(self, players, settings_repo, media, bus, make_image):
        transformer = MagicMock()
        transformer.transform = AsyncMock(return_value=make_image(size=(800, 800), fmt="PNG"))
        pipeline = AvatarPipeline(
            players, settings_repo, media, transformer, sleep=AsyncMock(), max_attempts=3, output_size=512
        )
        trigger = RegenerationTrigger(players, media)
        register_handlers(bus)
        with patch("app.avatars.pipeline.get_avatar_pipeline", return_value=pipeline), patch(
            "app.avatars.regeneration.get_regeneration_trigger", return_value=trigger
        ):
            yield transformer

    @pytest.mark.asyncio
    async def test_upload_generates_avatar(self, wired, players, media, bus, jpeg_bytes):
        await players.create(Player(id="p1", name="Alice"))
        await media.upload_photo("p1", jpeg_bytes, "image/jpeg")

        await bus.drain()

        player = await players.get("p1")
        assert player.generation_status == "completed"
        assert "player-avatars/p1.png" in player.avatar_url

    @pytest.mark.asyncio
    async def test_regeneration_flag_reruns_pipeline(self, wired, players, media, bus, jpeg_bytes):
        await players.create(Player(id="p1", name="Alice"))
        await media.upload_photo("p1", jpeg_bytes, "image/jpeg")
        await bus.drain()
        assert wired.transform.await_count == 1

        await players.update("p1", regenerate_requested=True)
        await bus.drain()

        assert wired.transform.await_count == 2
        player = await players.get("p1")
        assert player.generation_status == "completed"
        assert player.regenerate_requested is False


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database: concurrent pipeline runs need separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'players.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


class TestConcurrentPipelines:
    @pytest.mark.asyncio
    async def test_healthy_upload_finishes_while_other_backs_off(
        self, file_session_factory, storage_client, make_image
    ):
        bus = EventBus(stop_timeout=5.0)
        players = PlayerRepository(file_session_factory, bus=bus)
        media = PlayerMediaStore(storage_client, bus=bus)
        flaky_photo = make_image(color=(10, 10, 10))
        healthy_photo = make_image(color=(240, 240, 240))

        backing_off = asyncio.Event()
        release = asyncio.Event()

        async def gated_sleep(delay):
            backing_off.set()
            await release.wait()

        async def transform(photo, prompt):
            if photo == flaky_photo:
                raise RuntimeError("model overloaded")
            return make_image(size=(800, 800), fmt="PNG")

        transformer = MagicMock()
        transformer.transform = AsyncMock(side_effect=transform)
        pipeline = AvatarPipeline(
            players,
            SettingsRepository(file_session_factory),
            media,
            transformer,
            sleep=gated_sleep,
            max_attempts=3,
            output_size=64,
        )
        register_handlers(bus)

        await players.create(Player(id="p1", name="Flaky"))
        await players.create(Player(id="p2", name="Healthy"))

        with patch("app.avatars.pipeline.get_avatar_pipeline", return_value=pipeline):
            await bus.start()
            await media.upload_photo("p1", flaky_photo, "image/jpeg")
            await asyncio.wait_for(backing_off.wait(), timeout=2.0)
            await media.upload_photo("p2", healthy_photo, "image/jpeg")

            for _ in range(200):
                if (await players.get("p2")).generation_status == "completed":
                    break
                await asyncio.sleep(0.01)

            assert (await players.get("p2")).generation_status == "completed"
            assert (await players.get("p1")).generation_status == "pending"

            release.set()
            await bus.stop()

        assert (await players.get("p1")).generation_status == "failed"


class TestSweeper:
    async def _create(self, players, player_id, status, age_seconds):
        stamp = utcnow() - timedelta(seconds=age_seconds)
        await players.create(
            Player(id=player_id, name=player_id, generation_status=status, created_at=stamp, updated_at=stamp)
        )

    @pytest.mark.asyncio
    async def test_finds_only_stale_pending(self, session_factory, players):
        await self._create(players, "stale", "pending", 3600)
        await self._create(players, "fresh", "pending", 0)
        await self._create(players, "done", "completed", 3600)

        assert await sweep_stale_pending(session_factory, older_than_seconds=600) == ["stale"]

    @pytest.mark.asyncio
    async def test_reannounces_stored_photo(self, session_factory, players, media, storage_client, bus, png_bytes):
        await self._create(players, "stale", "pending", 3600)
        await self._create(players, "nophoto", "pending", 3600)
        await storage_client.put_object("player-photos/stale.png", png_bytes, "image/png")

        emitted = await run_sweeper(bus, session_factory, media, older_than_seconds=600)

        assert emitted == 1
        event = bus._queue.get_nowait()
        assert event.event_type == OBJECT_FINALIZED
        assert event.payload["path"] == "player-photos/stale.png"
        assert event.payload["contentType"] == "image/png"

    @pytest.mark.asyncio
    async def test_dropped_registration_recovered_end_to_end(
        self, session_factory, players, settings_repo, media, storage_client, bus, jpeg_bytes, make_image
    ):
        transformer = MagicMock()
        transformer.transform = AsyncMock(return_value=make_image(size=(800, 800), fmt="PNG"))
        pipeline = AvatarPipeline(
            players, settings_repo, media, transformer, sleep=AsyncMock(), max_attempts=3, output_size=64
        )
        register_handlers(bus)

        # Photo stored, notification lost on restart
        await self._create(players, "p1", "pending", 3600)
        await storage_client.put_object("player-photos/p1.jpg", jpeg_bytes, "image/jpeg")

        with patch("app.avatars.pipeline.get_avatar_pipeline", return_value=pipeline):
            assert await run_sweeper(bus, session_factory, media, older_than_seconds=600) == 1
            await bus.drain()

        assert (await players.get("p1")).generation_status == "completed"

    @pytest.mark.asyncio
    async def test_sweeper_errors_are_contained(self, bus, media):
        failing_factory = MagicMock(side_effect=RuntimeError("db down"))

        assert await run_sweeper(bus, failing_factory, media, older_than_seconds=600) == 0

    @pytest.mark.asyncio
    async def test_scheduled_job_skips_without_storage(self):
        from app.scheduler import sweep_pending_avatars
        from app.storage.media import StorageUnavailableError

        with patch(
            "app.storage.media.get_media_store",
            side_effect=StorageUnavailableError("not configured"),
        ):
            assert await sweep_pending_avatars() == 0
