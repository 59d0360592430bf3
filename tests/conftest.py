"""Shared fixtures: in-memory database, in-memory bucket, sample images."""

import io
from typing import Optional

import pytest
import pytest_asyncio
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models  # noqa: F401  registers the tables
from app.events.bus import EventBus
from app.players.repository import PlayerRepository, SettingsRepository
from app.storage.media import PlayerMediaStore


class InMemoryStorageClient:
    """Stands in for StorageR2Client with the same return conventions."""

    def __init__(self, bucket: str = "test-bucket", public_base_url: str = ""):
        self.bucket = bucket
        self.public_base_url = public_base_url
        self.objects: dict[str, dict] = {}
        self.put_calls: list[str] = []
        self.fail_puts = False

    async def put_object(self, key, body, content_type="image/png", metadata=None) -> bool:
        self.put_calls.append(key)
        if self.fail_puts:
            return False
        self.objects[key] = {
            "body": body,
            "content_type": content_type,
            "metadata": dict(metadata or {}),
        }
        return True

    async def get_object(self, key) -> Optional[bytes]:
        obj = self.objects.get(key)
        return obj["body"] if obj else None

    async def head_object(self, key) -> Optional[dict]:
        obj = self.objects.get(key)
        if obj is None:
            return None
        return {
            "content_type": obj["content_type"],
            "content_length": len(obj["body"]),
            "metadata": obj["metadata"],
        }

    async def delete_object(self, key) -> bool:
        self.objects.pop(key, None)
        return True

    async def list_objects(self, prefix) -> list[str]:
        return [key for key in self.objects if key.startswith(prefix)]

    async def generate_presigned_url(self, key, expires_in) -> Optional[str]:
        return f"https://signed.example.com/{key}?expires={expires_in}"

    def public_url(self, key) -> Optional[str]:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url}/{key}"


def make_image_bytes(size=(640, 480), fmt="JPEG", mode="RGB", color=(200, 40, 40)) -> bytes:
    """Solid-color test image in any Pillow format."""
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    img = Image.new(mode, size, color)
    output = io.BytesIO()
    img.save(output, format=fmt)
    return output.getvalue()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def bus():
    return EventBus(max_queue_size=100)


@pytest.fixture
def players(session_factory, bus):
    return PlayerRepository(session_factory, bus=bus)


@pytest.fixture
def settings_repo(session_factory):
    return SettingsRepository(session_factory)


@pytest.fixture
def storage_client():
    return InMemoryStorageClient()


@pytest.fixture
def media(storage_client, bus):
    return PlayerMediaStore(storage_client, bus=bus)


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes()


@pytest.fixture
def png_bytes():
    return make_image_bytes(size=(300, 600), fmt="PNG", mode="RGBA")


@pytest.fixture
def make_image():
    return make_image_bytes
