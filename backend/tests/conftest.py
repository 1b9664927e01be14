"""
Everything Is An Ordeal: Test Configuration (conftest.py)
============================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── png_bytes: factory for real PNG images of any size (Pillow)
    ├── sun_raster_bytes: an image Pillow reads but cannot write
    ├── image_service: ImageService writing into tmp_path
    ├── memory_store: InMemoryOrdealStore
    ├── sql_store: SqlOrdealStore on a throwaway SQLite file (aiosqlite)
    ├── hit_counter / ordeal_service: wired around memory_store
    ├── app: create_app() around memory_store and image_service
    └── test_client: HTTPX AsyncClient talking to `app` through ASGITransport
"""

import os
import struct
import tempfile
from io import BytesIO

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from PIL import Image


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Must run before any eiao import: eiao.config builds its settings on import
_test_root = tempfile.mkdtemp(prefix="eiao_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_root}/default.db"
os.environ["PUBLIC_DIR"] = os.path.join(_test_root, "public")
os.environ["STAGING_DIR"] = os.path.join(_test_root, "incoming")
os.environ["LOG_LEVEL"] = "WARNING"

from eiao.config import settings  # noqa: E402
from eiao.database import Database  # noqa: E402
from eiao.main import create_app  # noqa: E402
from eiao.services.hit_counter import HitCounter  # noqa: E402
from eiao.services.image_service import ImageService  # noqa: E402
from eiao.services.ordeal_service import OrdealService  # noqa: E402
from eiao.services.ordeal_store import InMemoryOrdealStore, SqlOrdealStore  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Images
# ══════════════════════════════════════════════════════════════════════════

def make_image_bytes(width: int = 800, height: int = 600, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    """Encode a solid-colour image of the given size."""
    buffer = BytesIO()
    Image.new(mode, (width, height), color="orange").save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    """
    Factory for real PNG bytes.

    Usage:
        def test_resize(png_bytes):
            content = png_bytes(1200, 300)
    """
    return make_image_bytes


def make_sun_raster(width: int = 2, height: int = 2) -> bytes:
    """24-bit Sun raster: a format Pillow decodes but has no encoder for."""
    row = b"\x00\x80\xff" * width
    if len(row) % 2:
        row += b"\x00"
    header = struct.pack(">8I", 0x59A66A95, width, height, 24, len(row) * height, 1, 0, 0)
    return header + row * height


@pytest.fixture
def sun_raster_bytes():
    """Bytes of a small Sun raster image (readable, not writable by Pillow)."""
    return make_sun_raster()


@pytest.fixture
def image_service(tmp_path):
    """
    ImageService with its uploads and staging directories under tmp_path.

    The directories are created here, as the application lifespan would.
    """
    service = ImageService(
        uploads_dir=tmp_path / "public" / "uploads",
        staging_dir=tmp_path / "incoming",
        max_dimension=500,
    )
    service.ensure_directories()
    return service


# ══════════════════════════════════════════════════════════════════════════
# Stores and services
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def memory_store():
    return InMemoryOrdealStore()


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    """
    SqlOrdealStore on a fresh SQLite database.

    The schema is created here because ASGITransport and direct service
    calls never run the application lifespan.
    """
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'ordeals.db'}")
    await database.create_all()
    store = SqlOrdealStore(database)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def hit_counter(memory_store):
    counter = HitCounter(memory_store)
    yield counter
    await counter.stop()


@pytest.fixture
def ordeal_service(memory_store, image_service, hit_counter):
    return OrdealService(
        store=memory_store,
        images=image_service,
        hit_counter=hit_counter,
        leaderboard_size=10,
    )


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(memory_store, image_service):
    return create_app(settings=settings, store=memory_store, image_service=image_service)


@pytest_asyncio.fixture
async def test_client(app):
    """
    Provides an async HTTP test client for endpoint testing.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/api/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.hit_counter.stop()
