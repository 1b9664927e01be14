"""
Everything Is An Ordeal: HTTP Route Tests
============================================

What:  End-to-end checks through the FastAPI app (ASGITransport, no server).
How:   `test_client` from conftest wraps an app built around an in-memory
       store and a temporary ImageService.

What we test:
    ✅ Literal pages win over same-named ordeals; /static and /uploads serve files
    ✅ Unknown path → create prompt; known path → image + hits + 1
    ✅ Create: 200 {redirect}, 400 without an image or with a non-image
    ✅ API fetch: 404 on a miss; hits shown as stored + 1, stored after drain
    ✅ Delete: 200 plain text, idempotent, image file removed
    ✅ Leaderboard ≤ 10 rows in descending order; homepage total hits
    ✅ Health endpoint and X-Request-ID propagation
    ✅ Building the app creates no directories; startup does
"""

import logging
import re
from unittest.mock import AsyncMock
from urllib.parse import quote

import pytest

from eiao.config import settings
from eiao.exceptions import DatabaseError
from eiao.main import create_app
from eiao.middleware.logging import access_log_level
from eiao.middleware.request_id import RequestIDLogFilter
from eiao.services.image_service import MISSING_IMAGE_MESSAGE, ImageService
from eiao.services.ordeal_store import InMemoryOrdealStore


async def _create(client, path, content, filename="cat.png"):
    return await client.post(
        "/api/ordeal/create",
        data={"path": path},
        files={"image": (filename, content, "image/png")},
    )


class TestCreateApi:

    @pytest.mark.asyncio
    async def test_create_returns_redirect(self, test_client, png_bytes, image_service):
        response = await _create(test_client, "/cats/", png_bytes(900, 600))
        assert response.status_code == 200
        assert response.json() == {"redirect": "/cats"}
        assert len(list(image_service.uploads_dir.iterdir())) == 1

    @pytest.mark.asyncio
    async def test_create_without_image(self, test_client, memory_store):
        response = await test_client.post("/api/ordeal/create", data={"path": "cats"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["message"] == MISSING_IMAGE_MESSAGE
        assert body["details"] == {"field": "image"}
        assert await memory_store.list_all() == []

    @pytest.mark.asyncio
    async def test_create_with_non_image(self, test_client, memory_store, image_service):
        response = await _create(test_client, "cats", b"%PDF-1.4 not a picture", "doc.png")
        assert response.status_code == 400
        assert await memory_store.list_all() == []
        assert list(image_service.uploads_dir.iterdir()) == []
        assert list(image_service.staging_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_redirect_is_url_encoded(self, test_client, png_bytes, memory_store):
        response = await _create(test_client, "a?b#c%", png_bytes(10, 10))
        assert response.status_code == 200
        assert response.json() == {"redirect": "/a%3Fb%23c%25"}
        assert await memory_store.find_by_path("a?b#c%") is not None

        page = await test_client.get(response.json()["redirect"])
        assert "create-ordeal" not in page.text

        record = await memory_store.find_by_path("a?b#c%")
        assert 'src="/uploads/p-a%3Fb%23c%25' in page.text
        image = await test_client.get(f"/uploads/{quote(record.image_name)}")
        assert image.status_code == 200

    @pytest.mark.asyncio
    async def test_create_with_long_non_ascii_key(self, test_client, png_bytes, memory_store, image_service):
        key = "к" * 130
        response = await _create(test_client, key, png_bytes(10, 10))
        assert response.status_code == 200
        record = await memory_store.find_by_path(key)
        assert record is not None
        assert len(record.image_name.encode("utf-8")) <= 255
        assert image_service.image_path(record.image_name).exists()

    @pytest.mark.asyncio
    async def test_create_with_unwritable_format(self, test_client, sun_raster_bytes, memory_store):
        response = await _create(test_client, "sun", sun_raster_bytes, "a.ras")
        assert response.status_code == 200
        record = await memory_store.find_by_path("sun")
        assert record.image_name.endswith(".png")

        image = await test_client.get(f"/uploads/{record.image_name}")
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/png"


class TestFetchApi:

    @pytest.mark.asyncio
    async def test_fetch_missing_is_404(self, test_client):
        response = await test_client.get("/api/ordeal/nothing")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_fetch_counts_the_view(self, test_client, png_bytes, memory_store, app):
        await _create(test_client, "cats", png_bytes(10, 10))

        response = await test_client.get("/api/ordeal/cats")
        assert response.status_code == 200
        body = response.json()
        assert body["path"] == "cats"
        assert body["hits"] == 1
        assert re.fullmatch(r"p-cats\d+\.png", body["imageName"])

        await app.state.hit_counter.drain()
        assert (await memory_store.find_by_path("cats")).hits == 1

        second = await test_client.get("/api/ordeal/cats")
        assert second.json()["hits"] == 2


class TestDeleteApi:

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, test_client, png_bytes, image_service):
        await _create(test_client, "cats", png_bytes(10, 10))

        first = await test_client.delete("/api/ordeal/delete/cats")
        assert first.status_code == 200
        assert first.text == "Ordeal /cats deleted."
        assert list(image_service.uploads_dir.iterdir()) == []

        second = await test_client.delete("/api/ordeal/delete/cats")
        assert second.status_code == 200
        assert second.text == "Ordeal /cats deleted."

        page = await test_client.get("/cats")
        assert "create-ordeal" in page.text

    @pytest.mark.asyncio
    async def test_delete_normalizes_path(self, test_client, memory_store):
        await memory_store.insert("abc", "p-abc.png")
        response = await test_client.delete("/api/ordeal/delete/a/b/c")
        assert response.text == "Ordeal /abc deleted."
        assert await memory_store.find_by_path("abc") is None


class TestPages:

    @pytest.mark.asyncio
    async def test_unknown_path_prompts_to_create(self, test_client):
        response = await test_client.get("/never-seen")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert 'id="create-ordeal"' in response.text
        assert 'value="never-seen"' in response.text

    @pytest.mark.asyncio
    async def test_known_path_shows_image_and_hits(self, test_client, memory_store, app):
        await memory_store.insert("cats", "p-cats123.png")

        response = await test_client.get("/cats")
        assert response.status_code == 200
        assert 'src="/uploads/p-cats123.png"' in response.text
        assert "<strong>1</strong>" in response.text

        await app.state.hit_counter.drain()
        response = await test_client.get("/cats/")
        assert "<strong>2</strong>" in response.text

    @pytest.mark.asyncio
    async def test_literal_routes_win(self, test_client, memory_store):
        await memory_store.insert("leaderboard", "p-lb.png")
        await memory_store.insert("manage", "p-m.png")

        response = await test_client.get("/leaderboard")
        assert "<h1>Leaderboard</h1>" in response.text
        assert "Endured" not in response.text

        response = await test_client.get("/manage")
        assert "<h1>Manage ordeals</h1>" in response.text
        assert "Endured" not in response.text

    @pytest.mark.asyncio
    async def test_homepage_total_hits(self, test_client, memory_store):
        response = await test_client.get("/")
        assert "<strong>0</strong>" in response.text

        await memory_store.insert("a", "p-a.png")
        await memory_store.insert("b", "p-b.png")
        await memory_store.increment_hits("a", 2)
        await memory_store.increment_hits("b", 0)
        response = await test_client.get("/")
        assert "<strong>4</strong>" in response.text

    @pytest.mark.asyncio
    async def test_leaderboard_order_and_size(self, test_client, memory_store):
        for i in range(12):
            await memory_store.insert(f"ordeal{i}", f"p-{i}.png")
            await memory_store.increment_hits(f"ordeal{i}", i * 10 - 1 if i else 0)

        response = await test_client.get("/leaderboard")
        hits = [int(h) for h in re.findall(r"<td>(\d+)</td>\s*</tr>", response.text)]
        assert len(hits) == 10
        assert hits == sorted(hits, reverse=True)
        assert hits[0] == 110

    @pytest.mark.asyncio
    async def test_manage_lists_every_ordeal(self, test_client, memory_store):
        for key in ("one", "two", "three"):
            await memory_store.insert(key, f"p-{key}.png")
        response = await test_client.get("/manage")
        for key in ("one", "two", "three"):
            assert f'data-path="{key}"' in response.text


class TestStaticFiles:

    @pytest.mark.asyncio
    async def test_stylesheet_served(self, test_client):
        response = await test_client.get("/static/css/style.css")
        assert response.status_code == 200
        assert "text/css" in response.headers["content-type"]

    @pytest.mark.asyncio
    async def test_uploaded_image_served(self, test_client, png_bytes):
        created = await _create(test_client, "cats", png_bytes(10, 10))
        assert created.status_code == 200
        page = await test_client.get("/api/ordeal/cats")
        image = await test_client.get(f"/uploads/{page.json()['imageName']}")
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/png"


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["pending_hits"] == 0

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/api/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, test_client):
        response = await test_client.get("/")
        assert response.headers.get("X-Request-ID")


class TestErrorResponses:

    @pytest.mark.asyncio
    async def test_database_failure_is_generic_500(self, test_client, memory_store):
        memory_store.find_by_path = AsyncMock(
            side_effect=DatabaseError(context={"operation": "find_by_path"})
        )
        response = await test_client.get("/api/ordeal/cats", headers={"X-Request-ID": "dbdown01"})
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "server_error"
        assert "find_by_path" not in body["message"]
        assert body["request_id"] == "dbdown01"

    @pytest.mark.asyncio
    async def test_health_reports_unreachable_store(self, test_client, memory_store):
        memory_store.ping = AsyncMock(side_effect=ConnectionError("refused"))
        response = await test_client.get("/api/health")
        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"


class TestLoggingHelpers:

    @pytest.mark.parametrize(
        "path, status, level",
        [
            ("/cats", 200, logging.INFO),
            ("/static/css/style.css", 200, logging.DEBUG),
            ("/uploads/p-cats1.png", 304, logging.DEBUG),
            ("/api/health", 200, logging.DEBUG),
            ("/api/ordeal/create", 400, logging.WARNING),
            ("/api/ordeal/cats", 500, logging.ERROR),
        ],
    )
    def test_access_log_level(self, path, status, level):
        assert access_log_level(path, status) == level

    def test_log_filter_outside_request(self):
        record = logging.LogRecord("eiao", logging.INFO, __file__, 1, "msg", None, None)
        assert RequestIDLogFilter().filter(record) is True
        assert record.request_id == "-"


class TestStartup:

    @pytest.mark.asyncio
    async def test_directories_created_on_startup_only(self, tmp_path):
        images = ImageService(tmp_path / "public" / "uploads", tmp_path / "incoming")
        app = create_app(settings=settings, store=InMemoryOrdealStore(), image_service=images)
        assert not images.uploads_dir.exists()
        assert not images.staging_dir.exists()

        async with app.router.lifespan_context(app):
            assert images.uploads_dir.is_dir()
            assert images.staging_dir.is_dir()
