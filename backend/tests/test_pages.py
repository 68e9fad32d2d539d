"""Tests for public page serving (GET /p/{slug})."""

from __future__ import annotations

from engine.kernel.errors import TransientStoreError
from engine.kernel.renderer import TERMINAL_MESSAGES


class TestPublicPage:
    async def test_serves_published_template(self, async_client, published):
        """GET /p/{slug} → 200 HTML with cache headers."""
        res = await async_client.get("/p/ana-budi")
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/html")
        assert res.headers["cache-control"].startswith("public")
        assert res.headers["etag"].startswith('"')
        html = res.text
        assert "<title>Ana &amp; Budi</title>" in html
        assert html.index('data-section="opening"') < html.index('data-section="event"')
        assert "The Wedding of" in html

    async def test_serves_by_id(self, async_client, published):
        res = await async_client.get(f"/p/{published.id}")
        assert res.status_code == 200

    async def test_assets_are_proxied(self, async_client, published):
        html = (await async_client.get("/p/ana-budi")).text
        assert "/api/proxy-image?url=https%3A%2F%2Fpub-1e0a9ae6152440268987d00a564a8da5.r2.dev" in html

    async def test_viewport_hint(self, async_client, published):
        res = await async_client.get("/p/ana-budi", params={"vw": 1440, "vh": 900})
        assert '<body class="tm-mode-framed">' in res.text

        res = await async_client.get("/p/ana-budi", params={"vw": 390, "vh": 844})
        assert '<body class="tm-mode-fullscreen">' in res.text

    async def test_invalid_viewport_hint(self, async_client, published):
        res = await async_client.get("/p/ana-budi", params={"vw": 0})
        assert res.status_code == 422

    async def test_hidden_section_not_served(self, async_client, sync, published):
        await sync.upsert_section(published.id, "event", {"is_visible": False})
        html = (await async_client.get("/p/ana-budi")).text
        assert 'data-section="event"' not in html


class TestTerminalPages:
    async def test_unknown_slug(self, async_client):
        """Unknown slug → 404 terminal page, never cached."""
        res = await async_client.get("/p/nobody")
        assert res.status_code == 404
        assert res.headers["cache-control"] == "no-store"
        assert TERMINAL_MESSAGES["not_found"] in res.text
        assert 'data-state="not_found"' in res.text

    async def test_draft_is_not_served(self, async_client, sync, published):
        """A draft template → 404 with no template content."""
        await sync.update_template(published.id, {"status": "draft"})
        res = await async_client.get("/p/ana-budi")
        assert res.status_code == 404
        assert 'data-state="not_published"' in res.text
        assert "The Wedding of" not in res.text
        assert "tm-section" not in res.text

    async def test_storage_unavailable(self, async_client, store, published):
        """Store down after retries → 503 terminal page."""
        store.fail_next("get_template_row_by_slug", *(TransientStoreError("down") for _ in range(3)))
        res = await async_client.get("/p/ana-budi")
        assert res.status_code == 503
        assert 'data-state="unavailable"' in res.text

    async def test_corrupt_stored_template(self, async_client, store, published):
        """A published row that no longer validates → 503 terminal page, not a server error."""
        store.templates[published.id]["global_theme"] = "dark"
        res = await async_client.get("/p/ana-budi")
        assert res.status_code == 503
        assert res.headers["cache-control"] == "no-store"
        assert 'data-state="unavailable"' in res.text
        assert "The Wedding of" not in res.text

    async def test_corrupt_stored_section(self, async_client, store, published):
        [event] = [row for row in store.sections.values() if row["type"] == "event"]
        event["is_visible"] = "sometimes"
        res = await async_client.get("/p/ana-budi")
        assert res.status_code == 503
        assert 'data-state="unavailable"' in res.text
