"""
Pytest configuration and fixtures for Tamuu backend tests.

Route tests run against a MemoryStore-backed synchronizer injected through
FastAPI dependency overrides, so they need neither Postgres nor R2.
Repository tests that talk to Postgres skip unless DATABASE_URL is set.
"""

from __future__ import annotations

import os

# Set test environment variables before importing config
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("R2_BUCKET", "tamuu-test")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from backend.main import app  # noqa: E402
from backend.services.templates import get_sync  # noqa: E402
from engine.kernel.sync import BatchPolicy, MemoryStore, RetryPolicy, TemplateSynchronizer  # noqa: E402


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def store():
    """Fresh in-memory row store per test."""
    return MemoryStore()


@pytest.fixture
def sync(store):
    """Synchronizer over the in-memory store; retries do not wait."""
    return TemplateSynchronizer(store, RetryPolicy(3, 0.0), BatchPolicy(), sleep=_no_sleep)


@pytest_asyncio.fixture
async def async_client(sync):
    """Async HTTP client against the ASGI app, wired to the test synchronizer."""
    app.dependency_overrides[get_sync] = lambda: sync
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def published(sync):
    """A published template with a cover, an event section and a few elements."""
    t = await sync.create_template("Ana & Budi", slug="ana-budi", event_date="2030-06-01T09:00:00Z")
    await sync.upsert_section(t.id, "opening", {"background_color": "#fdf6ec"})
    await sync.upsert_section(t.id, "event", {"background_color": "#ffffff"})
    await sync.create_element(t.id, "opening", {"type": "text", "content": "The Wedding of"})
    await sync.create_element(
        t.id,
        "opening",
        {"type": "image", "image_url": "https://pub-1e0a9ae6152440268987d00a564a8da5.r2.dev/photos/cover.jpg"},
    )
    await sync.create_element(t.id, "event", {"type": "countdown"})
    return await sync.update_template(t.id, {"status": "published"})
