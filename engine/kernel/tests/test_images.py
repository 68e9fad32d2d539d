"""
Image cache tests.

Covers:
  - one load per resolved URL, shared by concurrent requests
  - CORS failure falls back to exactly one plain retry
  - FAILED is terminal; later requests do not refetch
  - restricted URLs are keyed by their proxied form
  - listeners fire when an entry settles
  - any loader exception, malformed URLs included, ends in FAILED
"""

import asyncio
from collections import Counter

from engine.kernel.errors import AssetLoadError
from engine.kernel.images import FetchedImage, HttpxImageLoader, ImageCache, ImageLoader, ImageState

PNG = b"\x89PNG\r\n"


class FakeLoader(ImageLoader):
    """In-memory loader. `cors_blocked` URLs fail anonymous fetches; `broken` URLs always fail."""

    def __init__(self, cors_blocked=(), broken=(), delay=0.0):
        self.cors_blocked = set(cors_blocked)
        self.broken = set(broken)
        self.delay = delay
        self.calls: list[tuple[str, bool]] = []

    async def fetch(self, url, anonymous):
        self.calls.append((url, anonymous))
        if self.delay:
            await asyncio.sleep(self.delay)
        if url in self.broken:
            raise AssetLoadError(url, "404")
        if anonymous and url in self.cors_blocked:
            raise AssetLoadError(url, "no CORS header")
        return FetchedImage(PNG, "image/png")


class TestImageCache:
    async def test_loads_once(self):
        loader = FakeLoader(delay=0.01)
        cache = ImageCache(loader)
        entries = await asyncio.gather(*(cache.load("https://a.example/x.png") for _ in range(5)))
        assert all(e is entries[0] for e in entries)
        assert entries[0].state is ImageState.LOADED
        assert entries[0].data == PNG
        assert loader.calls == [("https://a.example/x.png", True)]

        await cache.load("https://a.example/x.png")
        assert len(loader.calls) == 1

    async def test_cors_failure_retries_without_it(self):
        loader = FakeLoader(cors_blocked={"https://a.example/x.png"})
        cache = ImageCache(loader)
        entry = await cache.load("https://a.example/x.png")
        assert entry.state is ImageState.LOADED
        assert entry.attempts == 2
        assert loader.calls == [("https://a.example/x.png", True), ("https://a.example/x.png", False)]

    async def test_failure_is_terminal(self):
        loader = FakeLoader(broken={"https://a.example/x.png"})
        cache = ImageCache(loader)
        entry = await cache.load("https://a.example/x.png")
        assert entry.state is ImageState.FAILED
        assert entry.attempts == 2
        assert "404" in entry.error

        again = await cache.load("https://a.example/x.png")
        assert again is entry
        assert cache.request("https://a.example/x.png").state is ImageState.FAILED
        assert len(loader.calls) == 2

    async def test_restricted_urls_keyed_by_proxy_form(self):
        loader = FakeLoader()
        cache = ImageCache(loader)
        raw = "https://pub-1e0a9ae6152440268987d00a564a8da5.r2.dev/a.png"
        entry = await cache.load(raw)
        assert entry.url.startswith("/api/proxy-image?url=")
        assert cache.get(raw) is entry
        assert cache.get(entry.url) is entry
        assert Counter(url for url, _ in loader.calls) == {entry.url: 1}

    async def test_listeners_fire_on_settle(self):
        cache = ImageCache(FakeLoader(broken={"https://a.example/bad.png"}))
        settled = []
        unsubscribe = cache.subscribe(lambda e: settled.append((e.url, e.state)))
        await cache.load("https://a.example/ok.png")
        await cache.load("https://a.example/bad.png")
        unsubscribe()
        await cache.load("https://a.example/other.png")
        assert settled == [
            ("https://a.example/ok.png", ImageState.LOADED),
            ("https://a.example/bad.png", ImageState.FAILED),
        ]

    def test_request_without_loop_stays_loading(self):
        loader = FakeLoader()
        cache = ImageCache(loader)
        assert cache.request("https://a.example/x.png").state is ImageState.LOADING
        assert loader.calls == []


class ExplodingLoader(ImageLoader):
    """Raises something other than AssetLoadError, as a buggy or third-party loader might."""

    def __init__(self):
        self.calls = 0

    async def fetch(self, url, anonymous):
        self.calls += 1
        raise ValueError("decoder blew up")


class TestUnexpectedLoaderErrors:
    async def test_unexpected_error_marks_failed(self):
        loader = ExplodingLoader()
        cache = ImageCache(loader)
        settled = []
        cache.subscribe(settled.append)

        entry = await cache.load("https://a.example/x.png")
        assert entry.state is ImageState.FAILED
        assert entry.attempts == 2
        assert "decoder blew up" in entry.error
        assert settled == [entry]
        assert cache._tasks == {}

        await cache.load("https://a.example/x.png")
        assert loader.calls == 2

    async def test_background_request_settles(self):
        cache = ImageCache(ExplodingLoader())
        entry = cache.request("https://a.example/y.png")
        await asyncio.sleep(0.01)
        assert entry.state is ImageState.FAILED

    async def test_malformed_url_fails_over_http(self):
        cache = ImageCache(HttpxImageLoader())
        entry = await cache.load("http://[::1/x.png")
        assert entry.state is ImageState.FAILED
        assert entry.attempts == 2
