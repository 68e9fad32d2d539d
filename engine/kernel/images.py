"""
Tamuu Kernel — Image Cache

Process-wide cache of image loads keyed by resolved (proxied) URL, shared
read-only by every render target. Each unique URL is loaded once:

1. first attempt in CORS "anonymous" mode
2. on failure, exactly one retry without it
3. on second failure the entry is FAILED for good (no further retries)

Failures never raise out of the cache; callers read the entry state and
paint a placeholder. No eviction within a process lifetime.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import httpx

from engine.kernel.errors import AssetLoadError
from engine.kernel.urls import DEFAULT_PROXY_RULE, ProxyRule, proxied_url

logger = logging.getLogger(__name__)


class ImageState(str, Enum):
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass
class ImageEntry:
    url: str
    state: ImageState = ImageState.LOADING
    data: bytes | None = None
    content_type: str | None = None
    error: str | None = None
    attempts: int = 0


@dataclass(frozen=True)
class FetchedImage:
    data: bytes
    content_type: str


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


class ImageLoader:
    """
    Abstract image fetcher.
    Implement with httpx for production, or in-memory for tests.
    """

    async def fetch(self, url: str, anonymous: bool) -> FetchedImage:
        """Fetch image bytes. Raise AssetLoadError on failure."""
        raise NotImplementedError


class HttpxImageLoader(ImageLoader):
    """
    Fetch images over HTTP.

    In anonymous (CORS) mode the request carries an Origin header and the
    response must grant it via Access-Control-Allow-Origin; the fallback
    attempt skips that check.
    """

    def __init__(self, base_url: str = "", origin: str | None = None, timeout: float = 15.0) -> None:
        self.base_url = base_url
        self.origin = origin
        self.timeout = timeout

    async def fetch(self, url: str, anonymous: bool) -> FetchedImage:
        headers = {"Origin": self.origin} if anonymous and self.origin else {}
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
                resp = await client.get(url, headers=headers)
                resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise AssetLoadError(url, str(e) or type(e).__name__) from e

        if anonymous and self.origin and "access-control-allow-origin" not in resp.headers:
            raise AssetLoadError(url, "response does not allow cross-origin use")

        content_type = resp.headers.get("content-type", "application/octet-stream")
        if not content_type.startswith(("image/", "video/")):
            raise AssetLoadError(url, f"unexpected content type {content_type}")
        return FetchedImage(resp.content, content_type)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class ImageCache:
    def __init__(self, loader: ImageLoader | None = None, rule: ProxyRule = DEFAULT_PROXY_RULE) -> None:
        self.loader = loader or HttpxImageLoader()
        self.rule = rule
        self._entries: dict[str, ImageEntry] = {}
        self._tasks: dict[str, asyncio.Task[ImageEntry]] = {}
        self._listeners: list[Callable[[ImageEntry], None]] = []

    def resolve(self, url: str) -> str:
        return proxied_url(url, self.rule)

    def get(self, url: str) -> ImageEntry | None:
        return self._entries.get(self.resolve(url))

    def subscribe(self, listener: Callable[[ImageEntry], None]) -> Callable[[], None]:
        """Called whenever an entry settles (LOADED or FAILED)."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def request(self, url: str) -> ImageEntry:
        """
        Return the entry for `url`, starting a background load on first use.

        Without a running event loop the entry stays LOADING until someone
        awaits load().
        """
        key = self.resolve(url)
        entry = self._entries.get(key)
        if entry is not None:
            return entry
        entry = ImageEntry(key)
        self._entries[key] = entry
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return entry
        self._tasks[key] = loop.create_task(self._load(entry))
        return entry

    async def load(self, url: str) -> ImageEntry:
        """Load (or join the in-flight load of) `url` and return the settled entry."""
        entry = self.request(url)
        if entry.state is not ImageState.LOADING:
            return entry
        task = self._tasks.get(entry.url)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._load(entry))
            self._tasks[entry.url] = task
        return await task

    async def _attempt(self, entry: ImageEntry, anonymous: bool) -> FetchedImage | Exception:
        entry.attempts += 1
        try:
            return await self.loader.fetch(entry.url, anonymous=anonymous)
        except Exception as e:
            # Any loader failure counts as a failed attempt; an entry never stays LOADING
            return e

    async def _load(self, entry: ImageEntry) -> ImageEntry:
        try:
            fetched = await self._attempt(entry, anonymous=True)
            if isinstance(fetched, Exception):
                logger.warning("images: CORS load failed for %s, retrying without it: %s", entry.url, fetched)
                fetched = await self._attempt(entry, anonymous=False)
            if isinstance(fetched, Exception):
                logger.warning("images: giving up on %s: %s", entry.url, fetched)
                entry.state = ImageState.FAILED
                entry.error = str(fetched) or type(fetched).__name__
            else:
                entry.state = ImageState.LOADED
                entry.data = fetched.data
                entry.content_type = fetched.content_type
        finally:
            self._tasks.pop(entry.url, None)
        self._settle(entry)
        return entry

    def _settle(self, entry: ImageEntry) -> None:
        for listener in list(self._listeners):
            listener(entry)


# Process-wide cache shared by all render targets
image_cache = ImageCache()
