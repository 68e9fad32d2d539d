"""Same-origin proxy for images on restricted storage domains."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from backend.config import settings
from engine.kernel.errors import AssetLoadError
from engine.kernel.urls import ProxyRule, validate_proxy_target

logger = logging.getLogger(__name__)

CACHE_MAX_AGE = 86400
CACHE_CONTROL = f"public, max-age={CACHE_MAX_AGE}, stale-while-revalidate={CACHE_MAX_AGE * 2}"


@dataclass(frozen=True)
class ProxiedImage:
    data: bytes
    content_type: str


class UpstreamError(AssetLoadError):
    """The upstream host answered with a non-success status."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"upstream returned {status_code}")
        self.status_code = status_code


class ImageProxyService:
    """Fetches whitelisted images server-side so canvases can draw them without CORS taint."""

    def __init__(self, rule: ProxyRule | None = None, timeout: float = 15.0) -> None:
        self.rule = rule or ProxyRule(domains=settings.PROXY_DOMAINS, path=settings.PROXY_PATH)
        self.timeout = timeout

    async def fetch(self, url: str | None) -> ProxiedImage:
        """
        Fetch an image through the proxy.

        Raises:
            ValidationFailure: invalid_url or domain_not_allowed
            UpstreamError: upstream answered with an error status
            AssetLoadError: network failure
        """
        target = validate_proxy_target(url, self.rule)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                resp = await client.get(target, headers={"User-Agent": "Tamuu Image Proxy"})
        except httpx.HTTPError as e:
            logger.warning("image_proxy: fetch failed for %s: %s", target, e)
            raise AssetLoadError(target, str(e) or type(e).__name__) from e

        if resp.status_code != 200:
            logger.warning("image_proxy: upstream %d for %s", resp.status_code, target)
            raise UpstreamError(target, resp.status_code)
        return ProxiedImage(resp.content, resp.headers.get("content-type", "image/jpeg"))


# Singleton instance
image_proxy = ImageProxyService()
