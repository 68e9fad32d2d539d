"""
Tests for asset upload and the image proxy.

Covers:
  - upload validation (type, empty, size) before anything is stored
  - upload key layout and cache headers passed to R2
  - transient R2 errors are retried, then surface as 503
  - proxy target validation (400 / 403), pass-through of upstream statuses
  - proxied responses carry long-lived cache headers and CORS
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError

from backend.services import r2
from backend.services.image_proxy import CACHE_CONTROL
from engine.kernel.errors import ValidationFailure

R2_IMAGE = "https://pub-1e0a9ae6152440268987d00a564a8da5.r2.dev/photos/2026/01/a.jpg"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def fake_s3_session(s3):
    """aioboto3-like session whose client() yields the given mock."""
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=s3)
    ctx.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.client.return_value = ctx
    return session


# ============================================================================
# Upload
# ============================================================================


class TestAssetKey:
    def test_layout(self):
        key, stored = r2.asset_key("Foto Kita.JPG", "image/jpeg", now=datetime(2026, 3, 9, tzinfo=UTC))
        assert re.fullmatch(r"photos/2026/03/\d+-[a-z0-9]{6}\.jpg", key)
        assert key.endswith(stored)

    def test_missing_or_odd_extension(self):
        key, _ = r2.asset_key("blob", "video/mp4")
        assert key.endswith(".mp4")
        key, _ = r2.asset_key("x.tar.gz/../../etc", "image/png")
        assert key.endswith(".png")


class TestValidateUpload:
    @pytest.mark.parametrize(
        "content_type,size,reason",
        [
            ("application/pdf", 10, "content_type_not_allowed"),
            ("image/png", 0, "empty_file"),
            ("image/png", 10 * 1024 * 1024 + 1, "file_too_large"),
            ("video/mp4", 50 * 1024 * 1024 + 1, "file_too_large"),
        ],
    )
    def test_rejections(self, content_type, size, reason):
        with pytest.raises(ValidationFailure) as exc:
            r2.validate_upload(content_type, size)
        assert exc.value.reason == reason

    def test_video_allows_more_than_image(self):
        r2.validate_upload("video/webm", 20 * 1024 * 1024)


class TestUploadRoute:
    async def test_upload(self, async_client):
        s3 = AsyncMock()
        with patch.object(r2.r2_service, "session", fake_s3_session(s3)):
            res = await async_client.post(
                "/api/upload",
                params={"filename": "cover.png"},
                content=PNG,
                headers={"Content-Type": "image/png"},
            )
        assert res.status_code == 200
        data = res.json()
        assert data["success"] is True
        assert data["size"] == len(PNG)
        assert data["type"] == "image/png"
        assert data["url"].endswith(data["key"])
        assert data["key"].startswith("photos/")

        kwargs = s3.put_object.await_args.kwargs
        assert kwargs["Key"] == data["key"]
        assert kwargs["ContentType"] == "image/png"
        assert kwargs["CacheControl"] == "public, max-age=31536000, immutable"

    async def test_disallowed_type(self, async_client):
        s3 = AsyncMock()
        with patch.object(r2.r2_service, "session", fake_s3_session(s3)):
            res = await async_client.post("/api/upload", content=b"%PDF", headers={"Content-Type": "application/pdf"})
        assert res.status_code == 400
        s3.put_object.assert_not_awaited()

    async def test_empty_body(self, async_client):
        res = await async_client.post("/api/upload", content=b"", headers={"Content-Type": "image/png"})
        assert res.status_code == 400

    async def test_transient_error_retried_then_503(self, async_client):
        s3 = AsyncMock()
        s3.put_object.side_effect = ClientError({"Error": {"Code": "SlowDown"}}, "PutObject")
        with (
            patch.object(r2.r2_service, "session", fake_s3_session(s3)),
            patch("backend.services.r2.asyncio", MagicMock(sleep=AsyncMock())),
        ):
            res = await async_client.post("/api/upload", content=PNG, headers={"Content-Type": "image/png"})
        assert res.status_code == 503
        assert s3.put_object.await_count == 2


# ============================================================================
# Image proxy
# ============================================================================


def mock_upstream(handler):
    """Patch the proxy's outbound httpx client onto a MockTransport."""
    real_client = httpx.AsyncClient

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    return patch("backend.services.image_proxy.httpx.AsyncClient", side_effect=factory)


class TestProxyRoute:
    async def test_proxies_allowed_domain(self, async_client):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=PNG, headers={"content-type": "image/png"})

        with mock_upstream(handler):
            res = await async_client.get("/api/proxy-image", params={"url": R2_IMAGE})
        assert res.status_code == 200
        assert res.content == PNG
        assert res.headers["content-type"] == "image/png"
        assert res.headers["cache-control"] == CACHE_CONTROL
        assert res.headers["access-control-allow-origin"] == "*"
        assert seen == [R2_IMAGE]

    async def test_missing_url(self, async_client):
        res = await async_client.get("/api/proxy-image")
        assert res.status_code == 400

    async def test_invalid_url(self, async_client):
        res = await async_client.get("/api/proxy-image", params={"url": "not a url"})
        assert res.status_code == 400

    async def test_forbidden_domain(self, async_client):
        res = await async_client.get("/api/proxy-image", params={"url": "https://example.com/a.png"})
        assert res.status_code == 403

    async def test_upstream_status_passed_through(self, async_client):
        with mock_upstream(lambda request: httpx.Response(404)):
            res = await async_client.get("/api/proxy-image", params={"url": R2_IMAGE})
        assert res.status_code == 404

    async def test_network_failure(self, async_client):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with mock_upstream(handler):
            res = await async_client.get("/api/proxy-image", params={"url": R2_IMAGE})
        assert res.status_code == 502
