"""Image proxy route — GET /api/proxy-image?url=… for restricted storage domains."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response

from backend.services import image_proxy as proxy_service
from backend.services.templates import http_error
from engine.kernel.errors import TemplateEngineError

router = APIRouter(prefix="/api", tags=["proxy"])


@router.get("/proxy-image")
async def proxy_image(url: str | None = Query(default=None)) -> Response:
    """
    Fetch an image from a whitelisted domain and serve it same-origin.

    400 for a missing or invalid URL, 403 for any other domain. Upstream
    error statuses are passed through.
    """
    try:
        image = await proxy_service.image_proxy.fetch(url)
    except proxy_service.UpstreamError as e:
        raise HTTPException(status_code=e.status_code, detail=f"Failed to fetch image: {e.status_code}") from e
    except TemplateEngineError as e:
        raise http_error(e) from e

    return Response(
        content=image.data,
        media_type=image.content_type,
        headers={
            "Cache-Control": proxy_service.CACHE_CONTROL,
            "Access-Control-Allow-Origin": "*",
            "X-Content-Type-Options": "nosniff",
        },
    )
