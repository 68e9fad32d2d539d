"""Public page serving — GET /p/{slug} renders a published template."""

from __future__ import annotations

import hashlib
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, Response

from backend.services.templates import get_proxy_rule, get_sync
from engine.kernel.errors import TemplateEngineError, TemplateNotFound, TemplateNotPublished, TransientStoreError
from engine.kernel.renderer import RenderOptions, render_template, render_terminal
from engine.kernel.sync import TemplateSynchronizer
from engine.kernel.types import CANVAS_HEIGHT, CANVAS_WIDTH
from engine.kernel.urls import ProxyRule

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pages"])

# Cache-Control TTL: 1 minute browser, 5 minutes shared cache, 1h stale-while-revalidate
_CACHE_CONTROL = "public, max-age=60, s-maxage=300, stale-while-revalidate=3600"


def _terminal(state: str, status_code: int) -> HTMLResponse:
    return HTMLResponse(
        content=render_terminal(state),
        status_code=status_code,
        headers={"Cache-Control": "no-store"},
    )


@router.get("/p/{slug}", response_class=HTMLResponse)
async def serve_public_page(
    slug: str,
    vw: float = Query(default=CANVAS_WIDTH, gt=0, le=10000),
    vh: float = Query(default=CANVAS_HEIGHT, gt=0, le=10000),
    sync: TemplateSynchronizer = Depends(get_sync),
    rule: ProxyRule = Depends(get_proxy_rule),
) -> Response:
    """
    Serve a published template by slug (or id).

    `vw`/`vh` are the viewport hints used for the initial geometry; the
    page refits itself on the client after load. Drafts and unknown
    templates get a terminal page with no template content.

    Cache headers:
    - Cache-Control: short public TTL so edits show up quickly
    - ETag: MD5 of the HTML content for conditional requests
    """
    try:
        template = await sync.load_published(slug)
    except TemplateNotPublished:
        return _terminal("not_published", 404)
    except TemplateNotFound:
        return _terminal("not_found", 404)
    except (TransientStoreError, OSError, TimeoutError) as e:
        logger.error("pages: could not load %s: %s", slug, e)
        return _terminal("unavailable", 503)
    except TemplateEngineError as e:
        # Stored rows that no longer validate: the page is down, not the server
        logger.warning("pages: %s is unservable: %s", slug, e)
        return _terminal("unavailable", 503)

    html = render_template(template, RenderOptions(viewport_width=vw, viewport_height=vh, proxy_rule=rule))
    html_bytes = html.encode("utf-8")
    etag = f'"{hashlib.md5(html_bytes, usedforsecurity=False).hexdigest()}"'

    return Response(
        content=html_bytes,
        media_type="text/html; charset=utf-8",
        headers={
            "Cache-Control": _CACHE_CONTROL,
            "ETag": etag,
            "X-Content-Type-Options": "nosniff",
        },
    )
