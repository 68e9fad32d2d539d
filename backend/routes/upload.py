"""Asset upload route — POST /api/upload stores an image or video in R2."""

from __future__ import annotations

from fastapi import APIRouter, Header, Query, Request

from backend.models.template import UploadResponse
from backend.services import r2
from backend.services.templates import http_error
from engine.kernel.errors import TemplateEngineError

router = APIRouter(prefix="/api", tags=["upload"])


@router.post("/upload", status_code=200)
async def upload_asset(
    request: Request,
    filename: str = Query(default="upload"),
    content_type: str = Header(default=""),
) -> UploadResponse:
    """
    Upload a single asset sent as the raw request body.

    The Content-Type header is the asset's MIME type. Type and size are
    checked before anything is stored.
    """
    media_type = content_type.split(";", 1)[0].strip().lower()
    declared = request.headers.get("content-length")
    try:
        # Reject oversized uploads from the declared length before reading the body
        if declared and declared.isdigit():
            r2.validate_upload(media_type, max(int(declared), 1))
        data = await request.body()
        asset = await r2.r2_service.upload_asset(data, filename, media_type)
    except TemplateEngineError as e:
        raise http_error(e) from e
    return UploadResponse(url=asset.url, key=asset.key, filename=asset.filename, size=asset.size, type=asset.type)
