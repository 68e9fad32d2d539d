"""Batch update route — many section and element patches in one request."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends

from backend.models.template import BatchUpdateRequest, BatchUpdateResponse, snake_keys
from backend.services.templates import get_sync, http_error
from engine.kernel.errors import TemplateEngineError
from engine.kernel.sync import TemplateSynchronizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["batch"])


@router.post("/batch-update", status_code=200)
async def batch_update(
    req: BatchUpdateRequest,
    sync: TemplateSynchronizer = Depends(get_sync),
) -> BatchUpdateResponse:
    """
    Apply section and element updates for one template.

    Oversized batches and an unknown template fail the whole request.
    Individual item failures are reported in `errors` and do not stop
    the remaining items.
    """
    started = time.monotonic()
    try:
        result = await sync.apply_batch(
            req.template_id,
            [(s.section_type, snake_keys(s.updates)) for s in req.sections],
            [(el.element_id, snake_keys(el.updates)) for el in req.elements],
        )
    except TemplateEngineError as e:
        raise http_error(e) from e

    duration_ms = int((time.monotonic() - started) * 1000)
    if result.errors:
        logger.warning(
            "batch: %d of %d items failed for template %s",
            len(result.errors),
            len(req.sections) + len(req.elements),
            req.template_id,
        )
    return BatchUpdateResponse.from_result(result, duration_ms)
