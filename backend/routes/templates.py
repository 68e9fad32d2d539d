"""Template CRUD routes — templates, sections and elements."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from backend.models.template import (
    CloneTemplateRequest,
    CreateTemplateRequest,
    TemplateSummary,
    UpdateTemplateRequest,
    snake_keys,
)
from backend.services.templates import get_sync, http_error
from engine.kernel.errors import TemplateEngineError
from engine.kernel.sync import TemplateSynchronizer
from engine.kernel.types import SectionDesign, Template

router = APIRouter(prefix="/api", tags=["templates"])


def _element_json(element: Any) -> dict[str, Any]:
    return element.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@router.get("/templates", status_code=200)
async def list_templates(sync: TemplateSynchronizer = Depends(get_sync)) -> list[TemplateSummary]:
    """List templates, most recently updated first. Sections and elements are not loaded."""
    try:
        templates = await sync.list_templates()
    except TemplateEngineError as e:
        raise http_error(e) from e
    return [TemplateSummary.from_model(t) for t in templates]


@router.post("/templates", status_code=201)
async def create_template(
    req: CreateTemplateRequest,
    sync: TemplateSynchronizer = Depends(get_sync),
) -> Template:
    """Create a new, empty template."""
    fields = req.model_dump(exclude={"name"}, exclude_unset=True)
    try:
        return await sync.create_template(req.name, **fields)
    except TemplateEngineError as e:
        raise http_error(e) from e


@router.get("/templates/{template_id}", status_code=200)
async def get_template(template_id: str, sync: TemplateSynchronizer = Depends(get_sync)) -> Template:
    """Get a fully hydrated template: sections in display order with their elements."""
    try:
        return await sync.load_template(template_id)
    except TemplateEngineError as e:
        raise http_error(e) from e


@router.patch("/templates/{template_id}", status_code=200)
async def update_template(
    template_id: str,
    req: UpdateTemplateRequest,
    sync: TemplateSynchronizer = Depends(get_sync),
) -> Template:
    """Update template metadata. Fields absent from the body are left untouched."""
    try:
        return await sync.update_template(template_id, snake_keys(req.patch()))
    except TemplateEngineError as e:
        raise http_error(e) from e


@router.delete("/templates/{template_id}", status_code=200)
async def delete_template(template_id: str, sync: TemplateSynchronizer = Depends(get_sync)) -> dict[str, str]:
    """Permanently delete a template with all of its sections and elements."""
    try:
        await sync.delete_template(template_id)
    except TemplateEngineError as e:
        raise http_error(e) from e
    return {"message": "Template deleted."}


@router.post("/templates/{template_id}/clone", status_code=201)
async def clone_template(
    template_id: str,
    req: CloneTemplateRequest | None = None,
    sync: TemplateSynchronizer = Depends(get_sync),
) -> Template:
    """Copy a template into a new draft with fresh section and element ids."""
    req = req or CloneTemplateRequest()
    try:
        return await sync.clone_template(template_id, name=req.name, slug=req.slug)
    except TemplateEngineError as e:
        raise http_error(e) from e


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@router.put("/templates/{template_id}/sections/{section_type}", status_code=200)
async def upsert_section(
    template_id: str,
    section_type: str,
    patch: dict[str, Any] = Body(...),
    sync: TemplateSynchronizer = Depends(get_sync),
) -> SectionDesign:
    """Create or update one section. Only fields present in the body are written."""
    try:
        return await sync.upsert_section(template_id, section_type, snake_keys(patch))
    except TemplateEngineError as e:
        raise http_error(e) from e


@router.delete("/templates/{template_id}/sections/{section_type}", status_code=200)
async def delete_section(
    template_id: str,
    section_type: str,
    sync: TemplateSynchronizer = Depends(get_sync),
) -> dict[str, str]:
    """Delete a section and its elements, and drop it from the section order."""
    try:
        deleted = await sync.delete_section(template_id, section_type)
    except TemplateEngineError as e:
        raise http_error(e) from e
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Section not found.")
    return {"message": "Section deleted."}


# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------


@router.post("/templates/{template_id}/sections/{section_type}/elements", status_code=201)
async def create_element(
    template_id: str,
    section_type: str,
    data: dict[str, Any] = Body(...),
    sync: TemplateSynchronizer = Depends(get_sync),
) -> dict[str, Any]:
    """Create an element. The owning section is created first if it does not exist yet."""
    try:
        element = await sync.create_element(template_id, section_type, snake_keys(data))
    except TemplateEngineError as e:
        raise http_error(e) from e
    return _element_json(element)


@router.patch("/elements/{element_id}", status_code=200)
async def update_element(
    element_id: str,
    patch: dict[str, Any] = Body(...),
    sync: TemplateSynchronizer = Depends(get_sync),
) -> dict[str, Any]:
    """Partially update an element. Nested config objects are merged, not replaced."""
    try:
        element = await sync.update_element(element_id, snake_keys(patch))
    except TemplateEngineError as e:
        raise http_error(e) from e
    return _element_json(element)


@router.delete("/elements/{element_id}", status_code=200)
async def delete_element(element_id: str, sync: TemplateSynchronizer = Depends(get_sync)) -> dict[str, str]:
    """Delete one element."""
    try:
        await sync.delete_element(element_id)
    except TemplateEngineError as e:
        raise http_error(e) from e
    return {"message": "Element deleted."}
