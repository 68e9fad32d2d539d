"""Request and response models for the template API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel, to_snake

from engine.kernel.sync import BatchResult
from engine.kernel.types import Template

# Free-form JSON whose keys belong to the client, not to the document model
_OPAQUE_KEYS = {"global_theme"}


def snake_keys(data: Any) -> Any:
    """Convert camelCase request keys to the document's snake_case field names."""
    if isinstance(data, list):
        return [snake_keys(v) for v in data]
    if not isinstance(data, dict):
        return data
    out: dict[str, Any] = {}
    for key, value in data.items():
        name = to_snake(key)
        out[name] = value if name in _OPAQUE_KEYS else snake_keys(value)
    return out


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateTemplateRequest(_Request):
    """What the client sends to POST /api/templates."""

    name: str = Field(default="Untitled Template", min_length=1, max_length=200)
    slug: str | None = Field(default=None, max_length=200)
    thumbnail: str | None = None
    status: Literal["draft", "published"] = "draft"
    section_order: list[str] = Field(default_factory=list)
    global_theme: dict[str, Any] = Field(default_factory=dict)
    event_date: str | None = None


class UpdateTemplateRequest(_Request):
    """What the client sends to PATCH /api/templates/{id}. Only set fields are written."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    slug: str | None = Field(default=None, max_length=200)
    thumbnail: str | None = None
    status: Literal["draft", "published"] | None = None
    section_order: list[str] | None = None
    custom_sections: list[dict[str, Any]] | None = None
    global_theme: dict[str, Any] | None = None
    event_date: str | None = None

    def patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CloneTemplateRequest(_Request):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    slug: str | None = Field(default=None, max_length=200)


class TemplateSummary(_Response):
    """Template metadata for dashboard listings; no sections or elements."""

    id: str
    name: str
    slug: str | None
    thumbnail: str | None
    status: str
    event_date: str | None
    source_template_id: str | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_model(cls, template: Template) -> TemplateSummary:
        return cls(
            id=template.id,
            name=template.name,
            slug=template.slug,
            thumbnail=template.thumbnail,
            status=template.status,
            event_date=template.event_date,
            source_template_id=template.source_template_id,
            created_at=template.created_at,
            updated_at=template.updated_at,
        )


class BatchSectionUpdate(_Request):
    section_type: str = Field(min_length=1)
    updates: dict[str, Any] = Field(default_factory=dict)


class BatchElementUpdate(_Request):
    element_id: str = Field(min_length=1)
    updates: dict[str, Any] = Field(default_factory=dict)


class BatchUpdateRequest(_Request):
    """What the client sends to POST /api/batch-update."""

    template_id: str = Field(min_length=1)
    sections: list[BatchSectionUpdate] = Field(default_factory=list)
    elements: list[BatchElementUpdate] = Field(default_factory=list)


class BatchCounts(_Response):
    sections: int
    elements: int
    total: int


class BatchUpdateResponse(_Response):
    success: bool
    updated: BatchCounts
    errors: list[str]
    duration: int  # milliseconds

    @classmethod
    def from_result(cls, result: BatchResult, duration_ms: int) -> BatchUpdateResponse:
        return cls(
            success=not result.errors,
            updated=BatchCounts(sections=result.sections, elements=result.elements, total=result.total),
            errors=result.errors,
            duration=duration_ms,
        )


class UploadResponse(_Response):
    success: bool = True
    url: str
    key: str
    filename: str
    size: int
    type: str
