"""
Tamuu Kernel — Field Table

Explicit bidirectional mapping between the nested document shape (Python
attribute names, nested dicts for position/size) and the flat relational
columns of the templates / template_sections / template_elements tables.

Every stored field goes through these tables. Nothing maps fields ad hoc.

Rules:
- doc_to_row is total: every column in the table is emitted.
- patch_to_row only emits columns whose path is present in the patch, so
  an omitted field leaves the stored value untouched. A present None
  writes NULL.
- row_to_doc omits NULL columns so model defaults apply on read.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel

from engine.kernel.types import Position, Size

_MISSING = object()


@dataclass(frozen=True)
class FieldSpec:
    """One document path ↔ one column."""

    path: tuple[str, ...]
    column: str
    json: bool = False


def _f(path: str, column: str | None = None, json: bool = False) -> FieldSpec:
    parts = tuple(path.split("."))
    return FieldSpec(parts, column or parts[-1], json)


TEMPLATE_FIELDS: tuple[FieldSpec, ...] = (
    _f("id"),
    _f("name"),
    _f("slug"),
    _f("thumbnail"),
    _f("status"),
    _f("section_order", json=True),
    _f("custom_sections", json=True),
    _f("global_theme", json=True),
    _f("event_date"),
    _f("source_template_id"),
    _f("created_at"),
    _f("updated_at"),
)

# Section rows also carry template_id and type; those are structural keys
# supplied by the synchronizer, not document fields.
SECTION_FIELDS: tuple[FieldSpec, ...] = (
    _f("id"),
    _f("background_color"),
    _f("background_url"),
    _f("overlay_opacity"),
    _f("animation"),
    _f("is_visible"),
    _f("page_title"),
    _f("open_invitation_config", json=True),
)

ELEMENT_FIELDS: tuple[FieldSpec, ...] = (
    _f("id"),
    _f("type"),
    _f("name"),
    _f("position.x", "position_x"),
    _f("position.y", "position_y"),
    _f("size.width", "width"),
    _f("size.height", "height"),
    _f("z_index"),
    _f("animation"),
    _f("loop_animation"),
    _f("animation_delay"),
    _f("animation_speed"),
    _f("animation_duration"),
    _f("rotation"),
    _f("flip_horizontal"),
    _f("flip_vertical"),
    _f("opacity"),
    _f("locked"),
    _f("content"),
    _f("image_url"),
    _f("object_fit"),
    _f("text_style", json=True),
    _f("icon_style", json=True),
    _f("countdown_config", json=True),
    _f("rsvp_form_config", json=True),
    _f("guest_wishes_config", json=True),
    _f("open_invitation_config", json=True),
    _f("shape_config", json=True),
    _f("maps_config", json=True),
)

# Nested document objects that are flattened into several columns.
FLATTENED: dict[str, type[BaseModel]] = {"position": Position, "size": Size}


def _get(doc: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    cur: Any = doc
    for part in path:
        if not isinstance(cur, Mapping) or part not in cur:
            return _MISSING
        cur = cur[part]
    return cur


def _set(doc: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    cur = doc
    for part in path[:-1]:
        cur = cur.setdefault(part, {})
    cur[path[-1]] = value


def doc_to_row(doc: Mapping[str, Any], table: tuple[FieldSpec, ...]) -> dict[str, Any]:
    """
    Flatten a full document dict (model_dump() output) to a row.

    Every column is present. Fields the document does not carry (e.g. a
    text element has no image_url) become NULL.
    """
    row: dict[str, Any] = {}
    for fs in table:
        value = _get(doc, fs.path)
        row[fs.column] = None if value is _MISSING else value
    return row


def patch_to_row(patch: Mapping[str, Any], table: tuple[FieldSpec, ...]) -> dict[str, Any]:
    """Flatten a partial document dict. Absent paths produce no column."""
    row: dict[str, Any] = {}
    for fs in table:
        value = _get(patch, fs.path)
        if value is not _MISSING:
            row[fs.column] = value
    return row


def row_to_doc(row: Mapping[str, Any], table: tuple[FieldSpec, ...]) -> dict[str, Any]:
    """Rebuild the nested document dict from a row. NULL columns are omitted."""
    doc: dict[str, Any] = {}
    for fs in table:
        if fs.column not in row:
            continue
        value = row[fs.column]
        if value is None:
            continue
        _set(doc, fs.path, value)
    return doc


def columns(table: tuple[FieldSpec, ...]) -> list[str]:
    return [fs.column for fs in table]


def json_columns(table: tuple[FieldSpec, ...]) -> set[str]:
    return {fs.column for fs in table if fs.json}


def unmapped_fields(
    model: type[BaseModel],
    table: tuple[FieldSpec, ...],
    structural: tuple[str, ...] = (),
) -> list[str]:
    """
    Model fields with no column in `table`.

    `structural` names fields stored elsewhere (a section's elements, a
    template's sections). An empty result proves the table is total for
    that model.
    """
    mapped = {fs.path for fs in table}
    missing: list[str] = []
    for name in model.model_fields:
        if name in structural:
            continue
        if name in FLATTENED:
            for sub in FLATTENED[name].model_fields:
                if (name, sub) not in mapped:
                    missing.append(f"{name}.{sub}")
        elif (name,) not in mapped:
            missing.append(name)
    return missing
