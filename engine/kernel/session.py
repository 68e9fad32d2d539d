"""
Tamuu Kernel — Document Session

The single in-memory source of truth while a template is being edited.
Owns the document, the current selection, and dirty tracking. Renderers
and the canvas controller receive the session by reference and subscribe
to its change events instead of reading ambient global state.

Dirty tracking keeps at most one PendingChange per entity. Successive
edits to the same entity merge into it, so a burst of edits produces one
write when the synchronizer flushes. Live drag frames update the document
for feedback but are never marked dirty; only the committed drop is.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import ValidationError

from engine.kernel.errors import LoadCancelled, ValidationFailure
from engine.kernel.types import (
    Position,
    SectionDesign,
    Template,
    TemplateElement,
    canonical_element_type,
    parse_element,
)

TEMP_ID_PREFIX = "el-"

# Template fields an editor may change. id and timestamps are store-owned.
EDITABLE_TEMPLATE_FIELDS: set[str] = {
    "name",
    "slug",
    "thumbnail",
    "status",
    "section_order",
    "custom_sections",
    "global_theme",
    "event_date",
}


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex[:12]}"


def is_temporary_id(element_id: str) -> bool:
    return element_id.startswith(TEMP_ID_PREFIX)


# ---------------------------------------------------------------------------
# Change records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityKey:
    kind: str  # "template" | "section" | "element"
    key: str  # template id, section type key, or element id


@dataclass
class PendingChange:
    key: EntityKey
    op: str  # "create" | "update" | "delete"
    patch: dict[str, Any] = field(default_factory=dict)
    section_key: str | None = None


@dataclass(frozen=True)
class SessionEvent:
    kind: str  # "selection" | "element" | "section" | "template" | "id_replaced" | "closed"
    key: str | None = None
    live: bool = False


def merge_changes(older: PendingChange, newer: PendingChange) -> PendingChange | None:
    """
    Combine two changes to the same entity into one.

    Returns None when they cancel out (created then deleted before any
    write reached the store).
    """
    if newer.op == "delete":
        if older.op == "create":
            return None
        return newer
    if older.op == "create":
        return PendingChange(older.key, "create", {**older.patch, **newer.patch}, older.section_key)
    if older.op == "delete":
        return newer
    return PendingChange(older.key, newer.op, {**older.patch, **newer.patch}, newer.section_key or older.section_key)


def _touched(model: Any, patch: dict[str, Any]) -> dict[str, Any]:
    """Full post-edit values of every top-level field the patch touched."""
    dump = model.model_dump()
    return {k: dump[k] for k in patch if k in dump}


def _deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in patch.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class CancelToken:
    """Marks a load as stale. Fetches already in flight finish but their results are dropped."""

    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def check(self) -> None:
        if self.cancelled:
            raise LoadCancelled("Load was cancelled; results discarded.")


class DocumentSession:
    def __init__(self, template: Template) -> None:
        self.template = template
        self.selected_id: str | None = None
        self.closed = False
        # Loads on behalf of this session carry this token; close() fires it
        self.load_token = CancelToken()
        self._pending: dict[EntityKey, PendingChange] = {}
        self._listeners: list[Callable[[SessionEvent], None]] = []

    # -- observer -----------------------------------------------------------

    def subscribe(self, listener: Callable[[SessionEvent], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _check_open(self) -> None:
        if self.closed:
            raise RuntimeError("Session is closed")

    # -- dirty tracking -----------------------------------------------------

    @property
    def dirty(self) -> bool:
        return bool(self._pending)

    def pending(self) -> list[PendingChange]:
        return list(self._pending.values())

    def _record(self, change: PendingChange) -> None:
        existing = self._pending.get(change.key)
        merged = change if existing is None else merge_changes(existing, change)
        if merged is None:
            del self._pending[change.key]
        else:
            self._pending[change.key] = merged

    def take_pending(self) -> list[PendingChange]:
        """Hand all pending changes to the caller and clear them."""
        changes = list(self._pending.values())
        self._pending.clear()
        return changes

    def restore_pending(self, changes: list[PendingChange]) -> None:
        """
        Put back changes whose write failed. Edits made since they were taken
        win over the restored values.
        """
        for change in changes:
            newer = self._pending.get(change.key)
            merged = change if newer is None else merge_changes(change, newer)
            if merged is None:
                self._pending.pop(change.key, None)
            else:
                self._pending[change.key] = merged

    # -- selection ----------------------------------------------------------

    def select(self, element_id: str | None) -> None:
        if element_id is not None and self.template.find_element(element_id) is None:
            element_id = None
        if element_id == self.selected_id:
            return
        self.selected_id = element_id
        self._notify(SessionEvent("selection", element_id))

    @property
    def selected(self) -> TemplateElement | None:
        if self.selected_id is None:
            return None
        found = self.template.find_element(self.selected_id)
        return found[1] if found else None

    # -- sections -----------------------------------------------------------

    def ensure_section(self, key: str) -> SectionDesign:
        """Return the section for `key`, creating it (and its order slot) on first use."""
        self._check_open()
        section = self.template.sections.get(key)
        if section is not None:
            return section
        section = SectionDesign()
        self.template.sections[key] = section
        self._record(PendingChange(EntityKey("section", key), "update", {}, key))
        if key not in self.template.section_order:
            self.template.section_order.append(key)
            self._record(
                PendingChange(
                    EntityKey("template", self.template.id),
                    "update",
                    {"section_order": list(self.template.section_order)},
                )
            )
        self._notify(SessionEvent("section", key))
        return section

    def update_section(self, key: str, patch: dict[str, Any]) -> SectionDesign:
        self._check_open()
        if "elements" in patch:
            raise ValidationFailure("invalid_section", "Section elements are edited through element operations")
        section = self.ensure_section(key)
        data = _deep_merge(section.model_dump(exclude={"elements"}), patch)
        try:
            updated = SectionDesign.model_validate({**data, "elements": []})
        except ValidationError as e:
            raise ValidationFailure("invalid_section", f"Section {key!r} is invalid: {e.errors()[0]['msg']}") from e
        updated.elements = section.elements
        self.template.sections[key] = updated
        self._record(PendingChange(EntityKey("section", key), "update", _touched(updated, patch), key))
        self._notify(SessionEvent("section", key))
        return updated

    def remove_section(self, key: str) -> None:
        self._check_open()
        section = self.template.sections.pop(key, None)
        if key in self.template.section_order:
            self.template.section_order.remove(key)
            self._record(
                PendingChange(
                    EntityKey("template", self.template.id),
                    "update",
                    {"section_order": list(self.template.section_order)},
                )
            )
        if section is not None:
            for el in section.elements:
                self._pending.pop(EntityKey("element", el.id), None)
                if self.selected_id == el.id:
                    self.select(None)
            self._record(PendingChange(EntityKey("section", key), "delete", {}, key))
        self._notify(SessionEvent("section", key))

    # -- template -----------------------------------------------------------

    def update_template(self, patch: dict[str, Any]) -> Template:
        self._check_open()
        unknown = set(patch) - EDITABLE_TEMPLATE_FIELDS
        if unknown:
            raise ValidationFailure("invalid_template", f"Fields not editable: {', '.join(sorted(unknown))}")
        data = self.template.model_dump(exclude={"sections"})
        data.update(patch)
        try:
            updated = Template.model_validate({**data, "sections": {}})
        except ValidationError as e:
            raise ValidationFailure("invalid_template", f"Template is invalid: {e.errors()[0]['msg']}") from e
        updated.sections = self.template.sections
        self.template = updated
        self._record(PendingChange(EntityKey("template", updated.id), "update", _touched(updated, patch)))
        self._notify(SessionEvent("template", updated.id))
        return updated

    # -- elements -----------------------------------------------------------

    def _locate(self, element_id: str) -> tuple[str, SectionDesign, int]:
        for key, section in self.template.sections.items():
            for i, el in enumerate(section.elements):
                if el.id == element_id:
                    return key, section, i
        raise ValidationFailure("invalid_element", f"Element {element_id!r} is not in this template")

    def add_element(self, section_key: str, kind: str, **fields: Any) -> TemplateElement:
        """
        Create an element with a temporary id. The synchronizer swaps in the
        store-assigned id when the create is flushed.
        """
        self._check_open()
        section = self.ensure_section(section_key)
        if "z_index" not in fields and "zIndex" not in fields:
            fields["z_index"] = max((el.z_index for el in section.elements), default=0) + 1
        el = parse_element({**fields, "type": kind, "id": new_temp_id()})
        section.elements.append(el)
        self._record(PendingChange(EntityKey("element", el.id), "create", {}, section_key))
        self._notify(SessionEvent("element", el.id))
        return el

    def update_element(self, element_id: str, patch: dict[str, Any]) -> TemplateElement:
        self._check_open()
        section_key, section, index = self._locate(element_id)
        current = section.elements[index]
        kind = canonical_element_type(patch.get("type", current.type))
        if kind != current.type or patch.get("id", element_id) != element_id:
            raise ValidationFailure("invalid_element", "Element id and type cannot be changed")
        updated = parse_element(_deep_merge(current.model_dump(), patch))
        section.elements[index] = updated
        self._record(
            PendingChange(EntityKey("element", element_id), "update", _touched(updated, patch), section_key)
        )
        self._notify(SessionEvent("element", element_id))
        return updated

    def move_element_live(self, element_id: str, x: float, y: float) -> TemplateElement:
        """Update position for live feedback only. Not recorded as a change."""
        self._check_open()
        _, section, index = self._locate(element_id)
        moved = section.elements[index].model_copy(update={"position": Position(x=x, y=y)})
        section.elements[index] = moved
        self._notify(SessionEvent("element", element_id, live=True))
        return moved

    def remove_element(self, element_id: str) -> None:
        self._check_open()
        section_key, section, index = self._locate(element_id)
        del section.elements[index]
        self._record(PendingChange(EntityKey("element", element_id), "delete", {}, section_key))
        if self.selected_id == element_id:
            self.select(None)
        self._notify(SessionEvent("element", element_id))

    def replace_element_id(self, old_id: str, new_id: str) -> None:
        """
        Swap a temporary id for the persisted one everywhere the session holds
        it, including changes recorded while the create was in flight.
        """
        change = self._pending.pop(EntityKey("element", old_id), None)
        if change is not None:
            change.key = EntityKey("element", new_id)
            self._pending[change.key] = change
        if self.selected_id == old_id:
            self.selected_id = new_id
        for section in self.template.sections.values():
            for i, el in enumerate(section.elements):
                if el.id == old_id:
                    section.elements[i] = el.model_copy(update={"id": new_id})
        self._notify(SessionEvent("id_replaced", new_id))

    def reset(self, template: Template) -> None:
        """Swap in a freshly loaded document. Refused while edits are unsaved."""
        self._check_open()
        if self._pending:
            raise ValidationFailure("unsaved_changes", "Session has unsaved changes; flush before reloading")
        self.template = template
        self._notify(SessionEvent("template", template.id))
        self.select(self.selected_id)

    def close(self) -> None:
        """Detach all listeners and cancel loads still in flight for this session."""
        self.closed = True
        self.load_token.cancel()
        self._notify(SessionEvent("closed"))
        self._listeners.clear()
