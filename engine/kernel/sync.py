"""
Tamuu Kernel — Persistence Synchronizer

Maps the nested document to and from three flat tables (templates,
template_sections, template_elements) through a RelationalStore.
Implement the store with Postgres for production, or in-memory for tests.

Read path:  template row → section rows → element rows in bounded batches
            of section ids (batches may run concurrently, bounded by
            max_in_flight; none starts before the section list is known).
            Reads retry transient failures with exponential backoff and
            re-raise the original error once attempts are exhausted.
Write path: sections upsert on (template_id, type); elements are keyed by
            id; creating an element ensures its section row first. Writes
            to the same entity are serialized; different entities proceed
            independently. All field mapping goes through fields.py.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

from pydantic import ValidationError

from engine.kernel.errors import (
    ElementNotFound,
    TemplateEngineError,
    TemplateNotFound,
    TemplateNotPublished,
    TransientStoreError,
    ValidationFailure,
)
from engine.kernel.fields import (
    ELEMENT_FIELDS,
    SECTION_FIELDS,
    TEMPLATE_FIELDS,
    doc_to_row,
    patch_to_row,
    row_to_doc,
)
from engine.kernel.session import (
    EDITABLE_TEMPLATE_FIELDS,
    CancelToken,
    DocumentSession,
    PendingChange,
    SessionEvent,
    is_temporary_id,
)
from engine.kernel.types import (
    UNORDERED_SECTION,
    SectionDesign,
    Template,
    TemplateElement,
    canonical_element_type,
    parse_element,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_SECTIONS_PER_BATCH = 50
MAX_ELEMENTS_PER_BATCH = 500

# Failures worth retrying. Everything else is raised on the first attempt.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (TransientStoreError, OSError, asyncio.TimeoutError)


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.1  # seconds

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based): base · 2^(attempt-1)."""
        return self.base_delay * 2 ** (attempt - 1)


@dataclass(frozen=True)
class BatchPolicy:
    batch_size: int = 5
    max_in_flight: int = 4

    def __post_init__(self) -> None:
        if self.batch_size < 1 or self.max_in_flight < 1:
            raise ValueError("batch_size and max_in_flight must be at least 1")


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation: str,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run `fn`, retrying transient failures. The last error is re-raised unchanged."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except RETRYABLE_ERRORS as e:
            if attempt >= policy.max_attempts:
                logger.error("sync: %s failed after %d attempts: %s", operation, attempt, e)
                raise
            wait = policy.delay(attempt)
            logger.warning(
                "sync: attempt %d/%d of %s failed, retrying in %.2fs: %s",
                attempt,
                policy.max_attempts,
                operation,
                wait,
                e,
            )
            await sleep(wait)


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


class RelationalStore:
    """
    Abstract row store over templates / template_sections / template_elements.
    Rows are plain dicts keyed by column name; ids are strings.
    """

    async def get_template_row(self, template_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    async def get_template_row_by_slug(self, slug: str) -> dict[str, Any] | None:
        raise NotImplementedError

    async def list_template_rows(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def insert_template_row(self, values: dict[str, Any]) -> dict[str, Any]:
        """Insert a template. The store assigns id and timestamps when absent."""
        raise NotImplementedError

    async def update_template_row(self, template_id: str, values: dict[str, Any]) -> dict[str, Any] | None:
        """Update only the given columns. Returns None if the template does not exist."""
        raise NotImplementedError

    async def delete_template_row(self, template_id: str) -> bool:
        """Delete a template with its sections and elements."""
        raise NotImplementedError

    async def get_section_rows(self, template_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def upsert_section_row(self, template_id: str, section_type: str, values: dict[str, Any]) -> dict[str, Any]:
        """Insert the (template_id, type) row if absent, else update the given columns."""
        raise NotImplementedError

    async def delete_section_row(self, template_id: str, section_type: str) -> bool:
        raise NotImplementedError

    async def get_element_rows(self, section_ids: Sequence[str]) -> list[dict[str, Any]]:
        """Elements of the given sections, oldest first."""
        raise NotImplementedError

    async def get_element_row(self, element_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    async def insert_element_row(self, section_id: str, values: dict[str, Any]) -> dict[str, Any]:
        """Insert an element. The store assigns the id."""
        raise NotImplementedError

    async def update_element_row(self, element_id: str, values: dict[str, Any]) -> dict[str, Any] | None:
        raise NotImplementedError

    async def delete_element_row(self, element_id: str) -> bool:
        raise NotImplementedError


class MemoryStore(RelationalStore):
    """In-memory store for testing. Counts requests and can inject failures."""

    def __init__(self) -> None:
        self.templates: dict[str, dict[str, Any]] = {}
        self.sections: dict[str, dict[str, Any]] = {}
        self.elements: dict[str, dict[str, Any]] = {}
        self.requests: Counter[str] = Counter()
        self.element_batches: list[list[str]] = []
        self.failures: dict[str, list[BaseException]] = {}
        self.in_flight = 0
        self.max_in_flight_seen = 0
        self.latency = 0.0

    def fail_next(self, operation: str, *errors: BaseException) -> None:
        """Queue errors to raise on the next calls of `operation`."""
        self.failures.setdefault(operation, []).extend(errors)

    async def _enter(self, operation: str) -> None:
        self.requests[operation] += 1
        queued = self.failures.get(operation)
        if queued:
            raise queued.pop(0)
        if self.latency:
            self.in_flight += 1
            self.max_in_flight_seen = max(self.max_in_flight_seen, self.in_flight)
            try:
                await asyncio.sleep(self.latency)
            finally:
                self.in_flight -= 1

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    async def get_template_row(self, template_id: str) -> dict[str, Any] | None:
        await self._enter("get_template_row")
        row = self.templates.get(template_id)
        return copy.deepcopy(row) if row else None

    async def get_template_row_by_slug(self, slug: str) -> dict[str, Any] | None:
        await self._enter("get_template_row_by_slug")
        for row in self.templates.values():
            if row.get("slug") == slug:
                return copy.deepcopy(row)
        return None

    async def list_template_rows(self) -> list[dict[str, Any]]:
        await self._enter("list_template_rows")
        rows = sorted(self.templates.values(), key=lambda r: r["updated_at"], reverse=True)
        return copy.deepcopy(rows)

    async def insert_template_row(self, values: dict[str, Any]) -> dict[str, Any]:
        await self._enter("insert_template_row")
        now = self._now()
        row = {col: None for col in (fs.column for fs in TEMPLATE_FIELDS)}
        row.update({k: copy.deepcopy(v) for k, v in values.items() if v is not None})
        row["id"] = row["id"] or str(uuid.uuid4())
        row["created_at"] = row["created_at"] or now
        row["updated_at"] = now
        if row["slug"] and any(t.get("slug") == row["slug"] for t in self.templates.values()):
            raise ValidationFailure("slug_taken", f"Slug {row['slug']!r} is already in use")
        self.templates[row["id"]] = row
        return copy.deepcopy(row)

    async def update_template_row(self, template_id: str, values: dict[str, Any]) -> dict[str, Any] | None:
        await self._enter("update_template_row")
        row = self.templates.get(template_id)
        if row is None:
            return None
        row.update(copy.deepcopy(values))
        row["updated_at"] = self._now()
        return copy.deepcopy(row)

    async def delete_template_row(self, template_id: str) -> bool:
        await self._enter("delete_template_row")
        if self.templates.pop(template_id, None) is None:
            return False
        section_ids = [sid for sid, s in self.sections.items() if s["template_id"] == template_id]
        for sid in section_ids:
            del self.sections[sid]
        for eid in [eid for eid, e in self.elements.items() if e["section_id"] in section_ids]:
            del self.elements[eid]
        return True

    async def get_section_rows(self, template_id: str) -> list[dict[str, Any]]:
        await self._enter("get_section_rows")
        return [copy.deepcopy(s) for s in self.sections.values() if s["template_id"] == template_id]

    async def upsert_section_row(self, template_id: str, section_type: str, values: dict[str, Any]) -> dict[str, Any]:
        await self._enter("upsert_section_row")
        if template_id not in self.templates:
            raise TemplateNotFound(template_id)
        values = {k: v for k, v in values.items() if k != "id"}
        for row in self.sections.values():
            if row["template_id"] == template_id and row["type"] == section_type:
                row.update(copy.deepcopy(values))
                row["updated_at"] = self._now()
                return copy.deepcopy(row)
        now = self._now()
        row = {col: None for col in (fs.column for fs in SECTION_FIELDS)}
        row.update({"is_visible": True, "overlay_opacity": 0.0, "animation": "none"})
        row.update(copy.deepcopy(values))
        row.update(
            {"id": str(uuid.uuid4()), "template_id": template_id, "type": section_type, "created_at": now, "updated_at": now}
        )
        self.sections[row["id"]] = row
        return copy.deepcopy(row)

    async def delete_section_row(self, template_id: str, section_type: str) -> bool:
        await self._enter("delete_section_row")
        for sid, row in list(self.sections.items()):
            if row["template_id"] == template_id and row["type"] == section_type:
                del self.sections[sid]
                for eid in [eid for eid, e in self.elements.items() if e["section_id"] == sid]:
                    del self.elements[eid]
                return True
        return False

    async def get_element_rows(self, section_ids: Sequence[str]) -> list[dict[str, Any]]:
        await self._enter("get_element_rows")
        self.element_batches.append(list(section_ids))
        wanted = set(section_ids)
        rows = [e for e in self.elements.values() if e["section_id"] in wanted]
        return copy.deepcopy(sorted(rows, key=lambda e: e["created_at"]))

    async def get_element_row(self, element_id: str) -> dict[str, Any] | None:
        await self._enter("get_element_row")
        row = self.elements.get(element_id)
        return copy.deepcopy(row) if row else None

    async def insert_element_row(self, section_id: str, values: dict[str, Any]) -> dict[str, Any]:
        await self._enter("insert_element_row")
        if section_id not in self.sections:
            raise ValidationFailure("invalid_section", f"Section {section_id} does not exist")
        now = self._now()
        row = {col: None for col in (fs.column for fs in ELEMENT_FIELDS)}
        row.update(copy.deepcopy(values))
        row.update({"id": str(uuid.uuid4()), "section_id": section_id, "created_at": now, "updated_at": now})
        self.elements[row["id"]] = row
        return copy.deepcopy(row)

    async def update_element_row(self, element_id: str, values: dict[str, Any]) -> dict[str, Any] | None:
        await self._enter("update_element_row")
        row = self.elements.get(element_id)
        if row is None:
            return None
        row.update(copy.deepcopy({k: v for k, v in values.items() if k != "id"}))
        row["updated_at"] = self._now()
        return copy.deepcopy(row)

    async def delete_element_row(self, element_id: str) -> bool:
        await self._enter("delete_element_row")
        return self.elements.pop(element_id, None) is not None


# ---------------------------------------------------------------------------
# Row ↔ document assembly
# ---------------------------------------------------------------------------


def sort_section_rows(rows: Iterable[dict[str, Any]], section_order: Sequence[str]) -> list[dict[str, Any]]:
    """Order section rows by their type's position in section_order; unlisted types sort last."""
    rank = {key: i for i, key in enumerate(section_order)}
    return sorted(rows, key=lambda r: rank.get(r["type"], UNORDERED_SECTION))


def dedupe_order(order: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for key in order:
        if key not in seen:
            seen.add(key)
            out.append(key)
    return out


def _template_from_row(row: dict[str, Any]) -> Template:
    doc = row_to_doc(row, TEMPLATE_FIELDS)
    doc["id"] = str(doc["id"])
    if doc.get("source_template_id") is not None:
        doc["source_template_id"] = str(doc["source_template_id"])
    order = doc.get("section_order") or []
    deduped = dedupe_order(order)
    if len(deduped) != len(order):
        logger.warning("sync: template %s has duplicate section_order keys, dropping repeats", doc["id"])
        doc["section_order"] = deduped
    try:
        return Template.model_validate(doc)
    except ValidationError as e:
        raise ValidationFailure("invalid_template", f"Stored template {doc['id']} is invalid: {e.errors()[0]['msg']}") from e


def _element_from_row(row: dict[str, Any]) -> TemplateElement:
    doc = row_to_doc(row, ELEMENT_FIELDS)
    doc["id"] = str(doc["id"])
    return parse_element(doc)


def _section_from_row(row: dict[str, Any], elements: list[TemplateElement]) -> SectionDesign:
    doc = row_to_doc(row, SECTION_FIELDS)
    doc["id"] = str(doc["id"])
    try:
        section = SectionDesign.model_validate(doc)
    except ValidationError as e:
        raise ValidationFailure("invalid_section", f"Stored section {doc['id']} is invalid: {e.errors()[0]['msg']}") from e
    section.elements = elements
    return section


def assemble_template(
    template_row: dict[str, Any],
    section_rows: list[dict[str, Any]],
    element_rows: list[dict[str, Any]],
) -> Template:
    """
    Build the nested document from flat rows.

    Sections come out in display order. An element row that does not
    validate is skipped with a warning rather than failing the document.
    """
    template = _template_from_row(template_row)
    by_section: dict[str, list[TemplateElement]] = {}
    for row in element_rows:
        try:
            el = _element_from_row(row)
        except ValidationFailure as e:
            logger.warning("sync: skipping element %s: %s", row.get("id"), e.message)
            continue
        by_section.setdefault(str(row["section_id"]), []).append(el)

    for row in sort_section_rows(section_rows, template.section_order):
        template.sections[row["type"]] = _section_from_row(row, by_section.get(str(row["id"]), []))
    return template


def _section_values(section: SectionDesign) -> dict[str, Any]:
    values = doc_to_row(section.model_dump(), SECTION_FIELDS)
    values.pop("id")
    return values


def _element_values(element: TemplateElement) -> dict[str, Any]:
    values = doc_to_row(element.model_dump(), ELEMENT_FIELDS)
    values.pop("id")
    return values


def _deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in patch.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


# ---------------------------------------------------------------------------
# Synchronizer
# ---------------------------------------------------------------------------


@dataclass
class BatchResult:
    sections: int = 0
    elements: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.sections + self.elements


@dataclass
class FlushResult:
    written: int = 0
    id_map: dict[str, str] = field(default_factory=dict)


class TemplateSynchronizer:
    def __init__(
        self,
        store: RelationalStore,
        retry: RetryPolicy | None = None,
        batch: BatchPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.retry = retry or RetryPolicy()
        self.batch = batch or BatchPolicy()
        self._sleep = sleep
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def _lock(self, kind: str, key: str) -> asyncio.Lock:
        """One lock per entity so writes to it are serialized."""
        lock = self._locks.get((kind, key))
        if lock is None:
            lock = asyncio.Lock()
            self._locks[(kind, key)] = lock
        return lock

    async def _read(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(fn, self.retry, operation, self._sleep)

    # -- read path ----------------------------------------------------------

    async def load_template(self, template_id: str, token: CancelToken | None = None) -> Template:
        """Hydrate a full template. Raises TemplateNotFound, or LoadCancelled if `token` fires."""
        row = await self._read("get_template_row", lambda: self.store.get_template_row(template_id))
        if row is None:
            raise TemplateNotFound(template_id)
        return await self._hydrate(row, token)

    async def reload(self, session: DocumentSession) -> Template:
        """
        Re-read an open session's template and swap it in. If the session is
        closed while the read is in flight, LoadCancelled is raised and the
        session is left untouched.
        """
        template = await self.load_template(session.template.id, session.load_token)
        session.load_token.check()
        session.reset(template)
        return template

    async def load_published(self, ref: str) -> Template:
        """
        Public read: look up by slug, then by id. Only published templates
        are returned; drafts raise TemplateNotPublished before any section
        or element is read.
        """
        row = await self._read("get_template_row_by_slug", lambda: self.store.get_template_row_by_slug(ref))
        if row is None:
            row = await self._read("get_template_row", lambda: self.store.get_template_row(ref))
        if row is None:
            raise TemplateNotFound(ref)
        if row.get("status") != "published":
            raise TemplateNotPublished(ref)
        return await self._hydrate(row)

    async def _hydrate(self, row: dict[str, Any], token: CancelToken | None = None) -> Template:
        token = token or CancelToken()
        template_id = str(row["id"])
        token.check()
        section_rows = await self._read("get_section_rows", lambda: self.store.get_section_rows(template_id))
        token.check()
        element_rows = await self.fetch_elements([str(r["id"]) for r in section_rows], token)
        token.check()
        template = assemble_template(row, section_rows, element_rows)
        logger.info(
            "sync: hydrated template %s (%d sections, %d elements)",
            template_id,
            len(template.sections),
            sum(len(s.elements) for s in template.sections.values()),
        )
        return template

    async def fetch_elements(self, section_ids: Sequence[str], token: CancelToken | None = None) -> list[dict[str, Any]]:
        """
        Fetch element rows in batches of `batch_size` section ids, at most
        `max_in_flight` batches at once. Results keep batch order.
        """
        if not section_ids:
            return []
        gate = asyncio.Semaphore(self.batch.max_in_flight)

        async def run(batch: list[str]) -> list[dict[str, Any]]:
            async with gate:
                if token is not None:
                    token.check()
                return await self._read("get_element_rows", lambda: self.store.get_element_rows(batch))

        results = await asyncio.gather(*(run(b) for b in chunked(list(section_ids), self.batch.batch_size)))
        return [row for batch_rows in results for row in batch_rows]

    async def list_templates(self) -> list[Template]:
        """Template rows only, no sections or elements."""
        rows = await self._read("list_template_rows", self.store.list_template_rows)
        return [_template_from_row(r) for r in rows]

    # -- templates ----------------------------------------------------------

    async def create_template(self, name: str, **fields: Any) -> Template:
        unknown = set(fields) - EDITABLE_TEMPLATE_FIELDS - {"source_template_id"}
        if unknown:
            raise ValidationFailure("invalid_template", f"Unknown template fields: {', '.join(sorted(unknown))}")
        try:
            draft = Template.model_validate({"id": "new", "name": name, **fields})
        except ValidationError as e:
            raise ValidationFailure("invalid_template", f"Template is invalid: {e.errors()[0]['msg']}") from e
        values = doc_to_row(draft.model_dump(), TEMPLATE_FIELDS)
        for col in ("id", "created_at", "updated_at"):
            values.pop(col)
        row = await self.store.insert_template_row(values)
        return _template_from_row(row)

    async def clone_template(self, source_id: str, name: str | None = None, slug: str | None = None) -> Template:
        """Deep-copy a template into a new draft with fresh section and element ids."""
        source = await self.load_template(source_id)
        clone = await self.create_template(
            name or f"{source.name} (Copy)",
            slug=slug,
            thumbnail=source.thumbnail,
            section_order=list(source.section_order),
            custom_sections=[c.model_dump() for c in source.custom_sections],
            global_theme=copy.deepcopy(source.global_theme),
            event_date=source.event_date,
            source_template_id=source.id,
        )
        for key in source.ordered_section_keys():
            section = source.sections.get(key)
            if section is None:
                continue
            section_row = await self.store.upsert_section_row(clone.id, key, _section_values(section))
            for el in section.elements:
                await self.store.insert_element_row(str(section_row["id"]), _element_values(el))
        return await self.load_template(clone.id)

    async def update_template(self, template_id: str, patch: dict[str, Any]) -> Template:
        unknown = set(patch) - EDITABLE_TEMPLATE_FIELDS
        if unknown:
            raise ValidationFailure("invalid_template", f"Fields not editable: {', '.join(sorted(unknown))}")
        async with self._lock("template", template_id):
            row = await self._read("get_template_row", lambda: self.store.get_template_row(template_id))
            if row is None:
                raise TemplateNotFound(template_id)
            current = _template_from_row(row)
            try:
                updated = Template.model_validate({**current.model_dump(exclude={"sections"}), **patch})
            except ValidationError as e:
                raise ValidationFailure("invalid_template", f"Template is invalid: {e.errors()[0]['msg']}") from e
            values = patch_to_row(updated.model_dump(include=set(patch)), TEMPLATE_FIELDS)
            new_row = await self.store.update_template_row(template_id, values)
        if new_row is None:
            raise TemplateNotFound(template_id)
        return _template_from_row(new_row)

    async def delete_template(self, template_id: str) -> None:
        async with self._lock("template", template_id):
            if not await self.store.delete_template_row(template_id):
                raise TemplateNotFound(template_id)

    async def _append_to_order(self, template_id: str, key: str) -> None:
        async with self._lock("template", template_id):
            row = await self._read("get_template_row", lambda: self.store.get_template_row(template_id))
            if row is None:
                raise TemplateNotFound(template_id)
            order = dedupe_order(row.get("section_order") or [])
            if key not in order:
                await self.store.update_template_row(template_id, {"section_order": [*order, key]})

    # -- sections -----------------------------------------------------------

    async def upsert_section(self, template_id: str, key: str, patch: dict[str, Any]) -> SectionDesign:
        """Insert or update the (template, key) section with only the fields in `patch`."""
        if "elements" in patch:
            raise ValidationFailure("invalid_section", "Section elements are written through element operations")
        try:
            validated = SectionDesign.model_validate(patch)
        except ValidationError as e:
            raise ValidationFailure("invalid_section", f"Section {key!r} is invalid: {e.errors()[0]['msg']}") from e
        values = patch_to_row(validated.model_dump(include=set(patch)), SECTION_FIELDS)
        values.pop("id", None)
        async with self._lock("section", f"{template_id}:{key}"):
            row = await self.store.upsert_section_row(template_id, key, values)
        await self._append_to_order(template_id, key)
        return _section_from_row(row, [])

    async def delete_section(self, template_id: str, key: str) -> bool:
        async with self._lock("section", f"{template_id}:{key}"):
            deleted = await self.store.delete_section_row(template_id, key)
        async with self._lock("template", template_id):
            row = await self.store.get_template_row(template_id)
            if row is not None and key in (row.get("section_order") or []):
                order = [k for k in row["section_order"] if k != key]
                await self.store.update_template_row(template_id, {"section_order": order})
        return deleted

    async def _ensure_section_row(self, template_id: str, key: str) -> dict[str, Any]:
        async with self._lock("section", f"{template_id}:{key}"):
            row = await self.store.upsert_section_row(template_id, key, {})
        await self._append_to_order(template_id, key)
        return row

    # -- elements -----------------------------------------------------------

    async def create_element(self, template_id: str, section_key: str, data: dict[str, Any]) -> TemplateElement:
        """Create an element, creating its owning section row first if needed."""
        element = parse_element({**data, "id": data.get("id") or "new"})
        section_row = await self._ensure_section_row(template_id, section_key)
        row = await self.store.insert_element_row(str(section_row["id"]), _element_values(element))
        return _element_from_row(row)

    async def get_element(self, element_id: str) -> TemplateElement:
        row = await self._read("get_element_row", lambda: self.store.get_element_row(element_id))
        if row is None:
            raise ElementNotFound(element_id)
        return _element_from_row(row)

    async def update_element(self, element_id: str, patch: dict[str, Any]) -> TemplateElement:
        """Apply a partial update. Columns for fields absent from `patch` are not written."""
        async with self._lock("element", element_id):
            current = await self.get_element(element_id)
            kind = canonical_element_type(patch.get("type", current.type))
            if kind != current.type or patch.get("id", element_id) != element_id:
                raise ValidationFailure("invalid_element", "Element id and type cannot be changed")
            updated = parse_element(_deep_merge(current.model_dump(), patch))
            values = patch_to_row(updated.model_dump(include=set(patch)), ELEMENT_FIELDS)
            values.pop("id", None)
            values.pop("type", None)
            row = await self.store.update_element_row(element_id, values)
        if row is None:
            raise ElementNotFound(element_id)
        return _element_from_row(row)

    async def delete_element(self, element_id: str) -> None:
        async with self._lock("element", element_id):
            if not await self.store.delete_element_row(element_id):
                raise ElementNotFound(element_id)

    # -- batch --------------------------------------------------------------

    async def apply_batch(
        self,
        template_id: str,
        sections: list[tuple[str, dict[str, Any]]],
        elements: list[tuple[str, dict[str, Any]]],
    ) -> BatchResult:
        """
        Apply many section and element updates in one call. Per-item
        failures are collected, not raised; limits and a missing template
        fail the whole batch up front.
        """
        if len(sections) > MAX_SECTIONS_PER_BATCH:
            raise ValidationFailure("batch_too_large", f"Maximum {MAX_SECTIONS_PER_BATCH} sections per batch allowed")
        if len(elements) > MAX_ELEMENTS_PER_BATCH:
            raise ValidationFailure("batch_too_large", f"Maximum {MAX_ELEMENTS_PER_BATCH} elements per batch allowed")
        result = BatchResult()
        if not sections and not elements:
            return result
        row = await self._read("get_template_row", lambda: self.store.get_template_row(template_id))
        if row is None:
            raise TemplateNotFound(template_id)

        for key, patch in sections:
            try:
                await self.upsert_section(template_id, key, patch)
                result.sections += 1
            except TemplateEngineError as e:
                result.errors.append(f"Section {key}: {e.message}")
        for element_id, patch in elements:
            try:
                await self.update_element(element_id, patch)
                result.elements += 1
            except TemplateEngineError as e:
                result.errors.append(f"Element {element_id}: {e.message}")
        return result

    # -- session write-back -------------------------------------------------

    async def flush(self, session: DocumentSession) -> FlushResult:
        """
        Write a session's pending changes: template first, then sections,
        then elements. On failure the unwritten changes go back to the
        session and the error is raised.
        """
        changes = session.take_pending()
        order = {"template": 0, "section": 1, "element": 2}
        changes.sort(key=lambda c: order[c.key.kind])
        result = FlushResult()
        template_id = session.template.id

        for i, change in enumerate(changes):
            try:
                await self._write_change(session, template_id, change, result)
            except BaseException:
                # Driver errors and cancellation included: unwritten changes are never dropped
                session.restore_pending(changes[i:])
                raise
            result.written += 1
        return result

    async def _write_change(
        self,
        session: DocumentSession,
        template_id: str,
        change: PendingChange,
        result: FlushResult,
    ) -> None:
        kind, key = change.key.kind, change.key.key

        if kind == "template":
            async with self._lock("template", template_id):
                row = await self.store.update_template_row(template_id, patch_to_row(change.patch, TEMPLATE_FIELDS))
            if row is None:
                raise TemplateNotFound(template_id)

        elif kind == "section":
            if change.op == "delete":
                async with self._lock("section", f"{template_id}:{key}"):
                    await self.store.delete_section_row(template_id, key)
                return
            values = patch_to_row(change.patch, SECTION_FIELDS)
            values.pop("id", None)
            async with self._lock("section", f"{template_id}:{key}"):
                row = await self.store.upsert_section_row(template_id, key, values)
            section = session.template.sections.get(key)
            if section is not None and section.id is None:
                section.id = str(row["id"])

        elif change.op == "create":
            found = session.template.find_element(key)
            if found is None:
                return
            section_row = await self._ensure_section_row(template_id, change.section_key or found[0])
            row = await self.store.insert_element_row(str(section_row["id"]), _element_values(found[1]))
            new_id = str(row["id"])
            result.id_map[key] = new_id
            session.replace_element_id(key, new_id)

        elif change.op == "delete":
            if is_temporary_id(key):
                return
            async with self._lock("element", key):
                await self.store.delete_element_row(key)

        else:
            values = patch_to_row(change.patch, ELEMENT_FIELDS)
            values.pop("id", None)
            values.pop("type", None)
            async with self._lock("element", key):
                row = await self.store.update_element_row(key, values)
            if row is None:
                raise ElementNotFound(key)


# ---------------------------------------------------------------------------
# Autosave
# ---------------------------------------------------------------------------


class AutosaveScheduler:
    """
    Debounced write-back. Every recorded edit restarts the timer; when it
    fires, all changes accumulated so far are flushed together. Live drag
    frames and selection changes do not schedule anything.

    Only a sleeping timer is restarted. A flush already under way always
    runs to completion; edits made meanwhile are picked up by the next one.
    """

    def __init__(self, sync: TemplateSynchronizer, session: DocumentSession, delay: float = 1.0) -> None:
        self.sync = sync
        self.session = session
        self.delay = delay
        self.flush_count = 0
        self.last_error: Exception | None = None
        self._sleeping: asyncio.Task[None] | None = None
        self._running: set[asyncio.Task[None]] = set()
        self._flushing = asyncio.Lock()
        self._unsubscribe = session.subscribe(self._on_event)

    def _on_event(self, event: SessionEvent) -> None:
        if event.live or event.kind in ("selection", "id_replaced", "closed"):
            return
        if not self.session.dirty:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._cancel_sleeping_timer()
        task = loop.create_task(self._fire())
        self._sleeping = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    def _cancel_sleeping_timer(self) -> None:
        if self._sleeping is not None and not self._sleeping.done():
            self._sleeping.cancel()

    async def _fire(self) -> None:
        try:
            await asyncio.sleep(self.delay)
        finally:
            if self._sleeping is asyncio.current_task():
                self._sleeping = None
        try:
            await self.flush_now()
        except TemplateEngineError as e:
            # Changes were restored to the session; the next edit reschedules.
            self.last_error = e
            logger.warning("sync: autosave for template %s failed: %s", self.session.template.id, e)
        except Exception as e:
            self.last_error = e
            logger.exception("sync: autosave for template %s crashed", self.session.template.id)

    async def flush_now(self) -> FlushResult:
        async with self._flushing:
            result = await self.sync.flush(self.session)
            self.flush_count += 1
            return result

    async def close(self) -> None:
        """Stop the timer, let any running flush finish, then write whatever is still pending."""
        self._unsubscribe()
        self._cancel_sleeping_timer()
        in_flight = [t for t in self._running if not t.done()]
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        if self.session.dirty:
            await self.flush_now()
