"""Repository for template, section and element rows."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

import asyncpg

from backend.db import system_conn
from engine.kernel.errors import TemplateNotFound, TransientStoreError, ValidationFailure
from engine.kernel.fields import ELEMENT_FIELDS, SECTION_FIELDS, TEMPLATE_FIELDS, columns
from engine.kernel.sync import RelationalStore

# Connection-level failures the synchronizer may retry
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.TooManyConnectionsError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.InterfaceError,
    ConnectionError,
    asyncio.TimeoutError,
)

# Writable columns per table. Anything else in a values dict is rejected
# before it reaches SQL text.
_TEMPLATE_COLUMNS = set(columns(TEMPLATE_FIELDS)) - {"id", "created_at", "updated_at"}
_SECTION_COLUMNS = set(columns(SECTION_FIELDS)) - {"id"}
_ELEMENT_COLUMNS = set(columns(ELEMENT_FIELDS)) - {"id"}


def _uuid(value: str | UUID | None) -> UUID | None:
    """Parse an id; malformed ids simply match nothing."""
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    """Convert a database row to a plain dict with string ids."""
    out = dict(row)
    for key, value in out.items():
        if isinstance(value, UUID):
            out[key] = str(value)
    return out


def _check_columns(values: dict[str, Any], allowed: set[str]) -> dict[str, Any]:
    unknown = set(values) - allowed
    if unknown:
        raise ValidationFailure("unknown_column", f"Unknown columns: {', '.join(sorted(unknown))}")
    return values


@asynccontextmanager
async def _conn():
    """system_conn() with driver errors translated into engine errors."""
    try:
        async with system_conn() as conn:
            yield conn
    except _TRANSIENT_ERRORS as e:
        raise TransientStoreError(f"Database unavailable: {e}") from e
    except asyncpg.exceptions.UniqueViolationError as e:
        raise ValidationFailure("slug_taken", "Slug is already in use") from e


class TemplateRepo(RelationalStore):
    """All template-related database operations."""

    # -- templates ----------------------------------------------------------

    async def get_template_row(self, template_id: str) -> dict[str, Any] | None:
        tid = _uuid(template_id)
        if tid is None:
            return None
        async with _conn() as conn:
            row = await conn.fetchrow("SELECT * FROM templates WHERE id = $1", tid)
            return _row_to_dict(row) if row else None

    async def get_template_row_by_slug(self, slug: str) -> dict[str, Any] | None:
        async with _conn() as conn:
            row = await conn.fetchrow("SELECT * FROM templates WHERE slug = $1", slug)
            return _row_to_dict(row) if row else None

    async def list_template_rows(self) -> list[dict[str, Any]]:
        """
        List all templates, most recently updated first.

        Returns:
            Template rows only; sections and elements are not read
        """
        async with _conn() as conn:
            rows = await conn.fetch("SELECT * FROM templates ORDER BY updated_at DESC")
            return [_row_to_dict(row) for row in rows]

    async def insert_template_row(self, values: dict[str, Any]) -> dict[str, Any]:
        values = {k: v for k, v in _check_columns(values, _TEMPLATE_COLUMNS).items() if v is not None}
        if "source_template_id" in values:
            values["source_template_id"] = _uuid(values["source_template_id"])
        cols = list(values)
        placeholders = ", ".join(f"${i + 1}" for i in range(len(cols)))

        async with _conn() as conn:
            if not cols:
                row = await conn.fetchrow("INSERT INTO templates DEFAULT VALUES RETURNING *")
            else:
                # S608/B608: False positive - cols only contains validated column names
                row = await conn.fetchrow(
                    f"INSERT INTO templates ({', '.join(cols)}) VALUES ({placeholders}) RETURNING *",  # nosec B608
                    *values.values(),
                )
            return _row_to_dict(row)

    async def update_template_row(self, template_id: str, values: dict[str, Any]) -> dict[str, Any] | None:
        """
        Update only the given columns.

        Args:
            template_id: Template UUID
            values: Column → value; omitted columns are left untouched

        Returns:
            Updated row, or None if the template does not exist
        """
        tid = _uuid(template_id)
        if tid is None:
            return None
        values = _check_columns(dict(values), _TEMPLATE_COLUMNS)
        if not values:
            return await self.get_template_row(template_id)

        set_clause = ", ".join(f"{k} = ${i + 2}" for i, k in enumerate(values))
        async with _conn() as conn:
            # S608/B608: False positive - set_clause only contains validated column names
            row = await conn.fetchrow(
                f"""
                UPDATE templates
                SET {set_clause}, updated_at = now()
                WHERE id = $1
                RETURNING *
                """,  # nosec B608
                tid,
                *values.values(),
            )
            return _row_to_dict(row) if row else None

    async def delete_template_row(self, template_id: str) -> bool:
        """Delete a template. Sections and elements go with it (ON DELETE CASCADE)."""
        tid = _uuid(template_id)
        if tid is None:
            return False
        async with _conn() as conn:
            result = await conn.execute("DELETE FROM templates WHERE id = $1", tid)
            return result == "DELETE 1"

    # -- sections -----------------------------------------------------------

    async def get_section_rows(self, template_id: str) -> list[dict[str, Any]]:
        tid = _uuid(template_id)
        if tid is None:
            return []
        async with _conn() as conn:
            rows = await conn.fetch(
                "SELECT * FROM template_sections WHERE template_id = $1 ORDER BY created_at",
                tid,
            )
            return [_row_to_dict(row) for row in rows]

    async def upsert_section_row(self, template_id: str, section_type: str, values: dict[str, Any]) -> dict[str, Any]:
        """
        Insert the (template_id, type) row, or update the given columns if it exists.

        Raises:
            TemplateNotFound: the template does not exist
        """
        tid = _uuid(template_id)
        if tid is None:
            raise TemplateNotFound(template_id)
        values = _check_columns(dict(values), _SECTION_COLUMNS)
        cols = ["template_id", "type", *values]
        placeholders = ", ".join(f"${i + 1}" for i in range(len(cols)))
        updates = ", ".join(f"{k} = EXCLUDED.{k}" for k in values)
        # With nothing to change, still touch the row so RETURNING yields it
        set_clause = f"{updates}, updated_at = now()" if updates else "updated_at = template_sections.updated_at"

        try:
            async with _conn() as conn:
                # S608/B608: False positive - cols only contains validated column names
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO template_sections ({', '.join(cols)})
                    VALUES ({placeholders})
                    ON CONFLICT (template_id, type) DO UPDATE SET {set_clause}
                    RETURNING *
                    """,  # nosec B608
                    tid,
                    section_type,
                    *values.values(),
                )
                return _row_to_dict(row)
        except asyncpg.exceptions.ForeignKeyViolationError as e:
            raise TemplateNotFound(template_id) from e

    async def delete_section_row(self, template_id: str, section_type: str) -> bool:
        tid = _uuid(template_id)
        if tid is None:
            return False
        async with _conn() as conn:
            result = await conn.execute(
                "DELETE FROM template_sections WHERE template_id = $1 AND type = $2",
                tid,
                section_type,
            )
            return result == "DELETE 1"

    # -- elements -----------------------------------------------------------

    async def get_element_rows(self, section_ids: Sequence[str]) -> list[dict[str, Any]]:
        ids = [sid for sid in (_uuid(s) for s in section_ids) if sid is not None]
        if not ids:
            return []
        async with _conn() as conn:
            rows = await conn.fetch(
                "SELECT * FROM template_elements WHERE section_id = ANY($1::uuid[]) ORDER BY created_at",
                ids,
            )
            return [_row_to_dict(row) for row in rows]

    async def get_element_row(self, element_id: str) -> dict[str, Any] | None:
        eid = _uuid(element_id)
        if eid is None:
            return None
        async with _conn() as conn:
            row = await conn.fetchrow("SELECT * FROM template_elements WHERE id = $1", eid)
            return _row_to_dict(row) if row else None

    async def insert_element_row(self, section_id: str, values: dict[str, Any]) -> dict[str, Any]:
        sid = _uuid(section_id)
        if sid is None:
            raise ValidationFailure("invalid_section", f"Section {section_id} does not exist")
        values = {k: v for k, v in _check_columns(dict(values), _ELEMENT_COLUMNS).items() if v is not None}
        cols = ["section_id", *values]
        placeholders = ", ".join(f"${i + 1}" for i in range(len(cols)))

        try:
            async with _conn() as conn:
                # S608/B608: False positive - cols only contains validated column names
                row = await conn.fetchrow(
                    f"INSERT INTO template_elements ({', '.join(cols)}) VALUES ({placeholders}) RETURNING *",  # nosec B608
                    sid,
                    *values.values(),
                )
                return _row_to_dict(row)
        except asyncpg.exceptions.ForeignKeyViolationError as e:
            raise ValidationFailure("invalid_section", f"Section {section_id} does not exist") from e

    async def update_element_row(self, element_id: str, values: dict[str, Any]) -> dict[str, Any] | None:
        eid = _uuid(element_id)
        if eid is None:
            return None
        values = _check_columns(dict(values), _ELEMENT_COLUMNS)
        if not values:
            return await self.get_element_row(element_id)

        set_clause = ", ".join(f"{k} = ${i + 2}" for i, k in enumerate(values))
        async with _conn() as conn:
            # S608/B608: False positive - set_clause only contains validated column names
            row = await conn.fetchrow(
                f"""
                UPDATE template_elements
                SET {set_clause}, updated_at = now()
                WHERE id = $1
                RETURNING *
                """,  # nosec B608
                eid,
                *values.values(),
            )
            return _row_to_dict(row) if row else None

    async def delete_element_row(self, element_id: str) -> bool:
        eid = _uuid(element_id)
        if eid is None:
            return False
        async with _conn() as conn:
            result = await conn.execute("DELETE FROM template_elements WHERE id = $1", eid)
            return result == "DELETE 1"


# Singleton instance
template_repo = TemplateRepo()
