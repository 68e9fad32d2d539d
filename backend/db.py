"""
Postgres connection pool for the template tables.

Every query goes through system_conn(), which hands out a pooled
connection wrapped in a transaction. Nothing else touches the pool.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager

import asyncpg

from backend.config import settings

logger = logging.getLogger(__name__)

pool: asyncpg.Pool | None = None


async def init_pool(dsn: str | None = None) -> None:
    """Create the pool. Called once from the app lifespan (and by scripts)."""
    global pool
    pool = await asyncpg.create_pool(
        dsn=dsn or settings.DATABASE_URL,
        min_size=settings.DB_POOL_MIN_SIZE,
        max_size=settings.DB_POOL_MAX_SIZE,
        command_timeout=settings.DB_COMMAND_TIMEOUT,
        init=_init_connection,
    )
    logger.info("db: pool ready (min=%d max=%d)", settings.DB_POOL_MIN_SIZE, settings.DB_POOL_MAX_SIZE)


async def close_pool() -> None:
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    # section_order, global_theme and every *_config column are JSONB;
    # repos pass and receive plain dicts/lists
    for type_name in ("jsonb", "json"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


@asynccontextmanager
async def system_conn():
    """
    Acquire a pooled connection inside a transaction.

    Usage:
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM templates WHERE slug = $1", slug)

    Raises:
        RuntimeError: init_pool() has not run
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        async with conn.transaction():
            yield conn
