"""
PostgreSQL access for the TaskFlow store.

One asyncpg pool per process, created on startup when DATABASE_URL is set.
Store code borrows connections with ``get_connection()`` for reads and
``transaction()`` for anything that writes more than one row.
"""

import logging
import os
import pathlib
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)

# Empty means "no database": the API falls back to the in-memory store
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
DB_POOL_MIN_SIZE = int(os.getenv("DB_POOL_MIN_SIZE", "1"))
DB_POOL_MAX_SIZE = int(os.getenv("DB_POOL_MAX_SIZE", "10"))

SCHEMA_PATH = pathlib.Path(__file__).parent / "schema.sql"

_pool: Optional[asyncpg.Pool] = None


async def init_db_pool(
    dsn: Optional[str] = None,
    min_size: int = DB_POOL_MIN_SIZE,
    max_size: int = DB_POOL_MAX_SIZE,
) -> asyncpg.Pool:
    global _pool

    if _pool is not None:
        logger.warning("Database pool already initialized")
        return _pool

    logger.info(f"Opening database pool (min={min_size}, max={max_size})")
    try:
        _pool = await asyncpg.create_pool(
            dsn or DATABASE_URL,
            min_size=min_size,
            max_size=max_size,
            command_timeout=60.0,
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.error(f"Failed to open database pool: {e}")
        raise
    return _pool


async def close_db_pool() -> None:
    global _pool

    if _pool is None:
        return
    await _pool.close()
    _pool = None
    logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_db_pool() first.")
    return _pool


@asynccontextmanager
async def get_connection():
    """
    Borrow a pooled connection.

    Usage:
        async with get_connection() as conn:
            rows = await conn.fetch("SELECT * FROM notes")
    """
    async with get_pool().acquire() as connection:
        yield connection


@asynccontextmanager
async def transaction():
    """Borrow a connection with an open transaction; raising rolls it back."""
    async with get_connection() as conn:
        async with conn.transaction():
            yield conn


async def init_schema() -> None:
    """Create missing tables and indexes from schema.sql."""
    if not SCHEMA_PATH.exists():
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_PATH}")

    async with get_connection() as conn:
        await conn.execute(SCHEMA_PATH.read_text())
    logger.info("Database schema ready")


async def health_check() -> dict:
    try:
        async with get_connection() as conn:
            await conn.fetchval("SELECT 1")
    except (RuntimeError, OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}
    return {
        "status": "healthy",
        "database": "connected",
        "pool_size": _pool.get_size() if _pool else 0,
        "pool_free": _pool.get_idle_size() if _pool else 0,
    }
