"""Asyncpg connection pool helpers."""
from __future__ import annotations

from typing import Any

import asyncpg  # type: ignore[import-untyped]
import structlog

logger = structlog.get_logger(__name__)

pool: asyncpg.Pool | None = None


async def init_pool(database_url: str, pool_size: int) -> asyncpg.Pool:
    """Initialize the process-wide asyncpg pool (idempotent)."""
    global pool
    if pool is None:
        pool = await asyncpg.create_pool(
            dsn=database_url,
            min_size=1,
            max_size=pool_size,
            command_timeout=30,
        )
        logger.info("database pool initialized", max_size=pool_size)
    return pool


async def close_pool(_app: Any = None) -> None:
    """Close pool on shutdown."""
    global pool
    if pool is not None:
        await pool.close()
        pool = None
        logger.info("database pool closed")
