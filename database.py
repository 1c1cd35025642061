from __future__ import annotations

import logging

import asyncpg

from config import AppConfig

logger = logging.getLogger(__name__)


class DatabaseConnectionError(RuntimeError):
    """Raised when the PostgreSQL pool cannot be opened or does not answer a ping."""


async def create_pool(config: AppConfig) -> asyncpg.Pool:
    """Open the asyncpg pool and verify it with a ping."""
    try:
        pool = await asyncpg.create_pool(
            dsn=config.database_dsn(),
            min_size=config.db_max_idle_connections,
            max_size=config.db_max_connections,
            max_inactive_connection_lifetime=config.db_connection_lifetime.total_seconds(),
        )
    except (OSError, asyncpg.PostgresError) as exc:
        raise DatabaseConnectionError(f"failed to open database: {exc}") from exc

    try:
        await pool.fetchval("SELECT 1")
    except (OSError, asyncpg.PostgresError) as exc:
        await pool.close()
        raise DatabaseConnectionError(f"failed to ping database: {exc}") from exc

    logger.info(
        "PostgreSQL pool created",
        extra={"database": config.database_name, "max_size": config.db_max_connections},
    )
    return pool


async def close_pool(pool: asyncpg.Pool) -> None:
    await pool.close()
    logger.info("PostgreSQL pool closed")
