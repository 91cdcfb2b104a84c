"""Database connection management."""

import logging
import sqlite3

import aiosqlite

from sql_tutorial.db.backend import Database
from sql_tutorial.db.postgres_backend import PostgresBackend
from sql_tutorial.db.sqlite_backend import SQLiteBackend
from sql_tutorial.errors import DatabaseConnectionError
from sql_tutorial.models.config import ConnectionConfig, Driver

logger = logging.getLogger(__name__)


async def create_connection(config: ConnectionConfig) -> Database:
    """Open a database session for ``config``.

    Dispatches to SQLite or PostgreSQL based on ``config.driver``. Raises
    DatabaseConnectionError when the target cannot be reached.
    """
    logger.info("Connecting to %s", config.describe())
    if config.driver is Driver.SQLITE:
        return await _create_sqlite(config)
    return await _create_postgres(config)


async def _create_sqlite(config: ConnectionConfig) -> Database:
    """Create a SQLite backend in autocommit mode with foreign keys enforced."""
    try:
        conn = await aiosqlite.connect(
            config.database, timeout=config.connect_timeout, isolation_level=None
        )
    except sqlite3.Error as e:
        raise DatabaseConnectionError(f"could not connect to {config.describe()}: {e}") from e

    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys=ON")
    return SQLiteBackend(conn)


async def _create_postgres(config: ConnectionConfig) -> Database:
    """Create a PostgreSQL backend over one asyncpg connection."""
    return await PostgresBackend.create(config)
