"""SQLite implementation of the Database protocol.

Thin wrapper around aiosqlite.Connection in autocommit mode: every
statement commits on its own unless an explicit ``BEGIN`` is open.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from typing import TYPE_CHECKING, Any

from sql_tutorial.db.identifiers import quote_identifier
from sql_tutorial.errors import StatementError, TransactionError

if TYPE_CHECKING:
    import aiosqlite

    from sql_tutorial.db.backend import Cursor, Row

logger = logging.getLogger(__name__)

_CREATE_TABLE_RE = re.compile(r"^\s*CREATE\s+(?:TEMP(?:ORARY)?\s+)?TABLE\b", re.IGNORECASE)


class SQLiteCursor:
    """Wraps aiosqlite.Cursor to satisfy the Cursor protocol."""

    def __init__(self, cursor: aiosqlite.Cursor) -> None:
        """Initialize with an aiosqlite cursor."""
        self._cursor = cursor

    @property
    def rowcount(self) -> int:
        """Number of rows affected by the last operation."""
        rc = self._cursor.rowcount
        return rc if rc is not None else -1

    @property
    def columns(self) -> list[str] | None:
        """Result column names, or None for statements without a result."""
        description = self._cursor.description
        if not description:
            return None
        return [col[0] for col in description]

    async def fetchone(self) -> Row | None:
        """Fetch the next row, or None if exhausted."""
        return await self._cursor.fetchone()

    async def fetchall(self) -> list[Row]:
        """Fetch all remaining rows."""
        return list(await self._cursor.fetchall())


class SQLiteBackend:
    """SQLite implementation of the Database protocol.

    SQLite accepts ``REFERENCES`` to a table that does not exist yet and
    only complains on the first insert. PostgreSQL rejects the
    ``CREATE TABLE`` itself; this backend checks new tables after creation
    and drops them again when a referenced table is missing, so both
    backends fail at the same point.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        """Initialize with an aiosqlite connection opened with isolation_level=None."""
        self._conn = conn

    @property
    def in_transaction(self) -> bool:
        """True between begin() and commit()/rollback()."""
        return self._conn.in_transaction

    async def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | list[Any] = (),
        *,
        timeout: float | None = None,
    ) -> Cursor:
        """Execute a single SQL statement and return a cursor."""
        creates_table = bool(_CREATE_TABLE_RE.match(sql))
        tables_before = set(await self.list_tables()) if creates_table else set()

        try:
            cursor = await asyncio.wait_for(self._conn.execute(sql, params), timeout)
        except TimeoutError:
            await self._conn.interrupt()
            raise StatementError(f"statement timed out after {timeout}s", sql=sql) from None
        except sqlite3.Error as e:
            raise StatementError(str(e), sql=sql) from e

        if creates_table:
            await self._check_foreign_key_targets(tables_before, sql)
        return SQLiteCursor(cursor)

    async def _check_foreign_key_targets(self, tables_before: set[str], sql: str) -> None:
        """Reject newly created tables whose foreign keys point nowhere."""
        tables_after = set(await self.list_tables())
        # SQLite table names match case-insensitively
        known = {t.lower() for t in tables_after}
        for table in sorted(tables_after - tables_before):
            cursor = await self._conn.execute(
                'SELECT DISTINCT "table" FROM pragma_foreign_key_list(?)', (table,)
            )
            referenced = {row[0] for row in await cursor.fetchall()}
            missing = sorted(t for t in referenced if t.lower() not in known)
            if missing:
                await self._conn.execute(f"DROP TABLE {quote_identifier(table)}")
                raise StatementError(
                    f"foreign key on {table} references missing table(s): {', '.join(missing)}",
                    sql=sql,
                )

    async def begin(self) -> None:
        """Open a transaction."""
        if self.in_transaction:
            raise TransactionError("a transaction is already active")
        await self._boundary("BEGIN")

    async def commit(self) -> None:
        """Commit the open transaction."""
        if not self.in_transaction:
            raise TransactionError("commit called with no active transaction")
        await self._boundary("COMMIT")

    async def rollback(self) -> None:
        """Discard the open transaction."""
        if not self.in_transaction:
            raise TransactionError("rollback called with no active transaction")
        await self._boundary("ROLLBACK")

    async def _boundary(self, command: str) -> None:
        try:
            await self._conn.execute(command)
        except sqlite3.Error as e:
            raise TransactionError(str(e)) from e

    async def list_tables(self) -> list[str]:
        """Return user table names, sorted."""
        cursor = await self._conn.execute(
            "SELECT name FROM sqlite_master"
            " WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row[0] for row in await cursor.fetchall()]

    async def list_fields(self, table: str) -> list[str]:
        """Return column names of a table in declaration order."""
        cursor = await self._conn.execute(
            "SELECT name FROM pragma_table_info(?) ORDER BY cid", (table,)
        )
        fields = [row[0] for row in await cursor.fetchall()]
        if not fields:
            raise StatementError(f"no such table: {table}")
        return fields

    async def close(self) -> None:
        """Close the database connection."""
        await self._conn.close()
