"""PostgreSQL implementation of the Database protocol.

Uses a single asyncpg connection. All SQL handed to the runner uses ``?``
placeholders; this backend translates them to ``$N`` at execute time.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

import asyncpg

from sql_tutorial.errors import DatabaseConnectionError, StatementError, TransactionError

if TYPE_CHECKING:
    from sql_tutorial.db.backend import Cursor, Row
    from sql_tutorial.models.config import ConnectionConfig

logger = logging.getLogger(__name__)

# Quoted literals and identifiers are matched first so a ``?`` inside them survives
_PLACEHOLDER_RE = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\?")


def _translate_placeholders(sql: str) -> str:
    """Convert ``?`` placeholders to ``$1, $2, ...`` for asyncpg."""
    counter = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal counter
        if match.group(0) != "?":
            return match.group(0)
        counter += 1
        return f"${counter}"

    return _PLACEHOLDER_RE.sub(_replace, sql)


class PostgresRow:
    """Wraps asyncpg.Record to satisfy the Row protocol."""

    def __init__(self, record: asyncpg.Record) -> None:
        """Initialize with an asyncpg Record."""
        self._record = record

    def __getitem__(self, key: str | int) -> Any:
        """Get a column value by name or position."""
        return self._record[key]

    def keys(self) -> list[str]:
        """Return column names."""
        return list(self._record.keys())


class PostgresCursor:
    """Wraps a list of asyncpg.Record as a Cursor.

    asyncpg returns results eagerly; there is no server-side cursor outside
    a transaction. This wraps the result list to match the Cursor protocol
    and hands rows out one at a time.
    """

    def __init__(
        self,
        rows: list[asyncpg.Record],
        status: str | None = None,
        columns: list[str] | None = None,
    ) -> None:
        """Initialize with result rows, optional status string and column names."""
        self._rows = rows
        self._index = 0
        self._rowcount = self._parse_rowcount(status)
        self._columns = columns

    @property
    def rowcount(self) -> int:
        """Number of rows affected by the last operation."""
        return self._rowcount

    @property
    def columns(self) -> list[str] | None:
        """Result column names, or None for statements without a result."""
        return self._columns

    async def fetchone(self) -> Row | None:
        """Fetch the next row, or None if exhausted."""
        if self._index >= len(self._rows):
            return None
        row = PostgresRow(self._rows[self._index])
        self._index += 1
        return row

    async def fetchall(self) -> list[Row]:
        """Fetch all remaining rows."""
        remaining: list[Row] = [PostgresRow(r) for r in self._rows[self._index :]]
        self._index = len(self._rows)
        return remaining

    @staticmethod
    def _parse_rowcount(status: str | None) -> int:
        """Parse affected row count from asyncpg status string.

        Examples: "INSERT 0 1" → 1, "UPDATE 3" → 3, "DELETE 0" → 0,
        "CREATE TABLE" → -1.
        """
        if not status:
            return -1
        parts = status.split()
        if len(parts) >= 2:
            try:
                return int(parts[-1])
            except ValueError:
                pass
        return -1


class PostgresBackend:
    """PostgreSQL implementation of the Database protocol.

    Holds exactly one connection. Outside ``begin()``/``commit()`` the
    server auto-commits each statement.
    """

    def __init__(self, conn: asyncpg.Connection) -> None:
        """Initialize with an open asyncpg connection."""
        self._conn = conn
        self._transaction: asyncpg.transaction.Transaction | None = None

    @classmethod
    async def create(cls, config: ConnectionConfig) -> PostgresBackend:
        """Open a connection described by ``config``."""
        password = config.password.get_secret_value() if config.password else None
        try:
            conn = await asyncpg.connect(
                host=config.host,
                port=config.port,
                user=config.user,
                password=password,
                database=config.database,
                timeout=config.connect_timeout,
            )
        except (OSError, TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise DatabaseConnectionError(
                f"could not connect to {config.describe()}: {e}"
            ) from e
        return cls(conn)

    @property
    def in_transaction(self) -> bool:
        """True between begin() and commit()/rollback()."""
        return self._transaction is not None

    async def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | list[Any] = (),
        *,
        timeout: float | None = None,
    ) -> Cursor:
        """Execute a single SQL statement and return a cursor."""
        pg_sql = _translate_placeholders(sql) if params else sql
        try:
            stmt = await self._conn.prepare(pg_sql, timeout=timeout)
            rows = await stmt.fetch(*params, timeout=timeout)
        except TimeoutError:
            raise StatementError(f"statement timed out after {timeout}s", sql=sql) from None
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise StatementError(str(e), sql=sql) from e

        attributes = stmt.get_attributes()
        columns = [attr.name for attr in attributes] if attributes else None
        return PostgresCursor(rows, status=stmt.get_statusmsg(), columns=columns)

    async def begin(self) -> None:
        """Open a transaction."""
        if self._transaction is not None:
            raise TransactionError("a transaction is already active")
        transaction = self._conn.transaction()
        try:
            await transaction.start()
        except asyncpg.PostgresError as e:
            raise TransactionError(str(e)) from e
        self._transaction = transaction

    async def commit(self) -> None:
        """Commit the open transaction."""
        transaction = self._take_transaction("commit")
        try:
            await transaction.commit()
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise TransactionError(str(e)) from e

    async def rollback(self) -> None:
        """Discard the open transaction."""
        transaction = self._take_transaction("rollback")
        try:
            await transaction.rollback()
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise TransactionError(str(e)) from e

    def _take_transaction(self, action: str) -> asyncpg.transaction.Transaction:
        if self._transaction is None:
            raise TransactionError(f"{action} called with no active transaction")
        transaction, self._transaction = self._transaction, None
        return transaction

    async def list_tables(self) -> list[str]:
        """Return user table names in the current schema, sorted."""
        cursor = await self.execute(
            """SELECT table_name FROM information_schema.tables
               WHERE table_schema = current_schema() AND table_type = 'BASE TABLE'
               ORDER BY table_name"""
        )
        return [row["table_name"] for row in await cursor.fetchall()]

    async def list_fields(self, table: str) -> list[str]:
        """Return column names of a table in declaration order."""
        cursor = await self.execute(
            """SELECT column_name FROM information_schema.columns
               WHERE table_schema = current_schema() AND table_name = ?
               ORDER BY ordinal_position""",
            (table,),
        )
        rows = await cursor.fetchall()
        if not rows:
            raise StatementError(f'relation "{table}" does not exist')
        return [row["column_name"] for row in rows]

    async def close(self) -> None:
        """Close the connection."""
        await self._conn.close()
