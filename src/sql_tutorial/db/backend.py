"""Database backend protocol — thin abstraction over one async DB session.

The runner programs against these protocols. Each backend (SQLite,
Postgres) provides a concrete implementation. SQL dialect differences and
driver exceptions are handled inside the backend, not in the runner.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Row(Protocol):
    """A database row supporting both named and positional access."""

    def __getitem__(self, key: str | int) -> Any:
        """Get a column value by name or position."""
        ...

    def keys(self) -> Any:
        """Return column names."""
        ...


@runtime_checkable
class Cursor(Protocol):
    """Async cursor returned by Database.execute()."""

    @property
    def rowcount(self) -> int:
        """Number of rows affected by the last operation, -1 if unknown."""
        ...

    @property
    def columns(self) -> list[str] | None:
        """Result column names, or None if the statement returns no rows."""
        ...

    async def fetchone(self) -> Row | None:
        """Fetch the next row, or None if exhausted."""
        ...

    async def fetchall(self) -> list[Row]:
        """Fetch all remaining rows."""
        ...


@runtime_checkable
class Database(Protocol):
    """One async database session.

    All SQL passed in uses ``?`` placeholders. Outside an explicit
    transaction every statement is committed on its own.

    Failures are raised as ``StatementError`` (with the server message)
    from ``execute`` and as ``TransactionError`` from the boundary calls.
    """

    @property
    def in_transaction(self) -> bool:
        """True between begin() and commit()/rollback()."""
        ...

    async def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | list[Any] = (),
        *,
        timeout: float | None = None,
    ) -> Cursor:
        """Execute a single SQL statement and return a cursor."""
        ...

    async def begin(self) -> None:
        """Open a transaction."""
        ...

    async def commit(self) -> None:
        """Commit the open transaction."""
        ...

    async def rollback(self) -> None:
        """Discard the open transaction."""
        ...

    async def list_tables(self) -> list[str]:
        """Return user table names, sorted."""
        ...

    async def list_fields(self, table: str) -> list[str]:
        """Return column names of a table in declaration order."""
        ...

    async def close(self) -> None:
        """Close the database session."""
        ...
