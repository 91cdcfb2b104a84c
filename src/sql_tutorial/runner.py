"""Tutorial script runner: one connection, statements executed in order.

The runner owns a single database session for its whole lifetime. Outside
an explicit transaction each statement commits on its own, so a later
failure never undoes an earlier statement. Inside a transaction any
failure aborts the scope and only ``rollback()`` is accepted afterwards.

An open transaction scope belongs to the task that opened it. Statements
from other tasks wait until the scope is committed or rolled back, so they
can never end up inside someone else's transaction.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sql_tutorial.db.backend import Cursor, Database, Row
from sql_tutorial.db.connection import create_connection
from sql_tutorial.db.identifiers import quote_identifier
from sql_tutorial.errors import RunnerError, ScriptError, StatementError, TransactionError
from sql_tutorial.models.config import ConnectionConfig
from sql_tutorial.models.statement import RowCount, Statement, StatementOutcome
from sql_tutorial.query import LazyQuery

logger = logging.getLogger(__name__)


def _unique_columns(columns: list[str]) -> list[str]:
    """Suffix repeated names (``name``, ``name_1``) so no column is shadowed."""
    taken = set(columns)
    used: set[str] = set()
    unique: list[str] = []
    for col in columns:
        candidate = col
        n = 0
        while candidate in used or (candidate != col and candidate in taken):
            n += 1
            candidate = f"{col}_{n}"
        used.add(candidate)
        unique.append(candidate)
    return unique


class ResultSet:
    """Rows of one executed query, handed out lazily.

    Single pass: once exhausted, run the statement again to see the rows
    again. Repeated column names (e.g. ``id`` after a join) are suffixed
    in ``columns`` and in collected rows.
    """

    def __init__(self, cursor: Cursor, columns: list[str]) -> None:
        """Initialize with a backend cursor and its column names."""
        self._cursor = cursor
        self._columns = _unique_columns(columns)

    @property
    def columns(self) -> list[str]:
        """Result column names in select-list order."""
        return list(self._columns)

    def __aiter__(self) -> AsyncIterator[Row]:
        return self

    async def __anext__(self) -> Row:
        row = await self._cursor.fetchone()
        if row is None:
            raise StopAsyncIteration
        return row

    async def fetchone(self) -> Row | None:
        """Fetch the next row, or None if exhausted."""
        return await self._cursor.fetchone()

    async def fetchall(self) -> list[Row]:
        """Fetch all remaining rows."""
        return await self._cursor.fetchall()

    async def collect(self) -> list[dict[str, Any]]:
        """Materialize the remaining rows as dicts keyed by column name."""
        rows = await self._cursor.fetchall()
        width = len(self._columns)
        return [{self._columns[i]: row[i] for i in range(width)} for row in rows]


def _as_statement(statement: Statement | str, params: Sequence[Any] = ()) -> Statement:
    if isinstance(statement, Statement):
        if params:
            raise ValueError("Bind parameters inside the Statement, not alongside it")
        return statement
    return Statement(sql=statement, params=tuple(params))


class TutorialRunner:
    """Executes statements against one database session.

    Create with ``await TutorialRunner.connect(config)`` or use the
    ``session()`` context manager, which guarantees ``disconnect()``.
    """

    def __init__(self, db: Database, *, query_timeout: float | None = None) -> None:
        """Initialize with an open backend; the runner takes ownership of it."""
        self._db = db
        self._query_timeout = query_timeout
        self._lock = asyncio.Lock()
        self._scope_free = asyncio.Condition(self._lock)
        self._scope_owner: asyncio.Task[Any] | None = None
        self._wakeups: set[asyncio.Task[None]] = set()
        self._closed = False
        self._aborted = False

    @classmethod
    async def connect(cls, config: ConnectionConfig) -> TutorialRunner:
        """Open a session described by ``config``.

        Raises DatabaseConnectionError when the host is unreachable or the
        credentials are rejected.
        """
        db = await create_connection(config)
        logger.info("Connected to %s", config.describe())
        return cls(db, query_timeout=config.query_timeout)

    async def __aenter__(self) -> TutorialRunner:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    @property
    def closed(self) -> bool:
        """True once disconnect() has run."""
        return self._closed

    @property
    def in_transaction(self) -> bool:
        """True while a transaction scope is open."""
        return not self._closed and self._db.in_transaction

    @property
    def aborted(self) -> bool:
        """True if a statement failed inside the open transaction."""
        return self._aborted

    def _check_usable(self) -> None:
        if self._closed:
            raise RunnerError("runner is disconnected")
        if self._aborted:
            raise TransactionError("current transaction is aborted, rollback required")

    # -- Scope ownership --

    def _holds_scope(self) -> bool:
        """True if the open scope (if any) may be used by the current task."""
        owner = self._scope_owner
        return owner is None or owner is asyncio.current_task() or owner.done()

    def _may_proceed(self) -> bool:
        if self._closed or self._scope_owner is None:
            return True
        if not self._holds_scope():
            return False
        # A finished owner left its scope open; the next caller continues it
        self._set_scope_owner(asyncio.current_task())
        return True

    def _set_scope_owner(self, task: asyncio.Task[Any] | None) -> None:
        if self._scope_owner is task:
            return
        if self._scope_owner is not None:
            self._scope_owner.remove_done_callback(self._on_scope_owner_done)
        self._scope_owner = task
        if task is not None:
            task.add_done_callback(self._on_scope_owner_done)

    def _on_scope_owner_done(self, task: asyncio.Task[Any]) -> None:
        if self._scope_owner is task and not self._closed:
            wakeup = asyncio.ensure_future(self._notify_scope_waiters())
            self._wakeups.add(wakeup)
            wakeup.add_done_callback(self._wakeups.discard)

    async def _notify_scope_waiters(self) -> None:
        async with self._scope_free:
            self._scope_free.notify_all()

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[None]:
        """Hold the connection, waiting out a scope opened by another task."""
        async with self._scope_free:
            await self._scope_free.wait_for(self._may_proceed)
            yield

    def _release_scope(self) -> None:
        """Forget the scope owner and wake waiting callers; caller holds the lock."""
        self._set_scope_owner(None)
        self._scope_free.notify_all()

    # -- Statements --

    async def execute(
        self, statement: Statement | str, params: Sequence[Any] = ()
    ) -> ResultSet | RowCount:
        """Run one statement.

        Row-returning statements give a ResultSet; everything else gives the
        affected-row count (0 for DDL). Failures raise StatementError with
        the server message. ``BEGIN``, ``COMMIT`` and ``ROLLBACK`` statements
        act like begin(), commit() and rollback().
        """
        stmt = _as_statement(statement, params)
        control = stmt.transaction_control
        if control is not None:
            return await self._run_transaction_control(control)
        if stmt.keyword in Statement.TRANSACTION_KEYWORDS:
            raise StatementError(
                "unsupported transaction statement; use BEGIN, COMMIT or ROLLBACK",
                sql=stmt.sql,
            )

        async with self._connection():
            self._check_usable()
            logger.debug("Executing %s: %s", stmt.kind, stmt.sql)
            try:
                cursor = await self._db.execute(
                    stmt.sql, stmt.params, timeout=self._query_timeout
                )
            except StatementError as e:
                if self._db.in_transaction:
                    self._aborted = True
                logger.warning("Statement failed: %s", e.message)
                raise

        columns = cursor.columns
        if columns is not None:
            return ResultSet(cursor, columns)
        return RowCount(count=max(cursor.rowcount, 0), command=stmt.keyword)

    async def _run_transaction_control(self, verb: str) -> RowCount:
        if verb == "BEGIN":
            await self.begin()
        elif verb == "COMMIT":
            await self.commit()
        else:
            await self.rollback()
        return RowCount(count=0, command=verb)

    async def get_query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a query and materialize its rows."""
        result = await self.execute(sql, params)
        if not isinstance(result, ResultSet):
            raise StatementError("statement does not return rows", sql=sql)
        return await result.collect()

    async def run_script(
        self,
        statements: Iterable[Statement | str],
        *,
        transactional: bool = False,
        continue_on_error: bool = False,
    ) -> list[StatementOutcome]:
        """Execute statements in order and report each one.

        Halts on the first failure with a ScriptError carrying the outcomes
        so far, unless ``continue_on_error`` is set. With ``transactional``
        the whole script commits or, on failure, is rolled back.

        With ``continue_on_error`` inside an aborted transaction, the
        statements that are refused are reported as failures too; a
        ``ROLLBACK`` statement in the script still goes through.
        """
        if transactional and continue_on_error:
            raise ValueError("continue_on_error cannot be combined with transactional")
        script = [_as_statement(s) for s in statements]
        if transactional:
            if any(stmt.transaction_control for stmt in script):
                raise ValueError("transactional scripts cannot contain BEGIN, COMMIT or ROLLBACK")
            async with self.transaction():
                return await self._run_statements(script, continue_on_error=False)
        return await self._run_statements(script, continue_on_error=continue_on_error)

    async def _run_statements(
        self, script: list[Statement], *, continue_on_error: bool
    ) -> list[StatementOutcome]:
        outcomes: list[StatementOutcome] = []
        for stmt in script:
            try:
                result = await self.execute(stmt)
            except (StatementError, TransactionError) as e:
                outcomes.append(StatementOutcome(statement=stmt, error=e.message))
                if not continue_on_error:
                    raise ScriptError(e.message, sql=stmt.sql, outcomes=outcomes) from e
                continue

            if isinstance(result, ResultSet):
                rows = await result.collect()
                outcomes.append(
                    StatementOutcome(
                        statement=stmt, columns=result.columns, rows=rows, row_count=len(rows)
                    )
                )
            else:
                outcomes.append(StatementOutcome(statement=stmt, row_count=result.count))
        return outcomes

    # -- Transactions --

    async def begin(self) -> None:
        """Open a transaction scope owned by the calling task."""
        async with self._connection():
            self._check_usable()
            await self._db.begin()
            self._set_scope_owner(asyncio.current_task())
        logger.debug("Transaction started")

    async def commit(self) -> None:
        """Persist the open transaction scope."""
        async with self._connection():
            if self._closed:
                raise RunnerError("runner is disconnected")
            if self._aborted:
                raise TransactionError("cannot commit an aborted transaction, rollback required")
            await self._db.commit()
            self._release_scope()
        logger.debug("Transaction committed")

    async def rollback(self) -> None:
        """Discard the open transaction scope."""
        async with self._connection():
            if self._closed:
                raise RunnerError("runner is disconnected")
            try:
                await self._db.rollback()
            finally:
                self._aborted = False
                if not self._db.in_transaction:
                    self._release_scope()
        logger.debug("Transaction rolled back")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[TutorialRunner]:
        """Commit on normal exit, roll back if the body raises."""
        await self.begin()
        try:
            yield self
        except Exception:
            await self.rollback()
            raise
        await self.commit()

    # -- Table helpers --

    async def list_tables(self) -> list[str]:
        """Return the names of user tables, sorted."""
        async with self._connection():
            self._check_usable()
            return await self._db.list_tables()

    async def list_fields(self, table: str) -> list[str]:
        """Return the column names of ``table``."""
        async with self._connection():
            self._check_usable()
            return await self._db.list_fields(table)

    async def exists_table(self, table: str) -> bool:
        """True if ``table`` exists."""
        return table in await self.list_tables()

    async def read_table(self, table: str) -> list[dict[str, Any]]:
        """Return every row of ``table``."""
        return await self.get_query(f"SELECT * FROM {quote_identifier(table)}")

    async def write_table(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert ``rows`` into an existing table; returns the number inserted.

        All rows must have the same keys. Unless the caller already holds
        an open transaction, the inserts run in their own scope, so either
        every row lands or none does.
        """
        if not rows:
            return 0
        columns = list(rows[0].keys())
        for row in rows:
            if list(row.keys()) != columns:
                raise ValueError("All rows must have the same columns in the same order")

        column_list = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {quote_identifier(table)} ({column_list}) VALUES ({placeholders})"

        if self.in_transaction and self._holds_scope():
            return await self._insert_rows(sql, columns, rows)
        async with self.transaction():
            return await self._insert_rows(sql, columns, rows)

    async def _insert_rows(
        self, sql: str, columns: list[str], rows: Sequence[Mapping[str, Any]]
    ) -> int:
        total = 0
        for row in rows:
            result = await self.execute(sql, [row[c] for c in columns])
            if isinstance(result, RowCount):
                total += result.count
        return total

    async def remove_table(self, table: str) -> None:
        """Drop ``table``."""
        await self.execute(f"DROP TABLE {quote_identifier(table)}")

    def table(self, name: str) -> LazyQuery:
        """Start a lazy query over ``name``; nothing runs until collect()."""
        quote_identifier(name)
        return LazyQuery(runner=self, source=name)

    # -- Lifecycle --

    async def disconnect(self) -> None:
        """Release the connection. Safe to call more than once.

        An open transaction is rolled back first, whichever task opened
        it. The connection is closed even when that rollback fails.
        """
        if self._closed:
            return
        self._closed = True
        async with self._scope_free:
            try:
                if self._db.in_transaction:
                    logger.warning("Rolling back open transaction on disconnect")
                    await self._db.rollback()
            finally:
                self._aborted = False
                self._release_scope()
                await self._db.close()
                logger.info("Database connection closed")


@asynccontextmanager
async def session(config: ConnectionConfig) -> AsyncIterator[TutorialRunner]:
    """Connect, yield the runner, and always disconnect."""
    runner = await TutorialRunner.connect(config)
    try:
        yield runner
    finally:
        await runner.disconnect()
