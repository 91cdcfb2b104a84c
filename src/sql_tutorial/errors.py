"""Runner error hierarchy.

Every failure surfaced by the runner is a ``RunnerError``. Backend-specific
exceptions (asyncpg, sqlite3) are translated into these at the backend
boundary so callers never depend on a particular driver.
"""

from __future__ import annotations

from typing import Any


class RunnerError(Exception):
    """Base class for all runner errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DatabaseConnectionError(RunnerError, ConnectionError):
    """The database could not be reached or rejected the credentials."""


class StatementError(RunnerError):
    """A statement failed: bad syntax, constraint violation, or timeout.

    ``message`` is the server-reported text, unmodified.
    """

    def __init__(self, message: str, *, sql: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql


class TransactionError(RunnerError):
    """Transaction boundary misuse, or use of an aborted transaction."""


class ScriptError(StatementError):
    """A script run halted on a failing statement.

    ``outcomes`` holds one entry per statement attempted, the failing one last.
    """

    def __init__(self, message: str, *, sql: str | None = None, outcomes: list[Any]) -> None:
        super().__init__(message, sql=sql)
        self.outcomes = outcomes


__all__ = [
    "DatabaseConnectionError",
    "RunnerError",
    "ScriptError",
    "StatementError",
    "TransactionError",
]
