"""Statement and result models."""

from __future__ import annotations

import re
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

# Leading comments and opening parens are skipped when looking for the verb
_LEADING_NOISE_RE = re.compile(r"^(?:\s+|--[^\n]*(?:\n|$)|/\*.*?\*/|\()*", re.DOTALL)
_WORD_RE = re.compile(r"[A-Za-z]+")
_TRANSACTION_CONTROL_RE = re.compile(
    r"(?:BEGIN|COMMIT|END|ROLLBACK|ABORT)(?:\s+(?:TRANSACTION|WORK))?|START\s+TRANSACTION",
    re.IGNORECASE,
)
_QUERY_KEYWORDS = frozenset({"SELECT", "WITH", "VALUES", "TABLE", "SHOW", "EXPLAIN", "PRAGMA"})
_TRANSACTION_VERBS = {
    "BEGIN": "BEGIN",
    "START": "BEGIN",
    "COMMIT": "COMMIT",
    "END": "COMMIT",
    "ROLLBACK": "ROLLBACK",
    "ABORT": "ROLLBACK",
}


class Statement(BaseModel):
    """One SQL command with optional bound parameters.

    Parameters use ``?`` placeholders regardless of backend.
    """

    model_config = ConfigDict(frozen=True)

    # Verbs that may only appear as bare BEGIN, COMMIT or ROLLBACK statements
    TRANSACTION_KEYWORDS: ClassVar[frozenset[str]] = frozenset(_TRANSACTION_VERBS)

    sql: str = Field(min_length=1)
    params: tuple[Any, ...] = ()

    @property
    def keyword(self) -> str:
        """Leading SQL verb in upper case (``SELECT``, ``CREATE``, ...)."""
        body = _LEADING_NOISE_RE.sub("", self.sql, count=1)
        match = _WORD_RE.match(body)
        return match.group(0).upper() if match else ""

    @property
    def kind(self) -> str:
        """``query`` for row-returning verbs, ``command`` otherwise (a guess)."""
        return "query" if self.keyword in _QUERY_KEYWORDS else "command"

    @property
    def transaction_control(self) -> str | None:
        """``BEGIN``, ``COMMIT`` or ``ROLLBACK`` for a bare transaction statement.

        Aliases are normalized: ``START TRANSACTION`` is ``BEGIN``, ``END``
        is ``COMMIT`` and ``ABORT`` is ``ROLLBACK``.
        """
        body = _LEADING_NOISE_RE.sub("", self.sql, count=1).strip().rstrip(";").rstrip()
        if not _TRANSACTION_CONTROL_RE.fullmatch(body):
            return None
        return _TRANSACTION_VERBS[self.keyword]


class RowCount(BaseModel):
    """Affected-row count of a DDL or DML statement."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(ge=0)
    command: str = ""


class StatementOutcome(BaseModel):
    """What happened to one statement of a script run."""

    statement: Statement
    row_count: int | None = None
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True if the statement succeeded."""
        return self.error is None
