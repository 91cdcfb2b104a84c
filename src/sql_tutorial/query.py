"""Lazy, table-backed query builder.

A LazyQuery only describes a SELECT. Each verb returns a new query; the
database is not touched until ``collect()`` or ``count()``.

    tall = runner.table("player").filter("height > ?", 190).order_by("height DESC")
    sql, params = tall.show_query()
    rows = await tall.collect()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from sql_tutorial.db.identifiers import quote_identifier

if TYPE_CHECKING:
    from sql_tutorial.runner import TutorialRunner

logger = logging.getLogger(__name__)

_JOIN_KINDS = {"inner": "INNER JOIN", "left": "LEFT JOIN"}


@dataclass(frozen=True)
class LazyQuery:
    """Deferred SELECT over one table.

    Column lists, conditions and aggregate expressions are SQL fragments;
    values belong in ``filter()`` parameters, never in the fragment text.
    """

    runner: TutorialRunner = field(repr=False, compare=False)
    source: str
    columns: tuple[str, ...] = ()
    joins: tuple[tuple[str, str, str], ...] = ()
    conditions: tuple[tuple[str, tuple[Any, ...]], ...] = ()
    groups: tuple[str, ...] = ()
    aggregates: tuple[tuple[str, str], ...] = ()
    ordering: tuple[str, ...] = ()
    row_limit: int | None = None

    def select(self, *columns: str) -> LazyQuery:
        """Keep only ``columns`` (replaces any earlier selection)."""
        return replace(self, columns=columns)

    def filter(self, condition: str, *params: Any) -> LazyQuery:
        """Add a WHERE condition; multiple filters are ANDed."""
        return replace(self, conditions=(*self.conditions, (condition, params)))

    def join(self, table: str, on: str, how: str = "inner") -> LazyQuery:
        """Join another table on the ``on`` condition (``inner`` or ``left``)."""
        if how not in _JOIN_KINDS:
            raise ValueError(f"Unsupported join kind: {how!r}")
        quote_identifier(table)
        return replace(self, joins=(*self.joins, (how, table, on)))

    def group_by(self, *columns: str) -> LazyQuery:
        """Group rows by ``columns``; pair with summarise()."""
        return replace(self, groups=columns)

    def summarise(self, **aggregates: str) -> LazyQuery:
        """Compute aggregates, e.g. ``summarise(n="COUNT(*)")``."""
        for alias in aggregates:
            quote_identifier(alias)
        return replace(self, aggregates=tuple(aggregates.items()))

    def order_by(self, *columns: str) -> LazyQuery:
        """Sort by ``columns``; append ``DESC`` inside a column for descending."""
        return replace(self, ordering=columns)

    def limit(self, n: int) -> LazyQuery:
        """Return at most ``n`` rows."""
        if n < 0:
            raise ValueError("limit must be non-negative")
        return replace(self, row_limit=n)

    def show_query(self) -> tuple[str, tuple[Any, ...]]:
        """Render the SQL and its parameters without running anything."""
        if self.aggregates:
            select_list = [
                *self.groups,
                *(f"{expr} AS {quote_identifier(alias)}" for alias, expr in self.aggregates),
            ]
        elif self.columns:
            select_list = list(self.columns)
        else:
            select_list = ["*"]

        parts = [f"SELECT {', '.join(select_list)}", f"FROM {quote_identifier(self.source)}"]
        for how, table, on in self.joins:
            parts.append(f"{_JOIN_KINDS[how]} {quote_identifier(table)} ON {on}")
        if self.conditions:
            parts.append("WHERE " + " AND ".join(f"({cond})" for cond, _ in self.conditions))
        if self.groups:
            parts.append(f"GROUP BY {', '.join(self.groups)}")
        if self.ordering:
            parts.append(f"ORDER BY {', '.join(self.ordering)}")
        if self.row_limit is not None:
            parts.append(f"LIMIT {int(self.row_limit)}")

        params = tuple(p for _, cond_params in self.conditions for p in cond_params)
        return " ".join(parts), params

    async def collect(self) -> list[dict[str, Any]]:
        """Run the query and materialize every row."""
        sql, params = self.show_query()
        logger.debug("Collecting lazy query: %s", sql)
        return await self.runner.get_query(sql, params)

    async def count(self) -> int:
        """Run the query as ``COUNT(*)`` and return the number of rows."""
        sql, params = self.show_query()
        rows = await self.runner.get_query(f"SELECT COUNT(*) AS n FROM ({sql}) AS q", params)
        return int(rows[0]["n"])
