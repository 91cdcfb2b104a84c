"""Plain-text output formatters for tool and CLI responses."""

from typing import Any

from sql_tutorial.models.statement import RowCount, StatementOutcome

_TRANSACTION_COMMANDS = frozenset({"BEGIN", "COMMIT", "ROLLBACK"})


def format_value(value: Any) -> str:
    """Render one cell; NULL is shown as ``NULL``."""
    if value is None:
        return "NULL"
    return str(value)


def format_table(
    columns: list[str], rows: list[dict[str, Any]], max_rows: int | None = None
) -> str:
    """psql-style grid followed by a row count.

     id | name
    ----+------
     1  | Ana
    (1 row)
    """
    shown = rows if max_rows is None else rows[:max_rows]
    cells = [[format_value(row.get(col)) for col in columns] for row in shown]
    widths = [
        max([len(col), *(len(line[i]) for line in cells)]) for i, col in enumerate(columns)
    ]

    lines = [" " + " | ".join(col.ljust(w) for col, w in zip(columns, widths, strict=True))]
    lines.append("+".join("-" * (w + 2) for w in widths))
    for line in cells:
        lines.append(" " + " | ".join(cell.ljust(w) for cell, w in zip(line, widths, strict=True)))

    noun = "row" if len(rows) == 1 else "rows"
    footer = f"({len(rows)} {noun})"
    if len(shown) < len(rows):
        footer += f", showing first {len(shown)}"
    lines.append(footer)
    return "\n".join(line.rstrip() for line in lines)


def format_row_count(result: RowCount) -> str:
    """Format: ``INSERT 1`` / ``CREATE 0``; transaction statements show just ``BEGIN``."""
    if result.command in _TRANSACTION_COMMANDS:
        return result.command
    command = result.command or "OK"
    return f"{command} {result.count}"


def format_outcome(outcome: StatementOutcome, max_rows: int | None = None) -> str:
    """One statement's result: an error line, a grid, or a row count."""
    if outcome.error is not None:
        return f"Error: {outcome.error}"
    if outcome.rows is not None:
        return format_table(outcome.columns, outcome.rows, max_rows)
    return format_row_count(
        RowCount(
            count=outcome.row_count or 0,
            command=outcome.statement.transaction_control or outcome.statement.keyword,
        )
    )


def format_outcomes(outcomes: list[StatementOutcome], max_rows: int | None = None) -> str:
    """All outcomes of a script run, separated by blank lines."""
    if not outcomes:
        return "No statements executed."
    return "\n\n".join(format_outcome(o, max_rows) for o in outcomes)
