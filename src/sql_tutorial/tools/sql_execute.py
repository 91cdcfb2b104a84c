"""sql_execute MCP tool — run one statement."""

import logging
from typing import Annotated, Any

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from sql_tutorial.errors import RunnerError
from sql_tutorial.runner import ResultSet, TutorialRunner
from sql_tutorial.tools.formatters import format_row_count, format_table

logger = logging.getLogger(__name__)


async def execute_sql(
    runner: TutorialRunner, sql: str, params: list[Any] | None = None, max_rows: int = 50
) -> str:
    """Run ``sql`` and format the rows or the affected-row count."""
    try:
        result = await runner.execute(sql, params or ())
        if isinstance(result, ResultSet):
            rows = await result.collect()
            return format_table(result.columns, rows, max_rows)
        return format_row_count(result)
    except (RunnerError, ValueError) as e:
        return f"Error: {e}"


def register_sql_execute(mcp: FastMCP) -> None:
    """Register the sql_execute tool with the MCP server."""

    @mcp.tool()
    async def sql_execute(
        sql: Annotated[str, Field(description="A single SQL statement")],
        params: Annotated[
            list[Any] | None,
            Field(description="Values for ? placeholders, in order"),
        ] = None,
        max_rows: Annotated[
            int, Field(description="Maximum rows to display", ge=1, le=1000)
        ] = 50,
        ctx: Context | None = None,
    ) -> str:
        """Execute one SQL statement against the tutorial database.

        SELECT-like statements return a table of rows; DDL and DML return
        the affected-row count. Outside a transaction the statement is
        committed immediately. BEGIN opens a transaction that lasts until
        COMMIT or ROLLBACK; after a failure inside it only ROLLBACK works.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        runner: TutorialRunner = ctx.lifespan_context["runner"]
        return await execute_sql(runner, sql, params, max_rows)
