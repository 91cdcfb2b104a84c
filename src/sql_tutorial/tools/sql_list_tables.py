"""sql_list_tables MCP tool — list tables or the fields of one table."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from sql_tutorial.errors import RunnerError
from sql_tutorial.runner import TutorialRunner

logger = logging.getLogger(__name__)


async def describe_tables(runner: TutorialRunner, table: str | None = None) -> str:
    """List all tables, or the columns of ``table``."""
    try:
        if table:
            fields = await runner.list_fields(table)
            return f"{table}: " + ", ".join(fields)
        tables = await runner.list_tables()
    except RunnerError as e:
        return f"Error: {e.message}"
    if not tables:
        return "No tables found."
    return "\n".join(tables)


def register_sql_list_tables(mcp: FastMCP) -> None:
    """Register the sql_list_tables tool with the MCP server."""

    @mcp.tool()
    async def sql_list_tables(
        table: Annotated[
            str | None, Field(description="Table whose columns to list; omit to list tables")
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        """List the tables in the database, or the columns of one table."""
        if ctx is None:
            raise RuntimeError("Context not injected")
        runner: TutorialRunner = ctx.lifespan_context["runner"]
        return await describe_tables(runner, table)
