"""sql_run_script MCP tool — run a multi-statement script."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from sql_tutorial.errors import RunnerError, ScriptError
from sql_tutorial.runner import TutorialRunner
from sql_tutorial.script import parse_script
from sql_tutorial.tools.formatters import format_outcomes

logger = logging.getLogger(__name__)


async def run_sql_script(
    runner: TutorialRunner,
    script: str,
    *,
    transactional: bool = False,
    continue_on_error: bool = False,
    max_rows: int = 50,
) -> str:
    """Run every statement in ``script`` and format the outcomes."""
    statements = parse_script(script)
    if not statements:
        return "No statements executed."
    try:
        outcomes = await runner.run_script(
            statements, transactional=transactional, continue_on_error=continue_on_error
        )
    except ScriptError as e:
        text = format_outcomes(e.outcomes, max_rows)
        if transactional:
            text += "\n\nTransaction rolled back; no changes were kept."
        else:
            skipped = len(statements) - len(e.outcomes)
            if skipped:
                text += f"\n\nStopped; {skipped} statement(s) not run."
        return text
    except (RunnerError, ValueError) as e:
        return f"Error: {e}"
    return format_outcomes(outcomes, max_rows)


def register_sql_run_script(mcp: FastMCP) -> None:
    """Register the sql_run_script tool with the MCP server."""

    @mcp.tool()
    async def sql_run_script(
        script: Annotated[str, Field(description="SQL statements separated by semicolons")],
        transactional: Annotated[
            bool,
            Field(description="Run the whole script in one transaction (all or nothing)"),
        ] = False,
        continue_on_error: Annotated[
            bool,
            Field(description="Keep going after a failing statement (not with transactional)"),
        ] = False,
        max_rows: Annotated[
            int, Field(description="Maximum rows to display per query", ge=1, le=1000)
        ] = 50,
        ctx: Context | None = None,
    ) -> str:
        """Execute a SQL script statement by statement.

        Stops at the first failing statement unless continue_on_error is set.
        Statements before the failure stay committed unless transactional is
        set, in which case everything is rolled back.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        runner: TutorialRunner = ctx.lifespan_context["runner"]
        return await run_sql_script(
            runner,
            script,
            transactional=transactional,
            continue_on_error=continue_on_error,
            max_rows=max_rows,
        )
