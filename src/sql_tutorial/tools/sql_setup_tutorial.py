"""sql_setup_tutorial MCP tool — create and seed the exercise tables."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from sql_tutorial.errors import RunnerError
from sql_tutorial.runner import TutorialRunner
from sql_tutorial.tutorial import create_schema, drop_schema, seed

logger = logging.getLogger(__name__)


async def setup_tutorial(
    runner: TutorialRunner, *, reset: bool = False, with_seed: bool = True
) -> str:
    """Create player, team and player_team, optionally dropping and seeding."""
    lines: list[str] = []
    try:
        if reset:
            await drop_schema(runner)
            lines.append("Dropped existing tutorial tables")
        await create_schema(runner)
        lines.append("Created tables: player, team, player_team")
        if with_seed:
            count = await seed(runner)
            lines.append(f"Inserted {count} sample rows")
    except RunnerError as e:
        lines.append(f"Error: {e.message}")
    return "\n".join(lines)


def register_sql_setup_tutorial(mcp: FastMCP) -> None:
    """Register the sql_setup_tutorial tool with the MCP server."""

    @mcp.tool()
    async def sql_setup_tutorial(
        reset: Annotated[
            bool, Field(description="Drop the tutorial tables first if they exist")
        ] = False,
        with_seed: Annotated[bool, Field(description="Insert the sample rows")] = True,
        ctx: Context | None = None,
    ) -> str:
        """Create the exercise tables (player, team, player_team).

        The tables carry primary keys, foreign keys, a UNIQUE (name, city)
        constraint on team and a CHECK (height > 0) constraint on player.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        runner: TutorialRunner = ctx.lifespan_context["runner"]
        return await setup_tutorial(runner, reset=reset, with_seed=with_seed)
