"""FastMCP server with lifespan management and tool registration."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from sql_tutorial.config import get_connection_config, get_log_level
from sql_tutorial.runner import TutorialRunner
from sql_tutorial.tools.sql_execute import register_sql_execute
from sql_tutorial.tools.sql_list_tables import register_sql_list_tables
from sql_tutorial.tools.sql_run_script import register_sql_run_script
from sql_tutorial.tools.sql_setup_tutorial import register_sql_setup_tutorial


def configure_logging() -> None:
    """Send log output to stderr at SQL_TUTORIAL_LOG_LEVEL."""
    logging.basicConfig(
        level=getattr(logging, get_log_level(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Own the runner's connection for the lifetime of the server."""
    # stdout is the MCP stdio transport
    configure_logging()
    logger = logging.getLogger(__name__)

    config = get_connection_config()
    logger.info("Opening database %s", config.describe())
    runner = await TutorialRunner.connect(config)

    try:
        yield {"runner": runner}
    finally:
        await runner.disconnect()


_INSTRUCTIONS = """\
This server runs SQL against one relational database session for practising \
the player/team exercise.

- sql_setup_tutorial: create player, team and player_team (optionally seeded).
- sql_list_tables: see which tables exist, or the columns of one table.
- sql_execute: run a single statement. Use ? placeholders with params.
- sql_run_script: run several statements in order; set transactional to make \
the script all-or-nothing.

Statements outside a transaction are committed immediately; a failing \
statement never undoes earlier ones. BEGIN, COMMIT and ROLLBACK can be sent \
through sql_execute; after a failure inside a transaction, send ROLLBACK.
"""


def create_server() -> FastMCP:
    """Create and configure the MCP server with all tools."""
    mcp = FastMCP(
        "sql-tutorial",
        instructions=_INSTRUCTIONS,
        lifespan=lifespan,
    )

    register_sql_execute(mcp)
    register_sql_run_script(mcp)
    register_sql_list_tables(mcp)
    register_sql_setup_tutorial(mcp)

    return mcp
