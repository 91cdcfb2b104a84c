"""Command-line runner for SQL tutorial scripts.

Usage:
    sql-tutorial-run exercises.sql
    sql-tutorial-run --url sqlite:///practice.db --setup --seed
    sql-tutorial-run --transaction -W exercises.sql

Connection settings come from SQL_TUTORIAL_DATABASE_URL (or the
SQL_TUTORIAL_HOST/DATABASE/USER/PASSWORD variables) unless --url is given.
-W prompts for the password instead of reading it from the environment.
"""

import argparse
import asyncio
import getpass
import logging
import sys

from sql_tutorial.config import get_connect_timeout, get_connection_config, get_query_timeout
from sql_tutorial.errors import RunnerError, ScriptError
from sql_tutorial.models.config import ConnectionConfig
from sql_tutorial.runner import TutorialRunner, session
from sql_tutorial.script import load_script
from sql_tutorial.server import configure_logging
from sql_tutorial.tools.formatters import format_outcomes
from sql_tutorial.tutorial import create_schema, drop_schema, seed

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sql-tutorial-run", description="Run SQL scripts against the tutorial database"
    )
    parser.add_argument("scripts", nargs="*", help="SQL script files to run, in order")
    parser.add_argument("--url", default=None, help="Database URL (overrides the environment)")
    parser.add_argument(
        "-W", "--password", action="store_true", help="Prompt for the database password"
    )
    parser.add_argument("--drop", action="store_true", help="Drop the tutorial tables first")
    parser.add_argument("--setup", action="store_true", help="Create the tutorial tables")
    parser.add_argument("--seed", action="store_true", help="Insert the sample rows")
    parser.add_argument(
        "--transaction", action="store_true", help="Run each script as one transaction"
    )
    parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Keep running after a failing statement",
    )
    parser.add_argument(
        "--max-rows", type=int, default=50, help="Maximum rows to print per query"
    )
    return parser


def resolve_config(args: argparse.Namespace) -> ConnectionConfig:
    """Build the connection config from --url or the environment, prompting if asked."""
    password = getpass.getpass("Password: ") if args.password else None
    if args.url:
        overrides: dict[str, object] = {
            "connect_timeout": get_connect_timeout(),
            "query_timeout": get_query_timeout(),
        }
        if password is not None:
            overrides["password"] = password
        return ConnectionConfig.from_url(args.url, **overrides)
    return get_connection_config(password=password)


async def run(args: argparse.Namespace, config: ConnectionConfig) -> int:
    """Run the requested steps; returns the process exit code."""
    async with session(config) as runner:
        if args.drop:
            await drop_schema(runner)
            print("Dropped tutorial tables")
        if args.setup:
            await create_schema(runner)
            print("Created tables: player, team, player_team")
        if args.seed:
            count = await seed(runner)
            print(f"Inserted {count} sample rows")

        exit_code = 0
        for path in args.scripts:
            if not await _run_file(runner, path, args):
                exit_code = 1
                if not args.continue_on_error:
                    break
        return exit_code


async def _run_file(runner: TutorialRunner, path: str, args: argparse.Namespace) -> bool:
    """Run one script file and print its outcomes; False if anything failed."""
    statements = load_script(path)
    logger.info("Running %d statement(s) from %s", len(statements), path)
    try:
        outcomes = await runner.run_script(
            statements,
            transactional=args.transaction,
            continue_on_error=args.continue_on_error and not args.transaction,
        )
    except ScriptError as e:
        print(format_outcomes(e.outcomes, args.max_rows))
        if args.transaction:
            print(f"{path}: transaction rolled back", file=sys.stderr)
        return False
    print(format_outcomes(outcomes, args.max_rows))
    return all(outcome.ok for outcome in outcomes)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        config = resolve_config(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(run(args, config))
    except RunnerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
