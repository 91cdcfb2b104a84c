"""Entry point for the sql-tutorial MCP server."""

from sql_tutorial.server import create_server


def main() -> None:
    """Run the sql-tutorial MCP server."""
    server = create_server()
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
