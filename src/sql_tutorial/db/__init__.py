"""Database backends and connection management."""

from sql_tutorial.db.backend import Cursor, Database, Row
from sql_tutorial.db.connection import create_connection
from sql_tutorial.db.postgres_backend import PostgresBackend
from sql_tutorial.db.sqlite_backend import SQLiteBackend

__all__ = ["Cursor", "Database", "PostgresBackend", "Row", "SQLiteBackend", "create_connection"]
