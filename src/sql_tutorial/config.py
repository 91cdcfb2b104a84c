"""Environment-variable-based configuration."""

import os

from sql_tutorial.models.config import ConnectionConfig, Driver


def get_database_url() -> str | None:
    """Return the full database URL from SQL_TUTORIAL_DATABASE_URL, if set."""
    return os.environ.get("SQL_TUTORIAL_DATABASE_URL") or None


def get_host() -> str:
    """Return the database host from SQL_TUTORIAL_HOST."""
    return os.environ.get("SQL_TUTORIAL_HOST", "localhost")


def get_port() -> int:
    """Return the database port from SQL_TUTORIAL_PORT."""
    return int(os.environ.get("SQL_TUTORIAL_PORT", "5432"))


def get_database_name() -> str | None:
    """Return the database name from SQL_TUTORIAL_DATABASE."""
    return os.environ.get("SQL_TUTORIAL_DATABASE") or None


def get_user() -> str | None:
    """Return the database user from SQL_TUTORIAL_USER."""
    return os.environ.get("SQL_TUTORIAL_USER") or None


def get_password() -> str | None:
    """Return the database password from SQL_TUTORIAL_PASSWORD."""
    return os.environ.get("SQL_TUTORIAL_PASSWORD") or None


def get_connect_timeout() -> float:
    """Return the connect timeout in seconds from SQL_TUTORIAL_CONNECT_TIMEOUT."""
    return float(os.environ.get("SQL_TUTORIAL_CONNECT_TIMEOUT", "10.0"))


def get_query_timeout() -> float | None:
    """Return the per-statement timeout from SQL_TUTORIAL_QUERY_TIMEOUT.

    ``0`` disables the timeout.
    """
    value = float(os.environ.get("SQL_TUTORIAL_QUERY_TIMEOUT", "30.0"))
    return value or None


def get_log_level() -> str:
    """Return the logging level from SQL_TUTORIAL_LOG_LEVEL."""
    return os.environ.get("SQL_TUTORIAL_LOG_LEVEL", "WARNING").upper()


def get_connection_config(password: str | None = None) -> ConnectionConfig:
    """Assemble a ConnectionConfig from the environment.

    SQL_TUTORIAL_DATABASE_URL wins over the individual variables. An explicit
    ``password`` (e.g. prompted for by the CLI) overrides the environment.
    """
    timeouts: dict[str, object] = {
        "connect_timeout": get_connect_timeout(),
        "query_timeout": get_query_timeout(),
    }
    url = get_database_url()
    if url:
        if password is not None:
            timeouts["password"] = password
        return ConnectionConfig.from_url(url, **timeouts)

    database = get_database_name()
    if database is None:
        raise ValueError("Set SQL_TUTORIAL_DATABASE_URL or SQL_TUTORIAL_DATABASE")
    return ConnectionConfig(
        driver=Driver.POSTGRESQL,
        host=get_host(),
        port=get_port(),
        database=database,
        user=get_user(),
        password=password if password is not None else get_password(),
        **timeouts,  # type: ignore[arg-type]
    )
