"""Connection configuration model."""

from __future__ import annotations

from enum import StrEnum
from urllib.parse import unquote, urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Driver(StrEnum):
    """Supported database drivers."""

    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class ConnectionConfig(BaseModel):
    """Everything needed to open one database session.

    For SQLite, ``database`` is a file path or ``":memory:"`` and the
    network fields are ignored.
    """

    model_config = ConfigDict(frozen=True)

    driver: Driver = Driver.POSTGRESQL
    host: str = "localhost"
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = Field(min_length=1)
    user: str | None = None
    password: SecretStr | None = None
    connect_timeout: float = Field(default=10.0, gt=0)
    query_timeout: float | None = Field(default=30.0, gt=0)

    @classmethod
    def from_url(cls, url: str, **overrides: object) -> ConnectionConfig:
        """Build a config from a ``postgresql://`` or ``sqlite://`` URL.

        SQLite URLs follow the usual convention: ``sqlite:///relative.db``,
        ``sqlite:////abs/path.db`` and ``sqlite:///:memory:``.
        """
        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme == "sqlite":
            path = parts.path[1:] if parts.path.startswith("/") else parts.path
            database = path or parts.netloc or ":memory:"
            fields: dict[str, object] = {"driver": Driver.SQLITE, "database": database}
        elif scheme in ("postgresql", "postgres"):
            fields = {
                "driver": Driver.POSTGRESQL,
                "host": parts.hostname or "localhost",
                "port": parts.port or 5432,
                "database": unquote(parts.path.lstrip("/")),
                "user": unquote(parts.username) if parts.username else None,
                "password": unquote(parts.password) if parts.password else None,
            }
        else:
            raise ValueError(f"Unsupported database URL scheme: {parts.scheme!r}")
        fields.update(overrides)
        return cls.model_validate(fields)

    def describe(self) -> str:
        """Redacted connection target, safe to log."""
        if self.driver is Driver.SQLITE:
            return f"sqlite:{self.database}"
        who = f"{self.user}@" if self.user else ""
        return f"postgresql://{who}{self.host}:{self.port}/{self.database}"
