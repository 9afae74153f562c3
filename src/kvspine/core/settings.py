"""Environment-driven settings for kvspine.

``KVSettings`` describes which storage backend to build and how to reach
it. Values come from keyword arguments, ``KVSPINE_*`` environment variables
or a ``.env`` file, in that order of precedence.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    A missing file extension or an unknown backend name is caught when the
    settings object is built, not on the first write.

Examples:
    >>> from kvspine.core.settings import KVSettings
    >>> settings = KVSettings(backend="file", path="./database", tables=["main", "users"])
    >>> settings.declared_tables()
    ['main', 'users', 'timeout']

    From the environment::

        KVSPINE_BACKEND=sql
        KVSPINE_URL=sqlite:///kv.sqlite
        KVSPINE_TABLES='["main","users"]'

Tags:
    settings, configuration, pydantic, environment, kvspine
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TIMEOUT_TABLE = "timeout"

BackendName = Literal["file", "sql", "mongo", "firestore"]


class KVSettings(BaseSettings):
    """Settings for building a store.

    Fields
    ──────
    backend      : Storage medium (file, sql, mongo, firestore)
    path         : Root directory of the file backend
    extname      : File extension of the file backend's table documents
    tables       : Declared tables (``timeout`` is appended automatically)
    url          : SQLAlchemy URL (sql) or connection string (mongo)
    database     : MongoDB database name
    project      : Google Cloud project (firestore)
    logging      : Log the ``ready`` signal
    log_level    : Structlog log level
    json_logs    : Force JSON (True) or console (False) rendering
    """

    model_config = SettingsConfigDict(
        env_prefix="KVSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Backend ──────────────────────────────────────────────────
    backend: BackendName = "file"
    path: str = "database"
    extname: str = ".json"
    tables: list[str] = Field(default_factory=lambda: ["main"])

    # ── Remote media ─────────────────────────────────────────────
    url: str | None = None
    database: str = "kvspine"
    project: str | None = None

    # ── Observability ────────────────────────────────────────────
    logging: bool = True
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("extname")
    @classmethod
    def _dotted_extname(cls, value: str) -> str:
        if value and not value.startswith("."):
            return f".{value}"
        return value

    @field_validator("tables")
    @classmethod
    def _unique_tables(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one table must be declared")
        return list(dict.fromkeys(value))

    def declared_tables(self) -> list[str]:
        """Declared tables with the reserved ``timeout`` table appended."""
        return with_timeout_table(self.tables)


def with_timeout_table(tables: list[str] | tuple[str, ...] | None) -> list[str]:
    """Append the reserved timeout table unless it is already declared."""
    result = list(tables) if tables else ["main"]
    if TIMEOUT_TABLE not in result:
        result.append(TIMEOUT_TABLE)
    return result


__all__ = [
    "KVSettings",
    "BackendName",
    "TIMEOUT_TABLE",
    "with_timeout_table",
]
