"""Relational backend on SQLAlchemy Core.

Every declared table becomes one relational table::

    CREATE TABLE <name> (
        "key"   VARCHAR(255) PRIMARY KEY,
        "value" TEXT NOT NULL          -- JSON document
    )

Any database SQLAlchemy can reach works (SQLite, MySQL, PostgreSQL, ...);
the URL picks the driver. Blocking driver calls run in a worker thread so
every operation is still an ``await`` point for the event loop.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable
from typing import Any

from sqlalchemy import (
    Column,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from kvspine.core.errors import BackendConnectionError, InvalidArgumentError
from kvspine.core.events import EventBus

from .base import TableBackend

DEFAULT_URL = "sqlite:///database.sqlite"


class SQLTableBackend(TableBackend):
    """
    One SQL table per declared table, ``key``/``value`` columns.

    Example:
        >>> backend = SQLTableBackend("sqlite:///kv.sqlite", ["main"])
        >>> await backend.connect()
        >>> await backend.set("main", "greeting", {"text": "hi"})
    """

    name = "sql"
    io_errors = (SQLAlchemyError, OSError, ValueError)

    def __init__(
        self,
        url: str | None = DEFAULT_URL,
        tables: Iterable[str] | None = None,
        *,
        engine: Engine | None = None,
        events: EventBus | None = None,
        **engine_options: Any,
    ):
        if not url and engine is None:
            raise InvalidArgumentError("url")
        super().__init__(tables, events=events)
        self._url = url
        self._engine = engine
        self._owns_engine = engine is None
        self._engine_options = engine_options
        self._metadata = MetaData()
        self._schema: dict[str, Table] = {
            table: Table(
                table,
                self._metadata,
                Column("key", String(255), primary_key=True),
                Column("value", Text, nullable=False),
            )
            for table in self.tables
        }

    @property
    def engine(self) -> Engine | None:
        return self._engine

    # === Medium primitives ===

    def _create_engine(self) -> Engine:
        options = dict(self._engine_options)
        url = make_url(self._url)
        if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
            # One shared connection, or every worker thread gets its own empty database.
            options.setdefault("poolclass", StaticPool)
            options.setdefault("connect_args", {"check_same_thread": False})
        return create_engine(url, **options)

    def _initialize(self) -> None:
        if self._engine is None:
            self._engine = self._create_engine()
        with self._engine.begin() as conn:
            self._metadata.create_all(conn)

    async def _open(self) -> None:
        try:
            await asyncio.to_thread(self._initialize)
        except (SQLAlchemyError, ArgumentError, OSError) as e:
            raise BackendConnectionError(
                f"Failed to connect to {self._url}: {e}",
                cause=e,
            ).with_context(backend=self.name) from e

    async def _close(self) -> None:
        if self._engine is not None and self._owns_engine:
            await asyncio.to_thread(self._engine.dispose)
            self._engine = None

    def _fetch_all(self, table: str) -> dict[str, Any]:
        t = self._schema[table]
        with self._engine.connect() as conn:
            rows = conn.execute(select(t.c.key, t.c.value)).all()
        return {key: json.loads(value) for key, value in rows}

    def _fetch_one(self, table: str, key: str) -> tuple[bool, Any]:
        t = self._schema[table]
        with self._engine.connect() as conn:
            row = conn.execute(select(t.c.value).where(t.c.key == key)).first()
        if row is None:
            return False, None
        return True, json.loads(row[0])

    def _upsert(self, table: str, key: str, value: Any) -> None:
        t = self._schema[table]
        payload = json.dumps(value, default=str)
        with self._engine.begin() as conn:
            result = conn.execute(update(t).where(t.c.key == key).values(value=payload))
            if result.rowcount == 0:
                conn.execute(insert(t).values(key=key, value=payload))

    def _delete_where(self, table: str, keys: list[str] | None) -> None:
        t = self._schema[table]
        statement = delete(t)
        if keys is not None:
            if not keys:
                return
            statement = statement.where(t.c.key.in_(keys))
        with self._engine.begin() as conn:
            conn.execute(statement)

    async def _read_table(self, table: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._fetch_all, table)

    async def _read_key(self, table: str, key: str) -> tuple[bool, Any]:
        return await asyncio.to_thread(self._fetch_one, table, key)

    async def _write_key(self, table: str, key: str, value: Any) -> None:
        await asyncio.to_thread(self._upsert, table, key, value)

    async def _remove_keys(self, table: str, keys: list[str]) -> None:
        await asyncio.to_thread(self._delete_where, table, keys)

    async def _remove_all(self, table: str) -> None:
        await asyncio.to_thread(self._delete_where, table, None)


__all__ = ["SQLTableBackend", "DEFAULT_URL"]
