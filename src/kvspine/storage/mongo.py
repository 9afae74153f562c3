"""MongoDB backend.

Uses ``pymongo``. Each declared table is a collection in one database and
each record is a document ``{"_id": key, "value": value}``.

Install the driver::

    pip install pymongo
    # or:  pip install kvspine[mongo]

The driver is imported when ``connect()`` runs; a missing package raises
:class:`~kvspine.core.errors.ConfigError` there rather than at import time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from kvspine.core.errors import BackendConnectionError, ConfigError, InvalidArgumentError
from kvspine.core.events import EventBus

from .base import TableBackend
from .diffing import normalize


class MongoBackend(TableBackend):
    """One MongoDB collection per table.

    A pre-built client (``pymongo.MongoClient`` or a compatible test double)
    can be injected with ``client=``; it is then left open by ``close()``.
    """

    name = "mongo"

    def __init__(
        self,
        url: str | None = None,
        tables: Iterable[str] | None = None,
        *,
        database: str = "kvspine",
        client: Any = None,
        events: EventBus | None = None,
        server_selection_timeout_ms: int = 5000,
        **client_options: Any,
    ):
        if not url and client is None:
            raise InvalidArgumentError("url")
        if not database:
            raise InvalidArgumentError("database")
        super().__init__(tables, events=events)
        self._url = url
        self._database_name = database
        self._client = client
        self._owns_client = client is None
        self._client_options = {
            "serverSelectionTimeoutMS": server_selection_timeout_ms,
            **client_options,
        }
        self._db: Any = None

    # === Medium primitives ===

    async def _open(self) -> None:
        try:
            from pymongo import MongoClient
            from pymongo.errors import PyMongoError
        except ImportError:
            raise ConfigError(
                "pymongo is required for the mongo backend. "
                "Install with: pip install kvspine[mongo]"
            ) from None

        self.io_errors = (PyMongoError, OSError)

        def initialize() -> None:
            if self._client is None:
                self._client = MongoClient(self._url, **self._client_options)
                self._client.admin.command("ping")
            self._db = self._client[self._database_name]
            existing = set(self._db.list_collection_names())
            for table in self.tables:
                if table not in existing:
                    self._db.create_collection(table)

        try:
            await asyncio.to_thread(initialize)
        except PyMongoError as e:
            raise BackendConnectionError(
                f"Failed to connect to MongoDB: {e}",
                cause=e,
            ).with_context(backend=self.name) from e

    async def _close(self) -> None:
        if self._client is not None and self._owns_client:
            await asyncio.to_thread(self._client.close)
            self._client = None
        self._db = None

    def _collection(self, table: str) -> Any:
        return self._db[table]

    async def _read_table(self, table: str) -> dict[str, Any]:
        def fetch() -> dict[str, Any]:
            return {str(doc["_id"]): doc.get("value") for doc in self._collection(table).find({})}

        return await asyncio.to_thread(fetch)

    async def _read_key(self, table: str, key: str) -> tuple[bool, Any]:
        doc = await asyncio.to_thread(self._collection(table).find_one, {"_id": key})
        if doc is None:
            return False, None
        return True, doc.get("value")

    async def _write_key(self, table: str, key: str, value: Any) -> None:
        await asyncio.to_thread(
            self._collection(table).replace_one,
            {"_id": key},
            {"_id": key, "value": normalize(value)},
            upsert=True,
        )

    async def _remove_keys(self, table: str, keys: list[str]) -> None:
        if keys:
            await asyncio.to_thread(self._collection(table).delete_many, {"_id": {"$in": keys}})

    async def _remove_all(self, table: str) -> None:
        await asyncio.to_thread(self._collection(table).delete_many, {})


__all__ = ["MongoBackend"]
