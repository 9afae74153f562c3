"""Flat-file JSON backend.

Each table lives in its own directory as a single JSON document::

    <path>/<table>/storage<extname>

    {
      "a": {"key": "a", "value": 1},
      "b": {"key": "b", "value": {"nested": true}}
    }

A missing document is created empty by ``connect()``. Writes rewrite the
whole document through a temp file and ``os.replace``, serialised per table
so concurrent writers in one process never drop each other's keys.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from kvspine.core.errors import BackendConnectionError, InvalidArgumentError
from kvspine.core.events import EventBus

from .base import TableBackend, write_json_atomic

Document = dict[str, Any]


class JsonFileBackend(TableBackend):
    """
    JSON document per table on the local file system.

    Suitable for:
    - Development and testing
    - Small single-process bots and tools
    """

    name = "file"
    io_errors = (OSError, ValueError)

    def __init__(
        self,
        path: str | Path = "database",
        tables: Iterable[str] | None = None,
        *,
        extname: str = ".json",
        events: EventBus | None = None,
    ):
        if not path:
            raise InvalidArgumentError("path")
        if not extname:
            raise InvalidArgumentError("extname")
        super().__init__(tables, events=events)
        self._root = Path(path)
        self._extname = extname if extname.startswith(".") else f".{extname}"
        self._locks = {table: asyncio.Lock() for table in self.tables}

    @property
    def root(self) -> Path:
        return self._root

    def table_path(self, table: str) -> Path:
        """Location of the JSON document backing ``table``."""
        return self._root / table / f"storage{self._extname}"

    # === Medium primitives ===

    async def _open(self) -> None:
        try:
            await asyncio.to_thread(self._initialize_tables)
        except OSError as e:
            raise BackendConnectionError(
                f"Failed to initialise file storage at {self._root}: {e}",
                cause=e,
            ).with_context(backend=self.name) from e

    def _initialize_tables(self) -> None:
        for table in self.tables:
            file_path = self.table_path(table)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            if not file_path.exists():
                write_json_atomic(file_path, {})

    async def _close(self) -> None:
        return None

    def _load(self, table: str) -> Document:
        content = self.table_path(table).read_text(encoding="utf-8")
        if not content.strip():
            return {}
        document = json.loads(content)
        if not isinstance(document, dict):
            raise ValueError(f"table document for '{table}' is not a JSON object")
        return document

    def _load_for_write(self, table: str) -> Document:
        try:
            return self._load(table)
        except FileNotFoundError:
            return {}

    @staticmethod
    def _value_of(entry: Any) -> Any:
        if isinstance(entry, dict) and "value" in entry:
            return entry["value"]
        return entry

    async def _read_table(self, table: str) -> dict[str, Any]:
        document = await asyncio.to_thread(self._load, table)
        return {key: self._value_of(entry) for key, entry in document.items()}

    async def _read_key(self, table: str, key: str) -> tuple[bool, Any]:
        document = await asyncio.to_thread(self._load, table)
        if key not in document:
            return False, None
        return True, self._value_of(document[key])

    async def _mutate(self, table: str, change: Callable[[Document], None]) -> None:
        def apply() -> None:
            document = self._load_for_write(table)
            change(document)
            write_json_atomic(self.table_path(table), document)

        async with self._locks[table]:
            await asyncio.to_thread(apply)

    async def _write_key(self, table: str, key: str, value: Any) -> None:
        def put(document: Document) -> None:
            document[key] = {"key": key, "value": value}

        await self._mutate(table, put)

    async def _remove_keys(self, table: str, keys: list[str]) -> None:
        def pop(document: Document) -> None:
            for key in keys:
                document.pop(key, None)

        await self._mutate(table, pop)

    async def _remove_all(self, table: str) -> None:
        async with self._locks[table]:
            await asyncio.to_thread(write_json_atomic, self.table_path(table), {})


__all__ = ["JsonFileBackend"]
