"""Shared implementation of the storage contract.

Manifesto:
    All four backends expose the same table-oriented contract and the same
    notification rules. The media differ only in how a table is read and
    how a key is written or removed, so ``TableBackend`` implements the
    contract once on top of a handful of medium primitives and each
    backend supplies just those primitives.

Features:
    - Lifecycle: idempotent ``connect()`` publishing ``ready``, ``close()``
    - Contract guards: ``NotReadyError`` before connect, ``UnknownTableError``
      for undeclared tables (both raised before any I/O)
    - Change diffing on ``set``; one ``delete`` event per ``delete`` call;
      one ``deleteAll`` per ``clear``
    - Snapshot scans for ``find_one`` / ``find_many`` / ``delete_many``
    - Log-and-degrade reads: a failed read is an empty table
    - JSON import/export of a table

Tags:
    kvspine, storage, abstract-base, diffing

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import inspect
import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from kvspine.core.errors import (
    InvalidArgumentError,
    NotReadyError,
    StorageWriteError,
    UnknownTableError,
)
from kvspine.core.events import Event, EventBus, EventType
from kvspine.core.events.changes import Change, ClearAllChange, DeleteChange
from kvspine.core.events.memory import InMemoryEventBus
from kvspine.core.logging import get_logger
from kvspine.core.settings import with_timeout_table

from .diffing import classify_write
from .protocol import Entry, Predicate

logger = get_logger(__name__)


class TableBackend(ABC):
    """
    Abstract base class for storage backends.

    Subclasses implement the medium primitives (``_open``, ``_close``,
    ``_read_table``, ``_read_key``, ``_write_key``, ``_remove_keys``,
    ``_remove_all``) and list the driver exceptions that count as I/O
    failures in ``io_errors``.
    """

    name: str = "abstract"

    #: Exceptions treated as medium I/O failures (reads degrade, writes wrap).
    io_errors: tuple[type[BaseException], ...] = (OSError,)

    def __init__(
        self,
        tables: Iterable[str] | None = None,
        *,
        events: EventBus | None = None,
    ) -> None:
        self._tables: tuple[str, ...] = tuple(with_timeout_table(list(tables or ["main"])))
        self.events: EventBus = events or InMemoryEventBus()
        self._ready = False
        self._connect_lock = asyncio.Lock()

    # === Introspection ===

    @property
    def tables(self) -> tuple[str, ...]:
        """Declared tables, including the reserved ``timeout`` table."""
        return self._tables

    @property
    def is_ready(self) -> bool:
        """Whether ``connect()`` has completed."""
        return self._ready

    def has_table(self, table: str) -> bool:
        return table in self._tables

    # === Medium primitives ===

    @abstractmethod
    async def _open(self) -> None:
        """Acquire the medium and create missing tables."""
        ...

    @abstractmethod
    async def _close(self) -> None:
        """Release the medium."""
        ...

    @abstractmethod
    async def _read_table(self, table: str) -> dict[str, Any]:
        """Return every record of ``table``."""
        ...

    @abstractmethod
    async def _read_key(self, table: str, key: str) -> tuple[bool, Any]:
        """Return ``(exists, value)`` for one key."""
        ...

    @abstractmethod
    async def _write_key(self, table: str, key: str, value: Any) -> None:
        """Insert or replace one record."""
        ...

    @abstractmethod
    async def _remove_keys(self, table: str, keys: list[str]) -> None:
        """Remove the given keys; absent keys are ignored."""
        ...

    @abstractmethod
    async def _remove_all(self, table: str) -> None:
        """Remove every record of ``table``."""
        ...

    # === Lifecycle ===

    async def connect(self) -> None:
        """Connect to the medium and publish ``ready``.

        Concurrent callers return only once ``ready`` has been delivered,
        so its handlers (timeout recovery among them) have run. A ``ready``
        handler must not call ``connect()`` itself.

        Raises:
            BackendConnectionError: If the medium is unreachable.
        """
        async with self._connect_lock:
            if self._ready:
                return
            await self._open()
            self._ready = True

            logger.info("backend_connected", backend=self.name, tables=list(self._tables))
            await self.events.publish(
                Event(
                    event_type=EventType.READY,
                    source=self.name,
                    payload={"backend": self.name, "tables": list(self._tables)},
                )
            )

    async def close(self) -> None:
        """Release the medium. Safe to call more than once."""
        if not self._ready:
            return
        self._ready = False
        await self._close()
        logger.info("backend_closed", backend=self.name)

    async def __aenter__(self) -> TableBackend:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # === Guards ===

    def _check_table(self, table: str) -> None:
        if not self._ready:
            raise NotReadyError(self.name)
        if table not in self._tables:
            raise UnknownTableError(table).with_context(backend=self.name)

    async def _snapshot(self, table: str) -> dict[str, Any]:
        try:
            return await self._read_table(table)
        except self.io_errors as e:
            logger.warning(
                "table_read_failed",
                backend=self.name,
                table=table,
                error=str(e),
            )
            return {}

    async def _lookup(self, table: str, key: str) -> tuple[bool, Any]:
        try:
            return await self._read_key(table, key)
        except self.io_errors as e:
            logger.warning(
                "key_read_failed",
                backend=self.name,
                table=table,
                key=key,
                error=str(e),
            )
            return False, None

    async def _guarded_write(self, table: str, key: Any, operation: str, call) -> None:
        try:
            await call
        except self.io_errors as e:
            logger.error(
                "write_failed",
                backend=self.name,
                table=table,
                key=key,
                operation=operation,
                error=str(e),
            )
            raise StorageWriteError(
                f"{operation} on table '{table}' failed: {e}",
                cause=e,
            ).with_context(backend=self.name, table=table) from e

    async def _publish(self, change: Change) -> None:
        logger.debug("change_published", backend=self.name, event_type=change.event_type, table=change.table)
        await self.events.publish(change.to_event(self.name))

    # === Contract ===

    async def get(self, table: str, key: str) -> Any | None:
        """Value stored under ``key``, or ``None`` when absent."""
        self._check_table(table)
        _, value = await self._lookup(table, key)
        return value

    async def set(self, table: str, key: str, value: Any) -> TableBackend:
        """Write ``value`` under ``key`` and announce the change, if any."""
        self._check_table(table)
        existed, old = await self._lookup(table, key)
        await self._guarded_write(table, key, "set", self._write_key(table, key, value))
        change = classify_write(table, key, old, value, existed=existed)
        if change is not None:
            await self._publish(change)
        return self

    async def has(self, table: str, key: str) -> bool:
        self._check_table(table)
        existed, _ = await self._lookup(table, key)
        return existed

    async def all(self, table: str) -> dict[str, Any]:
        """Every record of ``table`` as a ``key -> value`` mapping."""
        self._check_table(table)
        return dict(await self._snapshot(table))

    async def _scan(self, table: str, predicate: Predicate, *, first: bool) -> list[Entry]:
        matches: list[Entry] = []
        for index, (key, value) in enumerate((await self.all(table)).items()):
            entry = Entry(key=key, value=value, index=index)
            result = predicate(entry, index)
            if inspect.isawaitable(result):
                result = await result
            if result:
                matches.append(entry)
                if first:
                    break
        return matches

    async def find_one(self, table: str, predicate: Predicate) -> Entry | None:
        """First entry of a snapshot of ``table`` that satisfies ``predicate``."""
        matches = await self._scan(table, predicate, first=True)
        return matches[0] if matches else None

    async def find_many(self, table: str, predicate: Predicate) -> list[Entry]:
        """Every entry of a snapshot of ``table`` that satisfies ``predicate``."""
        return await self._scan(table, predicate, first=False)

    async def delete_many(self, table: str, predicate: Predicate) -> list[str]:
        """Delete every matching key, one ``delete`` call (and event) per key."""
        keys = [entry.key for entry in await self.find_many(table, predicate)]
        for key in keys:
            await self.delete(table, key)
        return keys

    async def delete(self, table: str, key: str | list[str]) -> None:
        """Remove one key or a list of keys; publishes exactly one ``delete``."""
        self._check_table(table)
        if isinstance(key, str):
            keys = [key]
            _, data = await self._lookup(table, key)
        else:
            keys = list(key)
            snapshot = await self._snapshot(table)
            data = [snapshot.get(k) for k in keys]

        await self._guarded_write(table, key, "delete", self._remove_keys(table, keys))
        await self._publish(
            DeleteChange(table=table, key=key if isinstance(key, str) else keys, data=data)
        )

    async def clear(self, table: str) -> None:
        """Remove every record; publishes one ``deleteAll`` with the snapshot."""
        self._check_table(table)
        snapshot = await self._snapshot(table)
        await self._guarded_write(table, None, "clear", self._remove_all(table))
        await self._publish(ClearAllChange(table=table, variables=snapshot))

    async def ping(self) -> float:
        """Milliseconds spent reading every declared table."""
        start = time.perf_counter()
        for table in self._tables:
            await self.all(table)
        return (time.perf_counter() - start) * 1000

    # === Import / export ===

    async def convert_file_to_table(self, table: str, file_path: str) -> None:
        """Load a ``{key: {key, value}}`` JSON document into ``table``.

        Every record goes through ``set``, so the usual events fire. An
        unreadable file is logged and imports nothing.
        """
        if not file_path:
            raise InvalidArgumentError("file_path")
        self._check_table(table)

        document = await asyncio.to_thread(_read_json_document, file_path)
        for name, entry in document.items():
            if isinstance(entry, dict) and "value" in entry:
                await self.set(table, str(entry.get("key", name)), entry["value"])
            else:
                await self.set(table, str(name), entry)

    async def convert_table_to_file(self, table: str, file_path: str) -> None:
        """Write ``table`` to a ``{key: {key, value}}`` JSON document."""
        if not file_path:
            raise InvalidArgumentError("file_path")
        data = await self.all(table)
        document = {key: {"key": key, "value": value} for key, value in data.items()}
        await asyncio.to_thread(write_json_atomic, Path(file_path), document)


def _read_json_document(file_path: str) -> dict[str, Any]:
    try:
        with open(file_path, encoding="utf-8") as fh:
            content = fh.read()
        document = json.loads(content) if content.strip() else {}
    except (OSError, ValueError) as e:
        logger.warning("import_read_failed", file_path=file_path, error=str(e))
        return {}
    if not isinstance(document, dict):
        logger.warning("import_not_a_mapping", file_path=file_path)
        return {}
    return document


def write_json_atomic(path: Path, document: Any) -> None:
    """Write ``document`` to ``path`` through a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(document, fh, default=str)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


__all__ = ["TableBackend", "write_json_atomic"]
