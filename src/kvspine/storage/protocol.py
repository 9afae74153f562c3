"""Storage backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  STORAGE BACKEND PROTOCOL                                                     │
│                                                                               │
│  One capability contract, four media:                                        │
│                                                                               │
│   ┌─────────────────┐                                                        │
│   │ JsonFileBackend │ ──┐                                                    │
│   └─────────────────┘   │                                                    │
│   ┌─────────────────┐   │        ┌──────────────────────────────────┐       │
│   │ SQLTableBackend │ ──┤        │  get / set / has / all            │       │
│   └─────────────────┘   ├──────► │  find_one / find_many             │       │
│   ┌─────────────────┐   │        │  delete / delete_many / clear     │       │
│   │ MongoBackend    │ ──┤        │  ping / connect / close           │       │
│   └─────────────────┘   │        │  convert_file_to_table            │       │
│   ┌─────────────────┐   │        │  convert_table_to_file            │       │
│   │FirestoreBackend │ ──┘        └──────────────────────────────────┘       │
│   └─────────────────┘                                                        │
│                                                                               │
│  Every effective write is announced on the backend's event bus:              │
│  create / update / delete / deleteAll, plus ready after connect().           │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from kvspine.core.events import EventBus


@dataclass(frozen=True)
class Entry:
    """A record produced by a table scan, with its position in the snapshot."""

    key: str
    value: Any
    index: int


Predicate = Callable[[Entry, int], bool | Awaitable[bool]]


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for table-oriented key/value backends.

    Implementations:
        - JsonFileBackend: one JSON document per table on local disk
        - SQLTableBackend: one relational table per name (SQLAlchemy)
        - MongoBackend: one MongoDB collection per table
        - FirestoreBackend: one Cloud Firestore collection per table
    """

    name: str
    events: EventBus

    @property
    def tables(self) -> tuple[str, ...]:
        """Tables declared at construction."""
        ...

    @property
    def is_ready(self) -> bool:
        """Whether ``connect()`` has completed."""
        ...

    async def connect(self) -> None:
        """Acquire the medium, create missing tables, publish ``ready``."""
        ...

    async def close(self) -> None:
        """Release the medium."""
        ...

    async def get(self, table: str, key: str) -> Any | None:
        ...

    async def set(self, table: str, key: str, value: Any) -> StorageBackend:
        ...

    async def has(self, table: str, key: str) -> bool:
        ...

    async def all(self, table: str) -> dict[str, Any]:
        ...

    async def find_one(self, table: str, predicate: Predicate) -> Entry | None:
        ...

    async def find_many(self, table: str, predicate: Predicate) -> list[Entry]:
        ...

    async def delete_many(self, table: str, predicate: Predicate) -> list[str]:
        ...

    async def delete(self, table: str, key: str | list[str]) -> None:
        ...

    async def clear(self, table: str) -> None:
        ...

    async def ping(self) -> float:
        """Milliseconds spent reading every declared table."""
        ...

    async def convert_file_to_table(self, table: str, file_path: str) -> None:
        ...

    async def convert_table_to_file(self, table: str, file_path: str) -> None:
        ...

    def has_table(self, table: str) -> bool:
        ...


__all__ = ["Entry", "Predicate", "StorageBackend"]
