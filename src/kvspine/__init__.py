"""
kvspine - table-oriented key/value storage with durable deferred actions.

Manifesto:
    Small services keep a handful of named tables of JSON values and a
    few actions that must run "in N minutes", even across restarts. kvspine
    gives both one interface over four storage media and announces every
    effective write on an event bus.

Quick start::

    from kvspine import KVStore, KVSettings

    async with KVStore(settings=KVSettings(path="./database")) as store:
        store.timeouts.register_timeout("reminder", send_reminder)
        await store.set("main", "greeting", "hello")
        await store.timeouts.add_timeout("reminder", 60_000, {"chat": 42})

Tags:
    kvspine, storage, key-value, scheduling, asyncio
"""

from kvspine.core.errors import (
    BackendConnectionError,
    ConfigError,
    DuplicateTimeoutError,
    InvalidArgumentError,
    KVSpineError,
    NotReadyError,
    StorageError,
    StorageWriteError,
    UnknownTableError,
)
from kvspine.core.events import Event, EventType
from kvspine.core.settings import TIMEOUT_TABLE, KVSettings
from kvspine.storage import (
    Entry,
    FirestoreBackend,
    JsonFileBackend,
    MongoBackend,
    SQLTableBackend,
    StorageBackend,
    TableBackend,
    build_backend,
    get_backend,
)
from kvspine.storage.manager import KVStore
from kvspine.timeouts import TimeoutDescriptor, TimeoutManager, TimeoutRecord

__version__ = "0.1.0"

__all__ = [
    "BackendConnectionError",
    "ConfigError",
    "DuplicateTimeoutError",
    "Entry",
    "Event",
    "EventType",
    "FirestoreBackend",
    "InvalidArgumentError",
    "JsonFileBackend",
    "KVSettings",
    "KVSpineError",
    "KVStore",
    "MongoBackend",
    "NotReadyError",
    "SQLTableBackend",
    "StorageBackend",
    "StorageError",
    "StorageWriteError",
    "TIMEOUT_TABLE",
    "TableBackend",
    "TimeoutDescriptor",
    "TimeoutManager",
    "TimeoutRecord",
    "UnknownTableError",
    "build_backend",
    "get_backend",
]
