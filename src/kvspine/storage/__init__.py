"""Table-oriented key/value storage with change notifications.

Four interchangeable media share one contract (``StorageBackend``):

    JsonFileBackend   one JSON document per table on disk
    SQLTableBackend   one relational table per name (SQLAlchemy)
    MongoBackend      one MongoDB collection per table
    FirestoreBackend  one Cloud Firestore collection per table

Every effective write is announced on the backend's event bus.
"""

from kvspine.storage.base import TableBackend
from kvspine.storage.diffing import classify_write, deep_equal
from kvspine.storage.file import JsonFileBackend
from kvspine.storage.firestore import FirestoreBackend
from kvspine.storage.mongo import MongoBackend
from kvspine.storage.protocol import Entry, Predicate, StorageBackend
from kvspine.storage.registry import (
    BackendRegistry,
    backend_registry,
    build_backend,
    get_backend,
)
from kvspine.storage.sql import SQLTableBackend

__all__ = [
    "BackendRegistry",
    "Entry",
    "FirestoreBackend",
    "JsonFileBackend",
    "MongoBackend",
    "Predicate",
    "SQLTableBackend",
    "StorageBackend",
    "TableBackend",
    "backend_registry",
    "build_backend",
    "classify_write",
    "deep_equal",
    "get_backend",
]
