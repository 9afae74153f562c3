"""Core primitives shared by the storage layer and the timeout scheduler."""

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
from kvspine.core.events import Event, EventBus, EventHandler, EventType
from kvspine.core.logging import configure_logging, get_logger

__all__ = [
    "BackendConnectionError",
    "ConfigError",
    "DuplicateTimeoutError",
    "InvalidArgumentError",
    "KVSpineError",
    "NotReadyError",
    "StorageError",
    "StorageWriteError",
    "UnknownTableError",
    "Event",
    "EventBus",
    "EventHandler",
    "EventType",
    "configure_logging",
    "get_logger",
]
