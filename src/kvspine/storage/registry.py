"""Storage backend registry and factory.

Manifesto:
    Callers should never hard-code backend class names. The registry maps
    backend names (and their aliases) to classes, ``get_backend()`` builds
    one from keyword arguments and ``build_backend()`` builds one from
    :class:`~kvspine.core.settings.KVSettings`.

Features:
    - ``BackendRegistry`` with pre-registered defaults
    - ``register()`` for custom backends
    - ``get_backend()`` factory: name + options -> unconnected backend

Tags:
    kvspine, storage, registry, factory

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from kvspine.core.errors import ConfigError
from kvspine.core.settings import KVSettings

from .base import TableBackend
from .file import JsonFileBackend
from .firestore import FirestoreBackend
from .mongo import MongoBackend
from .sql import DEFAULT_URL, SQLTableBackend


class BackendRegistry:
    """
    Registry for storage backend classes.

    Pre-registered backends:
    - ``file`` / ``json``: :class:`JsonFileBackend`
    - ``sql`` / ``sqlite``: :class:`SQLTableBackend`
    - ``mongo`` / ``mongodb``: :class:`MongoBackend`
    - ``firestore`` / ``firebase``: :class:`FirestoreBackend`
    """

    def __init__(self):
        self._factories: dict[str, type[TableBackend]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._factories["file"] = JsonFileBackend
        self._factories["json"] = JsonFileBackend  # Alias
        self._factories["sql"] = SQLTableBackend
        self._factories["sqlite"] = SQLTableBackend  # Alias
        self._factories["mongo"] = MongoBackend
        self._factories["mongodb"] = MongoBackend  # Alias
        self._factories["firestore"] = FirestoreBackend
        self._factories["firebase"] = FirestoreBackend  # Alias

    def register(self, name: str, backend_class: type[TableBackend]) -> None:
        """Register a backend class under ``name``."""
        self._factories[name.lower()] = backend_class

    def create(self, name: str, **kwargs: Any) -> TableBackend:
        """Create a backend by name."""
        name = name.lower()
        if name not in self._factories:
            raise ConfigError(f"Unknown storage backend: {name}")
        return self._factories[name](**kwargs)

    def list_backends(self) -> list[str]:
        """List registered backend names."""
        return sorted(self._factories.keys())


# Global registry
backend_registry = BackendRegistry()


def get_backend(name: str, **kwargs: Any) -> TableBackend:
    """
    Get a storage backend by name.

    Usage:
        backend = get_backend("file", path="./database", tables=["main"])
        backend = get_backend("sql", url="sqlite:///kv.sqlite", tables=["main"])
    """
    return backend_registry.create(name, **kwargs)


def build_backend(settings: KVSettings | None = None, **overrides: Any) -> TableBackend:
    """Build the backend described by ``settings`` (environment when omitted)."""
    settings = settings or KVSettings()
    tables = settings.tables

    if settings.backend == "file":
        options: dict[str, Any] = {"path": settings.path, "extname": settings.extname}
    elif settings.backend == "sql":
        options = {"url": settings.url or DEFAULT_URL}
    elif settings.backend == "mongo":
        options = {"url": settings.url, "database": settings.database}
    else:
        options = {"project": settings.project}

    options.update(overrides)
    return get_backend(settings.backend, tables=tables, **options)


__all__ = [
    "BackendRegistry",
    "backend_registry",
    "build_backend",
    "get_backend",
]
