"""Store façade: one backend, its timeouts and declared variable defaults.

``KVStore`` is what applications hold on to. It builds the configured
backend (the reserved ``timeout`` table included), wires a
:class:`~kvspine.timeouts.TimeoutManager` to it, and remembers the default
value of every declared variable.

Examples:
    >>> async with KVStore(settings=KVSettings(path="./database")) as store:
    ...     await store.variables({"coins": 0})
    ...     await store.set("main", "user_1_2_coins", 10)
    ...     store.default_value("coins", "main")
    0
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from kvspine.core.errors import UnknownTableError
from kvspine.core.events import Event, EventHandler, EventType
from kvspine.core.logging import get_logger
from kvspine.core.settings import KVSettings
from kvspine.timeouts.manager import Clock, TimeoutManager

from .base import TableBackend
from .protocol import Entry, Predicate
from .registry import build_backend

logger = get_logger(__name__)


class KVStore:
    """Configured backend plus timeout scheduling and variable defaults."""

    def __init__(
        self,
        backend: TableBackend | None = None,
        *,
        settings: KVSettings | None = None,
        logging: bool | None = None,
        clock: Clock | None = None,
        schedule_timeouts: bool = True,
    ) -> None:
        if backend is None:
            settings = settings or KVSettings()
            backend = build_backend(settings)
        self.settings = settings
        self.backend = backend
        self.timeouts = TimeoutManager(backend, clock=clock)
        self._logging = logging if logging is not None else (settings.logging if settings else True)
        self._defaults: dict[tuple[str, str], Any] = {}
        self._ready_subscription: str | None = None
        self._schedule_timeouts = schedule_timeouts

    @classmethod
    def from_settings(cls, settings: KVSettings | None = None, **kwargs: Any) -> KVStore:
        return cls(settings=settings or KVSettings(), **kwargs)

    # === Introspection ===

    @property
    def name(self) -> str:
        return self.backend.name

    @property
    def tables(self) -> tuple[str, ...]:
        return self.backend.tables

    @property
    def events(self):
        return self.backend.events

    @property
    def is_ready(self) -> bool:
        return self.backend.is_ready

    def has_table(self, table: str) -> bool:
        return self.backend.has_table(table)

    # === Lifecycle ===

    async def connect(self) -> KVStore:
        """Wire timeouts and logging, then connect the backend."""
        if self._logging and self._ready_subscription is None:
            self._ready_subscription = await self.backend.events.subscribe(
                EventType.READY, self._log_ready, once=True
            )
        if self._schedule_timeouts:
            await self.timeouts.attach()
        await self.backend.connect()
        return self

    async def close(self) -> None:
        await self.timeouts.shutdown()
        if self._ready_subscription is not None:
            await self.backend.events.unsubscribe(self._ready_subscription)
            self._ready_subscription = None
        await self.backend.close()

    async def __aenter__(self) -> KVStore:
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _log_ready(self, event: Event) -> None:
        logger.info("database_ready", backend=self.backend.name, tables=list(self.tables))

    # === Subscriptions ===

    async def on(self, event_type: str, handler: EventHandler, *, once: bool = False) -> str:
        """Subscribe ``handler`` to ``event_type``. Returns the subscription id."""
        return await self.backend.events.subscribe(event_type, handler, once=once)

    async def once(self, event_type: str, handler: EventHandler) -> str:
        return await self.on(event_type, handler, once=True)

    async def off(self, subscription_id: str) -> None:
        await self.backend.events.unsubscribe(subscription_id)

    # === Storage surface ===

    async def get(self, table: str, key: str) -> Any | None:
        return await self.backend.get(table, key)

    async def set(self, table: str, key: str, value: Any) -> KVStore:
        await self.backend.set(table, key, value)
        return self

    async def has(self, table: str, key: str) -> bool:
        return await self.backend.has(table, key)

    async def all(self, table: str) -> dict[str, Any]:
        return await self.backend.all(table)

    async def find_one(self, table: str, predicate: Predicate) -> Entry | None:
        return await self.backend.find_one(table, predicate)

    async def find_many(self, table: str, predicate: Predicate) -> list[Entry]:
        return await self.backend.find_many(table, predicate)

    async def delete_many(self, table: str, predicate: Predicate) -> list[str]:
        return await self.backend.delete_many(table, predicate)

    async def delete(self, table: str, key: str | list[str]) -> None:
        await self.backend.delete(table, key)

    async def clear(self, table: str) -> None:
        await self.backend.clear(table)

    async def ping(self) -> float:
        return await self.backend.ping()

    async def convert_file_to_table(self, table: str, file_path: str) -> None:
        await self.backend.convert_file_to_table(table, file_path)

    async def convert_table_to_file(self, table: str, file_path: str) -> None:
        await self.backend.convert_table_to_file(table, file_path)

    # === Variables ===

    async def variables(
        self,
        defaults: dict[str, Any],
        tables: str | Iterable[str] | None = None,
    ) -> None:
        """Declare variables with default values.

        Each default is remembered per ``(variable, table)`` and written to
        storage when the variable is not stored yet. ``tables`` defaults to
        the first declared table.
        """
        if tables is None:
            targets = [self.tables[0]]
        elif isinstance(tables, str):
            targets = [tables]
        else:
            targets = list(tables)

        for table in targets:
            if not self.has_table(table):
                raise UnknownTableError(table).with_context(backend=self.backend.name)

        for table in targets:
            for variable, value in defaults.items():
                self._defaults[(variable, table)] = value
                if not await self.backend.has(table, variable):
                    await self.backend.set(table, variable, value)

    def default_value(self, variable: str, table: str | None = None) -> Any | None:
        """Declared default of ``variable`` in ``table`` (first table when omitted)."""
        return self._defaults.get((variable, table or self.tables[0]))

    def has_variable(self, variable: str, table: str | None = None) -> bool:
        return (variable, table or self.tables[0]) in self._defaults


__all__ = ["KVStore"]
