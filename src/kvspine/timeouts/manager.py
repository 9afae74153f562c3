"""Durable deferred actions on top of a storage backend.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TIMEOUT LIFECYCLE                                                            │
│                                                                               │
│   register_timeout(id, action)           Registered (descriptor only)        │
│        │                                                                      │
│        ▼                                                                      │
│   add_timeout(id, time, out_data)                                            │
│        │  set("timeout", "<id>_<ts>", record)                                │
│        │  publish addTimeout ──► _on_add_timeout ──► loop.call_later          │
│        ▼                                                                      │
│   Scheduled  (durable record + armed timer)                                  │
│        │                                                                      │
│        │  timer expires / overdue on recovery                                │
│        ▼                                                                      │
│   publish timeout ──► _on_timeout ──► await descriptor.action(record)        │
│        │                                                                      │
│        ▼                                                                      │
│   remove_timeout(key)                    Removed (record deleted, disarmed)  │
│                                                                               │
│  Recovery runs on the backend's ``ready`` event: every stored record is     │
│  re-armed for its remaining time, or fired at once when already overdue.    │
│  The ``timeout`` table is the source of truth; timers are only a cache.     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import inspect
import time as _time
from collections.abc import Callable
from typing import Any

from kvspine.core.errors import InvalidArgumentError
from kvspine.core.events import Event, EventType
from kvspine.core.logging import get_logger, log_context
from kvspine.core.settings import TIMEOUT_TABLE
from kvspine.storage.protocol import StorageBackend

from .models import TimeoutAction, TimeoutDescriptor, TimeoutRecord
from .registry import TimeoutRegistry

logger = get_logger(__name__)

Clock = Callable[[], int]


def _now_ms() -> int:
    return int(_time.time() * 1000)


class TimeoutManager:
    """Schedules, recovers and fires durable timeouts for one backend.

    Example:
        >>> manager = TimeoutManager(backend)
        >>> await manager.attach()
        >>> manager.register_timeout("reminder", send_reminder)
        >>> await backend.connect()
        >>> key = await manager.add_timeout("reminder", 60_000, {"chat": 42})
    """

    source = "timeouts"

    def __init__(
        self,
        backend: StorageBackend,
        *,
        clock: Clock | None = None,
        registry: TimeoutRegistry | None = None,
    ) -> None:
        self._backend = backend
        self._clock = clock or _now_ms
        self.registry = registry or TimeoutRegistry()
        self._subscriptions: list[str] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    # === Wiring ===

    async def attach(self) -> None:
        """Subscribe to ``ready``, ``addTimeout`` and ``timeout``.

        When the backend is already connected the stored records are
        recovered straight away.
        """
        if self._subscriptions:
            return
        events = self._backend.events
        self._subscriptions = [
            await events.subscribe(EventType.READY, self._on_ready),
            await events.subscribe(EventType.ADD_TIMEOUT, self._on_add_timeout),
            await events.subscribe(EventType.TIMEOUT, self._on_timeout),
        ]
        if self._backend.is_ready:
            await self.recover()

    async def shutdown(self) -> None:
        """Cancel timers and in-flight firings; durable records are kept."""
        cancelled = self.registry.cancel_all()
        tasks = [task for task in self._tasks if task is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        for sub_id in self._subscriptions:
            await self._backend.events.unsubscribe(sub_id)
        self._subscriptions = []
        logger.info("timeout_manager_shutdown", cancelled_timers=cancelled, cancelled_tasks=len(tasks))

    # === Descriptors ===

    def register_timeout(self, timeout_id: str, action: TimeoutAction, **metadata: Any) -> TimeoutDescriptor:
        """Register the action run when records with ``timeout_id`` fall due.

        Raises:
            InvalidArgumentError: If the id is empty or the action is missing.
            DuplicateTimeoutError: If ``timeout_id`` is already registered.
        """
        if not timeout_id:
            raise InvalidArgumentError("id")
        if action is None or not callable(action):
            raise InvalidArgumentError("action")
        descriptor = TimeoutDescriptor(id=timeout_id, action=action, metadata=dict(metadata))
        self.registry.register(descriptor)
        logger.debug("timeout_registered", timeout_id=timeout_id)
        return descriptor

    def get_descriptor(self, timeout_id: str) -> TimeoutDescriptor | None:
        return self.registry.descriptor(timeout_id)

    # === Scheduling ===

    async def add_timeout(
        self,
        timeout_id: str,
        time: int,
        out_data: dict[str, Any] | None = None,
    ) -> str:
        """Persist a record and arm its timer. Returns the durable key."""
        if not timeout_id:
            raise InvalidArgumentError("id")
        if isinstance(time, bool) or not isinstance(time, int) or time < 0:
            raise InvalidArgumentError("time", "The 'time' parameter must be a non-negative integer")
        if not self._subscriptions:
            await self.attach()

        record = TimeoutRecord(
            id=timeout_id,
            time=time,
            datestamp=self._clock(),
            out_data=dict(out_data or {}),
        )
        await self._backend.set(TIMEOUT_TABLE, record.key, record.to_dict())
        await self._backend.events.publish(
            Event(event_type=EventType.ADD_TIMEOUT, source=self.source, payload=record.to_dict())
        )
        logger.info("timeout_added", timeout_id=timeout_id, key=record.key, time=time)
        return record.key

    async def remove_timeout(self, key: str) -> bool:
        """Disarm ``key`` and delete its record.

        Returns ``False`` without touching storage when nothing is armed
        under ``key``, so cancelling twice or after firing is harmless.
        """
        if not self.registry.is_armed(key):
            return False
        self.registry.disarm(key)
        await self._backend.delete(TIMEOUT_TABLE, key)
        logger.debug("timeout_removed", key=key)
        return True

    async def has_timeout(self, key: str) -> bool:
        return await self._backend.has(TIMEOUT_TABLE, key)

    async def list_timeouts(self, timeout_id: str | None = None) -> list[TimeoutRecord]:
        """Stored records, optionally only those of one descriptor id."""
        records = []
        for key, value in (await self._backend.all(TIMEOUT_TABLE)).items():
            try:
                record = TimeoutRecord.from_dict(value)
            except ValueError as e:
                logger.warning("timeout_record_malformed", key=key, error=str(e))
                continue
            if timeout_id is None or record.id == timeout_id:
                records.append(record)
        return sorted(records, key=lambda r: r.due_at)

    def _arm(self, record: TimeoutRecord) -> None:
        delay = max(record.remaining(self._clock()), 0) / 1000
        loop = asyncio.get_running_loop()
        handle = loop.call_later(delay, self._on_timer, record)
        self.registry.arm(record.key, handle)
        logger.debug("timeout_armed", key=record.key, delay_ms=int(delay * 1000))

    def _on_timer(self, record: TimeoutRecord) -> None:
        task = asyncio.get_running_loop().create_task(self._publish_timeout(record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _publish_timeout(self, record: TimeoutRecord) -> None:
        await self._backend.events.publish(
            Event(event_type=EventType.TIMEOUT, source=self.source, payload=record.to_dict())
        )

    # === Recovery ===

    async def recover(self) -> int:
        """Re-arm stored records and fire the overdue ones. Returns records handled."""
        entries = await self._backend.find_many(
            TIMEOUT_TABLE, lambda entry, index: isinstance(entry.value, dict)
        )
        now = self._clock()
        overdue: list[TimeoutRecord] = []
        handled = 0

        for entry in entries:
            try:
                record = TimeoutRecord.from_dict(entry.value)
            except ValueError as e:
                logger.warning("timeout_record_malformed", key=entry.key, error=str(e))
                continue
            if record.key != entry.key:
                logger.warning("timeout_key_mismatch", key=entry.key, expected=record.key)
                continue
            if self.registry.is_armed(record.key):
                continue

            handled += 1
            if record.remaining(now) > 0:
                self._arm(record)
            else:
                # Armed without a timer so the firing path can remove it.
                self.registry.arm(record.key, None)
                overdue.append(record)

        logger.info("timeouts_recovered", rearmed=handled - len(overdue), overdue=len(overdue))
        for record in overdue:
            await self._publish_timeout(record)
        return handled

    # === Event handlers ===

    async def _on_ready(self, event: Event) -> None:
        await self.recover()

    async def _on_add_timeout(self, event: Event) -> None:
        record = TimeoutRecord.from_dict(event.payload)
        self._arm(record)

    async def _on_timeout(self, event: Event) -> None:
        try:
            record = TimeoutRecord.from_dict(event.payload)
        except ValueError as e:
            logger.warning("timeout_event_malformed", error=str(e))
            return

        if not self.registry.is_armed(record.key):
            logger.debug("timeout_not_armed", key=record.key)
            return

        descriptor = self.registry.descriptor(record.id)
        with log_context(timeout_id=record.id, timeout_key=record.key):
            if descriptor is None:
                logger.warning("timeout_descriptor_missing")
            else:
                try:
                    result = descriptor.action(record)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.exception("timeout_action_failed", error=str(e))
                else:
                    logger.info("timeout_fired")

        await self.remove_timeout(record.key)


__all__ = ["TimeoutManager", "Clock"]
