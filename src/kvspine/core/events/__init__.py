"""Event system for store and scheduler notifications.

Why This Package Exists
-----------------------
Storage backends announce every effective write (``create``, ``update``,
``delete``, ``deleteAll``) and their readiness (``ready``). The timeout
manager listens to ``ready`` to recover durable timers, and uses its own
``addTimeout`` / ``timeout`` signals so that freshly scheduled timers and
recovered timers travel the same path. Without a shared bus the manager
would have to be wired into every backend directly.

The ``EventBus`` protocol is the observer abstraction; each backend owns one
bus instance (there is no process-wide singleton), so two stores in the same
process never see each other's events.

Usage::

    from kvspine.core.events import Event, EventType
    from kvspine.core.events.memory import InMemoryEventBus

    bus = InMemoryEventBus()

    async def on_create(event: Event):
        print(event.payload["key"], event.payload["data"])

    sub_id = await bus.subscribe(EventType.CREATE, on_create)
    await bus.publish(Event(EventType.CREATE, "file", {"table": "main", "key": "a", "data": 1}))

Modules
-------
memory      InMemoryEventBus -- asyncio, single process
changes     Typed change payloads (create / update / delete / deleteAll)
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "EventType",
]


# ── Event Types ──────────────────────────────────────────────────────────


class EventType:
    """Signal names observable by external collaborators."""

    READY = "ready"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DELETE_ALL = "deleteAll"
    ADD_TIMEOUT = "addTimeout"
    TIMEOUT = "timeout"

    ALL = (READY, CREATE, UPDATE, DELETE, DELETE_ALL, ADD_TIMEOUT, TIMEOUT)


# ── Event Model ──────────────────────────────────────────────────────────


@dataclass
class Event:
    """Event payload delivered to subscribers.

    Attributes:
        event_type: Signal name (``create``, ``timeout``, ...)
        source: Origin component (backend name or ``timeouts``)
        payload: Event-specific data
        timestamp: When the event occurred (UTC)
        event_id: Unique event identifier
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def matches(self, pattern: str) -> bool:
        """Check if event type matches a pattern (supports wildcards).

        Examples:
            - ``*`` matches everything
            - ``delete*`` matches ``delete`` and ``deleteAll``
            - ``timeout`` matches exactly ``timeout``
        """
        if pattern == "*":
            return True
        if pattern.endswith("*"):
            return self.event_type.startswith(pattern[:-1])
        return self.event_type == pattern


# ── Type Aliases ─────────────────────────────────────────────────────────

EventHandler = Callable[[Event], Awaitable[None]]


# ── EventBus Protocol ────────────────────────────────────────────────────


@runtime_checkable
class EventBus(Protocol):
    """Protocol for event bus implementations.

    Supports publish/subscribe with wildcard patterns. Implementations
    must be async-compatible and must have delivered the event to every
    matching handler by the time ``publish`` returns.
    """

    async def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        ...

    async def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        *,
        once: bool = False,
    ) -> str:
        """Subscribe to events matching a pattern.

        Args:
            event_type: Pattern to match (e.g., ``create``, ``delete*``, ``*``)
            handler: Async callback for matching events
            once: Remove the subscription after its first delivery

        Returns:
            Subscription ID for later unsubscription
        """
        ...

    async def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        ...

    async def close(self) -> None:
        """Clean up resources."""
        ...
