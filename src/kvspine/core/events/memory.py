"""
In-memory event bus implementation.

Manifesto:
    A store is owned by a single process, so its notifications never need
    to leave that process. The in-memory bus delivers events to every
    matching handler before ``publish`` returns, which keeps the ordering
    "write, then notify" observable by the caller of the write.

Tags:
    kvspine, events, in-memory, asyncio

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass

from kvspine.core.events import Event, EventHandler
from kvspine.core.logging import get_logger

__all__ = ["InMemoryEventBus"]

logger = get_logger(__name__)


@dataclass
class Subscription:
    """Internal subscription record."""

    id: str
    pattern: str
    handler: EventHandler
    once: bool = False


class InMemoryEventBus:
    """In-process event bus.

    Example::

        bus = InMemoryEventBus()

        async def log_event(event: Event):
            print(f"Event: {event.event_type}")

        await bus.subscribe("*", log_event)
        await bus.publish(Event(event_type="ready", source="file"))
        # Output: Event: ready
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    async def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers.

        Handlers are called concurrently using asyncio.gather.
        Exceptions in handlers are logged but don't stop delivery.
        """
        if self._closed:
            return

        async with self._lock:
            handlers_to_call: list[tuple[str, EventHandler]] = []
            for sub in list(self._subscriptions.values()):
                if event.matches(sub.pattern):
                    handlers_to_call.append((sub.id, sub.handler))
                    if sub.once:
                        del self._subscriptions[sub.id]

        if not handlers_to_call:
            return

        async def safe_call(sub_id: str, handler: EventHandler) -> None:
            try:
                await handler(event)
            except Exception as e:
                logger.warning(
                    "event_handler_error",
                    subscription_id=sub_id,
                    event_type=event.event_type,
                    error=str(e),
                    exc_info=True,
                )

        await asyncio.gather(
            *[safe_call(sub_id, handler) for sub_id, handler in handlers_to_call],
            return_exceptions=True,
        )

    async def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        *,
        once: bool = False,
    ) -> str:
        """Subscribe to events matching a pattern.

        Args:
            event_type: Pattern to match (supports ``*`` and ``prefix*``)
            handler: Async callback for matching events
            once: Drop the subscription after the first matching event

        Returns:
            Subscription ID
        """
        sub_id = f"sub_{uuid.uuid4().hex[:12]}"

        async with self._lock:
            self._subscriptions[sub_id] = Subscription(
                id=sub_id,
                pattern=event_type,
                handler=handler,
                once=once,
            )

        return sub_id

    async def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        async with self._lock:
            self._subscriptions.pop(subscription_id, None)

    async def close(self) -> None:
        """Mark bus as closed and clear subscriptions."""
        self._closed = True
        async with self._lock:
            self._subscriptions.clear()

    @property
    def subscription_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)
