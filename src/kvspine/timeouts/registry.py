"""In-memory index of timeout descriptors and armed timers."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from types import MappingProxyType

from kvspine.core.errors import DuplicateTimeoutError

from .models import TimeoutDescriptor


class TimeoutRegistry:
    """Descriptors by id and timer handles by durable key.

    A key can be armed with ``None`` while its record is being fired inline;
    it still counts as armed so cancellation during the firing is observed.
    """

    def __init__(self) -> None:
        self._descriptors: dict[str, TimeoutDescriptor] = {}
        self._timers: dict[str, asyncio.TimerHandle | None] = {}

    # === Descriptors ===

    def register(self, descriptor: TimeoutDescriptor) -> None:
        if descriptor.id in self._descriptors:
            raise DuplicateTimeoutError(descriptor.id)
        self._descriptors[descriptor.id] = descriptor

    def descriptor(self, timeout_id: str) -> TimeoutDescriptor | None:
        return self._descriptors.get(timeout_id)

    @property
    def descriptors(self) -> Mapping[str, TimeoutDescriptor]:
        """Read-only view of registered descriptors."""
        return MappingProxyType(self._descriptors)

    def unregister(self, timeout_id: str) -> bool:
        return self._descriptors.pop(timeout_id, None) is not None

    # === Timers ===

    def arm(self, key: str, handle: asyncio.TimerHandle | None) -> None:
        """Track ``handle`` for ``key``, cancelling any timer it replaces."""
        previous = self._timers.get(key)
        if previous is not None and previous is not handle:
            previous.cancel()
        self._timers[key] = handle

    def disarm(self, key: str) -> asyncio.TimerHandle | None:
        """Stop tracking ``key`` and cancel its timer."""
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()
        return handle

    def is_armed(self, key: str) -> bool:
        return key in self._timers

    def armed_keys(self) -> list[str]:
        return list(self._timers)

    def cancel_all(self) -> int:
        """Cancel every armed timer. Returns how many keys were armed."""
        count = len(self._timers)
        for handle in self._timers.values():
            if handle is not None:
                handle.cancel()
        self._timers.clear()
        return count


__all__ = ["TimeoutRegistry"]
