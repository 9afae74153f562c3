"""Typed change payloads published by storage backends.

Each class knows its signal name and how to render the payload dict that
travels inside an :class:`~kvspine.core.events.Event`. Subscribers receive
plain dicts so they never import backend code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from kvspine.core.events import Event, EventType

__all__ = [
    "Change",
    "CreateChange",
    "UpdateChange",
    "DeleteChange",
    "ClearAllChange",
]


@dataclass(frozen=True)
class Change:
    """Base class for change payloads."""

    event_type: ClassVar[str]

    table: str

    def to_payload(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_event(self, source: str) -> Event:
        return Event(event_type=self.event_type, source=source, payload=self.to_payload())


@dataclass(frozen=True)
class CreateChange(Change):
    """A key absent from the table was written."""

    event_type: ClassVar[str] = EventType.CREATE

    key: str
    data: Any

    def to_payload(self) -> dict[str, Any]:
        return {"table": self.table, "key": self.key, "data": self.data}


@dataclass(frozen=True)
class UpdateChange(Change):
    """A present key was overwritten with a structurally different value."""

    event_type: ClassVar[str] = EventType.UPDATE

    key: str
    new_data: Any
    old_data: Any

    def to_payload(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "key": self.key,
            "newData": self.new_data,
            "oldData": self.old_data,
        }


@dataclass(frozen=True)
class DeleteChange(Change):
    """One key, or a list of keys for bulk deletes, was removed.

    For a list of keys ``data`` is the list of prior values in key order.
    """

    event_type: ClassVar[str] = EventType.DELETE

    key: str | list[str]
    data: Any

    def to_payload(self) -> dict[str, Any]:
        return {"table": self.table, "key": self.key, "data": self.data}


@dataclass(frozen=True)
class ClearAllChange(Change):
    """Every record of the table was removed; ``variables`` is the snapshot."""

    event_type: ClassVar[str] = EventType.DELETE_ALL

    variables: dict[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {"table": self.table, "variables": self.variables}
