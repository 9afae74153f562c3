"""Timeout data types.

A ``TimeoutRecord`` is the durable half of a deferred action: it is written
to the reserved ``timeout`` table under ``"<id>_<datestamp>"`` and survives
restarts. A ``TimeoutDescriptor`` is the in-memory half: it links the record
``id`` to the callable (plain or async) that runs when the record falls due.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

TimeoutAction = Callable[["TimeoutRecord"], Awaitable[Any] | Any]


@dataclass(frozen=True)
class TimeoutRecord:
    """One scheduled firing.

    Attributes:
        id: Descriptor id the record belongs to
        time: Delay in milliseconds
        datestamp: Scheduling instant, epoch milliseconds
        out_data: Caller data handed to the action on firing
    """

    id: str
    time: int
    datestamp: int
    out_data: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Durable key in the ``timeout`` table."""
        return f"{self.id}_{self.datestamp}"

    @property
    def due_at(self) -> int:
        return self.datestamp + self.time

    def remaining(self, now: int) -> int:
        """Milliseconds until due; zero or negative when overdue."""
        return self.due_at - now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "time": self.time,
            "datestamp": self.datestamp,
            "outData": dict(self.out_data),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TimeoutRecord:
        """Parse a stored record.

        Raises:
            ValueError: If a required field is missing or has the wrong type.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"timeout record must be a mapping, got {type(data).__name__}")

        record_id = data.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("timeout record has no 'id'")

        numbers = {}
        for name in ("time", "datestamp"):
            value = data.get(name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"timeout record field '{name}' must be a number")
            numbers[name] = int(value)

        out_data = data.get("outData") or {}
        if not isinstance(out_data, Mapping):
            raise ValueError("timeout record field 'outData' must be a mapping")

        return cls(
            id=record_id,
            time=numbers["time"],
            datestamp=numbers["datestamp"],
            out_data=dict(out_data),
        )


@dataclass(frozen=True)
class TimeoutDescriptor:
    """Registration of one kind of deferred action."""

    id: str
    action: TimeoutAction
    metadata: dict[str, Any] = field(default_factory=dict)


__all__ = ["TimeoutAction", "TimeoutDescriptor", "TimeoutRecord"]
