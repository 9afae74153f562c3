"""Restart-safe deferred actions backed by the reserved ``timeout`` table."""

from kvspine.timeouts.manager import Clock, TimeoutManager
from kvspine.timeouts.models import TimeoutAction, TimeoutDescriptor, TimeoutRecord
from kvspine.timeouts.registry import TimeoutRegistry

__all__ = [
    "Clock",
    "TimeoutAction",
    "TimeoutDescriptor",
    "TimeoutManager",
    "TimeoutRecord",
    "TimeoutRegistry",
]
