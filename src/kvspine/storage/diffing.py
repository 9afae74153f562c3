"""Change-event diffing shared by every storage backend.

A write is classified by comparing what was stored before it with what is
stored after it:

    absent before              -> create
    present, structurally new  -> update (new and old value)
    present, deep-equal        -> nothing

Presence is tracked separately from the value, so a stored ``None``, ``0``
or ``""`` still counts as an existing record.

Values are compared after a JSON round trip because that is how every
backend persists them: a tuple written today reads back as a list
tomorrow, and rewriting it must not look like an update.
"""

from __future__ import annotations

import json
from typing import Any

from kvspine.core.events.changes import Change, CreateChange, UpdateChange


def normalize(value: Any) -> Any:
    """Return ``value`` as it reads back from storage."""
    try:
        return json.loads(json.dumps(value, default=str))
    except (TypeError, ValueError):
        return value


def _same(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(_same(left[k], right[k]) for k in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(_same(a, b) for a, b in zip(left, right))
    return left == right


def deep_equal(left: Any, right: Any) -> bool:
    """Structural equality of two stored values. ``true`` never equals ``1``."""
    if left is right:
        return True
    return _same(normalize(left), normalize(right))


def classify_write(
    table: str,
    key: str,
    old: Any,
    new: Any,
    *,
    existed: bool,
) -> Change | None:
    """Decide which notification, if any, a ``set`` warrants."""
    if not existed:
        return CreateChange(table=table, key=key, data=new)
    if not deep_equal(new, old):
        return UpdateChange(table=table, key=key, new_data=new, old_data=old)
    return None


__all__ = ["classify_write", "deep_equal", "normalize"]
