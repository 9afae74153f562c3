"""Key namespacing, cooldowns and leaderboards built on the storage surface.

Keys are plain ``_`` joins of a kind tag, identifiers and a variable name::

    user_<userId>_<chatId>_<variable>
    chat_<chatId>_<variable>
    message_<messageId>_<chatId>_<variable>
    cooldown_<userId>_<chatId>_<durationMs>

Parsing splits on the first separators only, so a variable name may contain
``_`` but an identifier may not.
"""

from __future__ import annotations

import math
import time
from typing import Any, Literal

from kvspine.core.errors import InvalidArgumentError
from kvspine.storage.manager import KVStore

SEPARATOR = "_"

LeaderboardKind = Literal["user", "chat"]


def _join(*parts: Any) -> str:
    return SEPARATOR.join(str(part) for part in parts)


def user_key(user_id: int | str, chat_id: int | str, variable: str) -> str:
    return _join("user", user_id, chat_id, variable)


def chat_key(chat_id: int | str, variable: str) -> str:
    return _join("chat", chat_id, variable)


def message_key(message_id: int | str, chat_id: int | str, variable: str) -> str:
    return _join("message", message_id, chat_id, variable)


def cooldown_key(user_id: int | str, chat_id: int | str, duration_ms: int) -> str:
    """Cooldown of one user inside one chat."""
    return _join("cooldown", user_id, chat_id, duration_ms)


def global_cooldown_key(user_id: int | str, duration_ms: int) -> str:
    """Cooldown of one user across every chat."""
    return _join("cooldown", user_id, duration_ms)


def chat_cooldown_key(chat_id: int | str, duration_ms: int) -> str:
    """Cooldown shared by everyone in one chat."""
    return _join("cooldown", chat_id, duration_ms)


def _now_ms() -> int:
    return int(time.time() * 1000)


async def cooldown_remaining(
    store: KVStore,
    table: str,
    key: str,
    duration_ms: int,
    now: int | None = None,
) -> int:
    """Milliseconds left on the cooldown stored under ``key``.

    0 when the cooldown has expired or the key holds no finite number.
    """
    now = _now_ms() if now is None else now
    stamp = _as_number(await store.get(table, key))
    if stamp is None or not math.isfinite(stamp):
        return 0
    return max(int(stamp) + duration_ms - now, 0)


async def check_cooldown(
    store: KVStore,
    table: str,
    key: str,
    duration_ms: int,
    now: int | None = None,
) -> int:
    """Return the remaining cooldown, or stamp a new one and return 0."""
    if duration_ms <= 0:
        raise InvalidArgumentError("duration_ms", "The 'duration_ms' parameter must be positive")
    now = _now_ms() if now is None else now
    remaining = await cooldown_remaining(store, table, key, duration_ms, now)
    if remaining > 0:
        return remaining
    await store.set(table, key, now)
    return 0


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


async def leaderboard(
    store: KVStore,
    table: str,
    kind: LeaderboardKind,
    variable: str,
    chat_id: int | str | None = None,
    limit: int = 10,
    *,
    descending: bool = True,
) -> list[tuple[str, float]]:
    """Rank owners of ``variable`` by its numeric value.

    ``kind="user"`` ranks users of ``chat_id``; ``kind="chat"`` ranks chats.
    Non-numeric values are skipped. Returns ``(owner_id, value)`` pairs.
    """
    if kind == "user":
        if chat_id is None:
            raise InvalidArgumentError("chat_id")

        def owner(key: str) -> str | None:
            parts = key.split(SEPARATOR, 3)
            if len(parts) == 4 and parts[0] == "user" and parts[2] == str(chat_id) and parts[3] == variable:
                return parts[1]
            return None

    elif kind == "chat":

        def owner(key: str) -> str | None:
            parts = key.split(SEPARATOR, 2)
            if len(parts) == 3 and parts[0] == "chat" and parts[2] == variable:
                return parts[1]
            return None

    else:
        raise InvalidArgumentError("kind", f"Unknown leaderboard kind: {kind}")

    ranking = []
    for entry in await store.find_many(
        table, lambda e, i: owner(e.key) is not None and _as_number(e.value) is not None
    ):
        ranking.append((owner(entry.key), _as_number(entry.value)))

    ranking.sort(key=lambda item: item[1], reverse=descending)
    return ranking[:limit]


__all__ = [
    "SEPARATOR",
    "chat_cooldown_key",
    "chat_key",
    "check_cooldown",
    "cooldown_key",
    "cooldown_remaining",
    "global_cooldown_key",
    "leaderboard",
    "message_key",
    "user_key",
]
