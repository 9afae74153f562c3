"""
CLI utility helpers: settings resolution, store lifecycle and output.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from kvspine.core.errors import KVSpineError
from kvspine.core.settings import KVSettings
from kvspine.storage.manager import KVStore

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


# ── Store helpers ────────────────────────────────────────────────────────


def make_settings(
    declare: str | None = None,
    *,
    backend: str | None = None,
    path: str | None = None,
    url: str | None = None,
) -> KVSettings:
    """Resolve settings from the environment, then command-line overrides.

    ``declare`` is added to the declared tables. Only ``import`` passes it, so
    a mistyped table name elsewhere fails with ``UnknownTableError``.
    """
    overrides: dict[str, Any] = {}
    if backend:
        overrides["backend"] = backend
    if path:
        overrides["path"] = path
    if url:
        overrides["url"] = url
    try:
        settings = KVSettings(**overrides)
    except ValidationError as e:
        err_console.print(f"[bold red]Invalid settings[/bold red]: {e}")
        raise typer.Exit(code=2) from e
    if declare and declare not in settings.tables:
        settings = settings.model_copy(update={"tables": [*settings.tables, declare]})
    return settings


def run_with_store(settings: KVSettings, action: Callable[[KVStore], Awaitable[T]]) -> T:
    """Connect a store, run ``action`` against it and close it again.

    Library errors are printed and turned into exit code 1.
    """

    async def _main() -> T:
        async with KVStore(settings=settings, logging=False, schedule_timeouts=False) as store:
            return await action(store)

    try:
        return asyncio.run(_main())
    except KVSpineError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        raise typer.Exit(code=1) from e


def parse_value(raw: str) -> Any:
    """Interpret ``raw`` as JSON, falling back to the plain string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


# ── Output helpers ───────────────────────────────────────────────────────


def output_value(value: Any, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(json.dumps(value, default=str))
    elif isinstance(value, (dict, list)):
        console.print_json(json.dumps(value, default=str))
    else:
        console.print(str(value))


def output_mapping(data: dict[str, Any], *, as_json: bool = False, title: str = "") -> None:
    """Render a ``key -> value`` mapping as a Rich table (or JSON)."""
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if not data:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    table.add_column("key", overflow="fold")
    table.add_column("value", overflow="fold")
    for key, value in data.items():
        table.add_row(key, json.dumps(value, default=str))
    console.print(table)


def output_rows(rows: list[dict[str, Any]], *, as_json: bool = False, title: str = "") -> None:
    """Render a list of flat dicts as a Rich table (or JSON)."""
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) for v in row.values()))
    console.print(table)
