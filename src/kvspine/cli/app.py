"""
Root Typer application for the kvspine CLI.

Every command builds a store from ``KVSPINE_*`` settings (overridable with
the global options), runs one operation and closes the store again.
"""

from __future__ import annotations

from typing import Any

import typer
from typer import Typer

from kvspine.cli.utils import (
    console,
    err_console,
    make_settings,
    output_mapping,
    output_rows,
    output_value,
    parse_value,
    run_with_store,
)
from kvspine.core.logging import configure_logging
from kvspine.storage.manager import KVStore

app = Typer(
    name="kvspine",
    help="kvspine: table-oriented key/value storage with durable timeouts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version / global options ─────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("kvspine")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"kvspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    backend: str | None = typer.Option(None, "--backend", "-b", help="file, sql, mongo or firestore"),
    path: str | None = typer.Option(None, "--path", "-p", help="Root directory of the file backend"),
    url: str | None = typer.Option(None, "--url", "-u", help="Database URL (sql, mongo)"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """kvspine CLI: inspect and edit tables, list pending timeouts."""
    configure_logging(level=log_level, json_format=False)
    ctx.obj = {"backend": backend, "path": path, "url": url}


def _settings(ctx: typer.Context, declare: str | None = None):
    options: dict[str, Any] = ctx.obj or {}
    return make_settings(declare, **options)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def ping(ctx: typer.Context) -> None:
    """Measure the time spent reading every declared table."""
    settings = _settings(ctx)
    latency = run_with_store(settings, lambda store: store.ping())
    console.print(f"[green]ok[/green] backend={settings.backend} latency={latency:.2f}ms")


@app.command()
def get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Record key"),
    table: str = typer.Option("main", "--table", "-t"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Print the value stored under KEY."""

    async def _get(store: KVStore) -> tuple[bool, Any]:
        if not await store.has(table, key):
            return False, None
        return True, await store.get(table, key)

    found, value = run_with_store(_settings(ctx), _get)
    if not found:
        err_console.print(f"[yellow]Key '{key}' not found in table '{table}'[/yellow]")
        raise typer.Exit(code=1)
    output_value(value, as_json=json_out)


@app.command("set")
def set_(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Record key"),
    value: str = typer.Argument(..., help="Value (parsed as JSON when possible)"),
    table: str = typer.Option("main", "--table", "-t"),
) -> None:
    """Store VALUE under KEY."""
    parsed = parse_value(value)
    run_with_store(_settings(ctx), lambda store: store.set(table, key, parsed))
    console.print(f"[green]Stored[/green] {table}/{key}")


@app.command("all")
def all_(
    ctx: typer.Context,
    table: str = typer.Option("main", "--table", "-t"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List every record of a table."""
    data = run_with_store(_settings(ctx), lambda store: store.all(table))
    output_mapping(data, as_json=json_out, title=f"Table {table}")


@app.command()
def delete(
    ctx: typer.Context,
    keys: list[str] = typer.Argument(..., help="One or more record keys"),
    table: str = typer.Option("main", "--table", "-t"),
) -> None:
    """Delete one or more keys."""
    target: str | list[str] = keys[0] if len(keys) == 1 else list(keys)
    run_with_store(_settings(ctx), lambda store: store.delete(table, target))
    console.print(f"[green]Deleted[/green] {len(keys)} key(s) from {table}")


@app.command()
def clear(
    ctx: typer.Context,
    table: str = typer.Option("main", "--table", "-t"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Remove every record of a table."""
    if not yes:
        typer.confirm(f"Remove every record of table '{table}'?", abort=True)
    run_with_store(_settings(ctx), lambda store: store.clear(table))
    console.print(f"[green]Cleared[/green] {table}")


@app.command("export")
def export_(
    ctx: typer.Context,
    file_path: str = typer.Argument(..., help="Destination JSON file"),
    table: str = typer.Option("main", "--table", "-t"),
) -> None:
    """Write a table to a JSON document."""
    run_with_store(_settings(ctx), lambda store: store.convert_table_to_file(table, file_path))
    console.print(f"[green]Exported[/green] {table} -> {file_path}")


@app.command("import")
def import_(
    ctx: typer.Context,
    file_path: str = typer.Argument(..., help="Source JSON file"),
    table: str = typer.Option("main", "--table", "-t"),
) -> None:
    """Load a JSON document into a table, declaring it if needed."""
    run_with_store(_settings(ctx, declare=table), lambda store: store.convert_file_to_table(table, file_path))
    console.print(f"[green]Imported[/green] {file_path} -> {table}")


@app.command()
def timeouts(
    ctx: typer.Context,
    timeout_id: str | None = typer.Option(None, "--id", help="Only records of this descriptor id"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List durable timeouts waiting to fire."""
    records = run_with_store(_settings(ctx), lambda store: store.timeouts.list_timeouts(timeout_id))
    rows = [{"key": record.key, **record.to_dict()} for record in records]
    output_rows(rows, as_json=json_out, title="Timeouts")
