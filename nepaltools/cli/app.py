"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiofiles
import typer
from pathvalidate import sanitize_filename
from rich.console import Console
from rich.logging import RichHandler

from nepaltools import __version__
from nepaltools.exceptions import NepalToolsError
from nepaltools.models.config import StoreConfig
from nepaltools.storage.backends import SqliteBackend, create_backend
from nepaltools.storage.config_manager import ConfigManager
from nepaltools.storage.file_store import FileStore
from nepaltools.utils.formatting import format_size
from nepaltools.utils.structured_logger import create_structured_logger

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_file_details,
    print_files_table,
    print_history_table,
    print_import_summary,
    print_settings,
    print_stats_panel,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("nepaltools")

app = typer.Typer(
    name="nepaltools",
    help=(
        "Local file store with quota accounting, history and backups. Use"
        " 'nepaltools <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "nepaltools"


def _config_file(ctx: typer.Context) -> Path:
    return ctx.obj["config_dir"] / "config.ini"


def _load_config(ctx: typer.Context) -> StoreConfig:
    cli_options = {}
    if ctx.obj.get("backend"):
        cli_options["backend"] = ctx.obj["backend"]
    return ConfigManager(_config_file(ctx)).load_config(cli_options)


def _run_config(ctx: typer.Context) -> StoreConfig:
    try:
        return _load_config(ctx)
    except NepalToolsError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


@asynccontextmanager
async def store_session(config: StoreConfig) -> AsyncIterator[FileStore]:
    """Builds the configured backend and store, initializes it, and cleans up."""
    log_dir = Path(config.log_dir) if config.log_dir else Path(config.config_path) / "logs"
    base_logger, events = create_structured_logger(
        log_dir=log_dir, enable_json=config.json_logs
    )
    try:
        backend = create_backend(config.backend, Path(config.resolved_data_dir))
        base_logger.set_session_context(backend=backend.name)
        store = FileStore(backend, events=events)
        try:
            await store.init()
            yield store
        finally:
            await backend.close()
    finally:
        base_logger.close()


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Runs a coroutine, rendering application errors as a panel and exit code 1."""
    try:
        return asyncio.run(coro)
    except NepalToolsError as e:
        console.print(format_error_with_suggestions(e))
        log.debug("Full traceback:", exc_info=True)
        raise typer.Exit(code=1) from e


def _parse_assignments(items: list[str]) -> dict[str, Any]:
    """Parses 'key=value' arguments. Values are read as JSON when possible."""
    parsed = {}
    for item in items:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            console.print(f"[red]✗ Expected key=value, got '{item}'.[/red]")
            raise typer.Exit(code=1)
        try:
            parsed[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            parsed[key.strip()] = raw
    return parsed


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    config_dir: Path | None = typer.Option(  # noqa: B008
        None,
        "--config-dir",
        envvar="NEPALTOOLS_CONFIG_DIR",
        help="Directory holding config.ini (defaults to the user config dir).",
    ),
    backend: str | None = typer.Option(
        None, "--backend", "-b", help="Override the configured backend for this run."
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """NepalTools file store CLI"""
    if version:
        console.print(f"[bold]nepaltools[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose == 1:
        log_level = "INFO"
    elif verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("nepaltools").setLevel(log_level)

    ctx.obj = {"config_dir": config_dir or get_config_dir(), "backend": backend}

    if show_config:
        config_file = _config_file(ctx)
        if not config_file.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]nepaltools init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        print_config(config_file, ConfigManager(config_file)._get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    ctx: typer.Context,
    backend: str = typer.Option(
        "sqlite", "--backend", "-b", help="Storage backend: sqlite, json or memory."
    ),
    data_dir: str = typer.Option(
        "", "--data-dir", help="Where stored data lives (defaults to the config dir)."
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs/--no-json-logs", help="Write structured JSONL event logs."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create the configuration file and initialize the store."""
    config_file = _config_file(ctx)
    if (
        config_file.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    config_manager = ConfigManager(config_file)
    config_manager.save_new_config(
        {"backend": backend, "data_dir": data_dir, "json_logs": json_logs}
    )

    async def _init_async():
        config = config_manager.load_config()
        async with store_session(config) as store:
            usage = await store.get_storage_usage()
        return config, usage

    config, usage = _run(_init_async())
    console.print(f"[bold green]✓ Configuration saved to '{config_file}'[/bold green]")
    console.print(
        f"[green]✓ Store ready on the {config.backend.value} backend "
        f"(quota {format_size(usage.total)}).[/green]"
    )


@app.command()
def add(
    ctx: typer.Context,
    paths: list[Path] = typer.Argument(..., help="Files to store."),  # noqa: B008
    category: str | None = typer.Option(
        None, "--category", "-c", help="Category tag (derived from type if omitted)."
    ),
    mime_type: str | None = typer.Option(
        None, "--mime", help="Override the detected mime type."
    ),
):
    """Store one or more files."""
    config = _run_config(ctx)

    async def _add_async() -> int:
        failures = 0
        async with store_session(config) as store:
            for path in paths:
                try:
                    file_id = await store.save_path(path, category, mime_type)
                    console.print(f"[green]✓ Stored {path.name} as {file_id}[/green]")
                except NepalToolsError as e:
                    failures += 1
                    console.print(format_error_with_suggestions(e, {"file": str(path)}))
                except OSError as e:
                    failures += 1
                    console.print(f"[red]✗ Could not read {path}: {e}[/red]")
        return failures

    if _run(_add_async()):
        raise typer.Exit(code=1)


@app.command(name="list")
def list_files(
    ctx: typer.Context,
    type_filter: str | None = typer.Option(
        None, "--type", "-t", help="Only files whose mime type contains this text."
    ),
):
    """List stored files."""
    config = _run_config(ctx)

    async def _list_async():
        async with store_session(config) as store:
            if type_filter:
                return await store.get_files_by_type(type_filter)
            return list((await store.get_files()).values())

    records = _run(_list_async())
    print_files_table(sorted(records, key=lambda r: r.created_at))


@app.command()
def recent(
    ctx: typer.Context,
    limit: int = typer.Option(10, "--limit", "-n", help="How many files to show."),
):
    """List the most recently accessed files."""
    config = _run_config(ctx)

    async def _recent_async():
        async with store_session(config) as store:
            return await store.get_recent_files(limit)

    print_files_table(_run(_recent_async()), title="Recently Accessed")


@app.command()
def show(ctx: typer.Context, file_id: str = typer.Argument(..., help="File id.")):
    """Show a stored file's metadata."""
    config = _run_config(ctx)

    async def _show_async():
        async with store_session(config) as store:
            return await store.get_file(file_id)

    record = _run(_show_async())
    if record is None:
        console.print(f"[red]✗ No file with id '{file_id}'.[/red]")
        raise typer.Exit(code=1)
    print_file_details(record)


@app.command()
def get(
    ctx: typer.Context,
    file_id: str = typer.Argument(..., help="File id."),
    output_dir: Path = typer.Option(  # noqa: B008
        Path("."), "--output", "-o", help="Directory to write the file into."
    ),
):
    """Write a stored file back to disk."""
    config = _run_config(ctx)

    async def _get_async():
        async with store_session(config) as store:
            result = await store.read_file(file_id)
            if result is None:
                return None
            record, data = result
            output_dir.mkdir(parents=True, exist_ok=True)
            destination = output_dir / (sanitize_filename(record.name) or record.id)
            async with aiofiles.open(destination, "wb") as f:
                await f.write(data)
            await store.add_to_history(
                "file_download", {"fileId": file_id, "fileName": record.name}
            )
            return destination

    destination = _run(_get_async())
    if destination is None:
        console.print(f"[red]✗ No file with id '{file_id}'.[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Wrote {destination}[/green]")


@app.command(name="rm")
def remove(ctx: typer.Context, file_id: str = typer.Argument(..., help="File id.")):
    """Delete a stored file."""
    config = _run_config(ctx)

    async def _remove_async() -> bool:
        async with store_session(config) as store:
            deleted = await store.delete_file(file_id)
            if deleted:
                await store.add_to_history("file_delete", {"fileId": file_id})
            return deleted

    if not _run(_remove_async()):
        console.print(f"[red]✗ No file with id '{file_id}'.[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Deleted {file_id}[/green]")


@app.command()
def tag(
    ctx: typer.Context,
    file_id: str = typer.Argument(..., help="File id."),
    fields: list[str] = typer.Argument(..., help="key=value pairs to merge."),  # noqa: B008
):
    """Merge metadata fields into a stored file's record."""
    config = _run_config(ctx)
    updates = _parse_assignments(fields)

    async def _tag_async() -> bool:
        async with store_session(config) as store:
            return await store.update_file_metadata(file_id, updates)

    if not _run(_tag_async()):
        console.print(f"[red]✗ No file with id '{file_id}'.[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Updated {file_id}[/green]")


@app.command()
def stats(ctx: typer.Context):
    """Show storage statistics and quota usage."""
    config = _run_config(ctx)

    async def _stats_async():
        async with store_session(config) as store:
            return (
                await store.get_stats(),
                await store.get_storage_usage(),
                store.backend.name,
            )

    print_stats_panel(*_run(_stats_async()))


@app.command()
def history(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", help="How many entries to show."),
):
    """Show recent actions, newest first."""
    config = _run_config(ctx)

    async def _history_async():
        async with store_session(config) as store:
            return await store.get_history(limit)

    print_history_table(_run(_history_async()))


@app.command()
def settings(
    ctx: typer.Context,
    assignments: list[str] | None = typer.Argument(  # noqa: B008
        None, help="key=value pairs to update, e.g. compressionLevel=high."
    ),
):
    """Show or update settings."""
    config = _run_config(ctx)
    updates = _parse_assignments(assignments or [])

    async def _settings_async():
        async with store_session(config) as store:
            if updates:
                return await store.update_settings(updates)
            return await store.get_settings()

    print_settings(_run(_settings_async()))


@app.command(name="export")
def export_command(
    ctx: typer.Context,
    directory: Path = typer.Argument(  # noqa: B008
        Path("."), help="Directory to write the backup into."
    ),
):
    """Export the whole store to a JSON backup file."""
    config = _run_config(ctx)

    async def _export_async():
        async with store_session(config) as store:
            destination = await store.export_to_file(directory)
            await store.add_to_history("data_export", {"path": str(destination)})
            return destination

    destination = _run(_export_async())
    console.print(f"[green]✓ Backup written to {destination}[/green]")


@app.command(name="import")
def import_command(
    ctx: typer.Context,
    backup_file: Path = typer.Argument(..., help="Backup file to import."),  # noqa: B008
):
    """Import a JSON backup, merging it into the store."""
    config = _run_config(ctx)
    if not backup_file.is_file():
        console.print(f"[red]✗ Backup file not found: {backup_file}[/red]")
        raise typer.Exit(code=1)

    async def _import_async():
        async with store_session(config) as store:
            summary = await store.import_file(backup_file)
            await store.add_to_history(
                "data_import",
                {"path": str(backup_file), "files": summary.imported_files},
            )
            return summary

    print_import_summary(_run(_import_async()))


@app.command()
def recount(ctx: typer.Context):
    """Rebuild statistics from the stored files."""
    config = _run_config(ctx)

    async def _recount_async():
        async with store_session(config) as store:
            await store.recount_stats()
            return (
                await store.get_stats(),
                await store.get_storage_usage(),
                store.backend.name,
            )

    result = _run(_recount_async())
    console.print("[green]✓ Statistics rebuilt.[/green]")
    print_stats_panel(*result)


@app.command()
def clear(
    ctx: typer.Context,
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Delete every stored file, the history and the settings."""
    if not force and not typer.confirm(
        "Are you sure you want to clear the store? "
        "All files, history and settings will be erased."
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()
    config = _run_config(ctx)

    async def _clear_async():
        async with store_session(config) as store:
            await store.clear()

    _run(_clear_async())
    console.print("[green]✓ Store cleared.[/green]")


@app.command()
def vacuum(ctx: typer.Context):
    """Reclaim space in the sqlite backend after deletions."""
    config = _run_config(ctx)

    async def _vacuum_async() -> bool:
        async with store_session(config) as store:
            if not isinstance(store.backend, SqliteBackend):
                return False
            await store.backend.vacuum()
            return True

    if not _run(_vacuum_async()):
        console.print("[yellow]Vacuum only applies to the sqlite backend.[/yellow]")
        raise typer.Exit(code=1)
    console.print("[green]✓ Database optimized.[/green]")
