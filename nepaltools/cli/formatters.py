"""
Functions for formatting and displaying store data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nepaltools.models.records import FileRecord, HistoryEntry
from nepaltools.models.settings import Settings
from nepaltools.models.stats import ImportSummary, StorageStats, StorageUsage
from nepaltools.utils.formatting import format_percent, format_size, format_timestamp


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = getattr(error, "kind", type(error).__name__)
    error_msg = str(error)

    suggestions_map = {
        "FileTooLarge": [
            "• Raise the limit with `nepaltools settings maxFileSizeBytes=<bytes>`.",
            "• Compress or split the file before storing it.",
        ],
        "InvalidBackupFormat": [
            "• Make sure the file was produced by `nepaltools export`.",
            "• A backup needs at least the 'version' and 'files' fields.",
        ],
        "QuotaExceeded": [
            "• Imports must leave 10% of the storage quota free.",
            "• Delete unused files with `nepaltools rm <id>` and try again.",
            "• Switch to the sqlite backend for a larger quota.",
        ],
        "BackendIOError": [
            "• Check that the data directory is writable.",
            "• Run `nepaltools recount` afterwards to repair statistics.",
        ],
        "InvalidMetadata": [
            "• Run `nepaltools show <id>` to see the current record.",
            "• sizeBytes must be a non-negative integer; name cannot be null.",
        ],
        "InvalidSettings": [
            "• Run `nepaltools settings` to see the current values.",
            "• compressionLevel must be one of: low, medium, high.",
        ],
        "ConfigurationError": [
            "• Run `nepaltools init` to create a configuration file.",
            "• Use `nepaltools init --force` to overwrite a broken one.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = "\n".join(f"{key} = {value}" for key, value in config_data.items())
    console.print(
        Panel(
            content,
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_files_table(records: list[FileRecord], title: str = "Stored Files"):
    """Displays a table of stored file records."""
    console = Console()
    if not records:
        console.print("[dim]No files stored yet.[/dim]")
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Category", style="magenta")
    table.add_column("Size", justify="right", style="green")
    table.add_column("Last Accessed", style="blue")
    for record in records:
        table.add_row(
            record.id,
            record.name,
            record.mime_type,
            record.category,
            format_size(record.size_bytes),
            format_timestamp(record.last_accessed_at),
        )
    console.print(table)


def print_file_details(record: FileRecord):
    """Displays every metadata field of a single record."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Name:", record.name)
    table.add_row("Type:", record.mime_type)
    table.add_row("Category:", record.category)
    table.add_row("Size:", f"{format_size(record.size_bytes)} ({record.size_bytes} B)")
    table.add_row("Created:", format_timestamp(record.created_at))
    table.add_row("Last Accessed:", format_timestamp(record.last_accessed_at))
    for key, value in (record.model_extra or {}).items():
        table.add_row(f"{key}:", str(value))

    console.print(Panel(table, title=f"[bold]{record.id}[/bold]", border_style="cyan"))


def print_stats_panel(stats: StorageStats, usage: StorageUsage, backend_name: str):
    """Displays aggregate statistics and quota usage."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right", width=16)
    table.add_column(justify="left")

    table.add_row("Files:", f"[bold green]{stats.total_files}[/bold green]")
    table.add_row("PDFs:", str(stats.pdf_count))
    table.add_row("Images:", str(stats.image_count))
    table.add_row("Total Size:", f"[cyan]{format_size(stats.total_size_bytes)}[/cyan]")
    table.add_row("", "")  # Spacer

    if usage.percent >= 90:
        color = "red"
    elif usage.percent >= 70:
        color = "yellow"
    else:
        color = "green"
    table.add_row("Backend:", backend_name)
    table.add_row(
        "Usage:",
        f"[{color}]{format_size(usage.used)} / {format_size(usage.total)} "
        f"({format_percent(usage.percent)})[/{color}]",
    )
    table.add_row("Updated:", f"[dim]{format_timestamp(stats.last_updated)}[/dim]")

    console.print(
        Panel(
            table,
            title="[bold]Storage Statistics[/bold]",
            border_style="cyan",
            expand=False,
        )
    )


def print_history_table(entries: list[HistoryEntry]):
    """Displays history entries, newest first."""
    console = Console()
    if not entries:
        console.print("[dim]No history yet.[/dim]")
        return

    table = Table(title="History", box=box.SIMPLE)
    table.add_column("When", style="blue", no_wrap=True)
    table.add_column("Action", style="cyan", no_wrap=True)
    table.add_column("Details", style="dim")
    for entry in entries:
        if isinstance(entry.payload, dict):
            details = ", ".join(f"{k}={v}" for k, v in entry.payload.items())
        else:
            details = "" if entry.payload is None else str(entry.payload)
        table.add_row(format_timestamp(entry.timestamp), entry.action, details)
    console.print(table)


def print_settings(settings: Settings):
    """Displays the persisted settings using their stored names."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    for key, value in settings.to_storage().items():
        if key == "maxFileSizeBytes":
            value = f"{value} ({format_size(value)})"
        table.add_row(f"{key}:", str(value))
    console.print(Panel(table, title="[bold]Settings[/bold]", border_style="cyan"))


def print_import_summary(summary: ImportSummary):
    """Displays the outcome of a backup import."""
    console = Console()
    console.print(
        f"[green]✓ Imported {summary.imported_files} file(s) "
        f"({format_size(summary.imported_size_bytes)}).[/green]"
    )
    if summary.settings_merged:
        console.print("[green]✓ Settings merged from backup.[/green]")
    if summary.overlapping_ids:
        console.print(
            f"[yellow]⚠️  {len(summary.overlapping_ids)} file(s) were already stored "
            "and are now counted twice in the statistics. "
            "Run [cyan]nepaltools recount[/cyan] to rebuild them.[/yellow]"
        )
