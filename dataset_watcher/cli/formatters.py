"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dataset_watcher.models.state import SequenceState
from dataset_watcher.utils.formatting import format_interval, format_timestamp
from dataset_watcher.utils.path import dataset_filename


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your configuration file (--show-config).",
            "• Run `dataset-watcher init --force` to write a fresh configuration.",
        ],
        "StateStoreError": [
            "• Make sure the configuration directory is writable.",
            "• Check that the disk is not full.",
        ],
        "DownloadStartError": [
            "• Make sure the download directory exists and is writable.",
        ],
        "ClientConnectorError": [
            "• A network connection issue occurred.",
            "• The file server might be temporarily unavailable.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

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
            content or "[dim](defaults, no file written yet)[/dim]",
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def build_state_table(state: SequenceState) -> Table:
    """Builds the status table shown by `status`, `check` and `set`."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    enabled = "[green]on[/green]" if state.enabled else "[red]off[/red]"
    table.add_row("Checking:", enabled)
    table.add_row("Watching for:", dataset_filename(state.next_index))
    table.add_row("Interval:", format_interval(state.interval_minutes))

    if state.is_downloading:
        table.add_row(
            "Downloading:",
            f"[yellow]yes[/yellow] [dim]({state.current_download_id or 'starting'})[/dim]",
        )
    else:
        table.add_row("Downloading:", "no")

    if state.last_found_index:
        last_found = (
            f"{dataset_filename(state.last_found_index)} "
            f"({format_timestamp(state.last_found_at)})"
        )
    else:
        last_found = "-"
    table.add_row("Last found:", last_found)
    table.add_row("Last checked:", format_timestamp(state.last_checked_at))
    table.add_row(
        "Last status:", "-" if state.last_status is None else str(state.last_status)
    )
    table.add_row("Last URL:", state.last_checked_url or "-")
    return table


def print_state(state: SequenceState, title: str = "Watcher State"):
    """Displays the watcher state in a panel."""
    Console().print(
        Panel(build_state_table(state), title=f"[bold]{title}[/bold]", expand=False)
    )
