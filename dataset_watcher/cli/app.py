"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from dataset_watcher import __version__
from dataset_watcher.core.watcher import Watcher
from dataset_watcher.exceptions import DatasetWatcherError
from dataset_watcher.models.config import WatcherConfig
from dataset_watcher.models.state import SequenceState
from dataset_watcher.storage.config_manager import ConfigManager

from .formatters import format_error_with_suggestions, print_config, print_state

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
log = logging.getLogger("dataset_watcher")

app = typer.Typer(
    name="dataset-watcher",
    help=(
        "Watches a file server for sequentially numbered archives and downloads"
        " each one as soon as it is published."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if override := os.getenv("DATASET_WATCHER_CONFIG_DIR"):
        return Path(override).expanduser()
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "dataset-watcher"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict | None = None) -> WatcherConfig:
    """Loads the config file (or defaults), exiting with a panel on errors."""
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except DatasetWatcherError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _run_with_watcher(config: WatcherConfig, action):
    """Runs `action(watcher)` on a fresh watcher and always shuts it down."""

    async def _run():
        watcher = Watcher.from_config(config, console)
        try:
            return await action(watcher)
        finally:
            await watcher.stop()

    try:
        return asyncio.run(_run())
    except DatasetWatcherError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


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
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Dataset Watcher CLI"""
    if version:
        console.print(
            f"[bold]dataset-watcher[/bold] version [cyan]{__version__}[/cyan]"
        )
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("dataset_watcher").setLevel(log_level)

    if show_config:
        config = _load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    base_url: str | None = typer.Option(
        None, "--base-url", help="Directory URL the archives are published under."
    ),
    download_dir: str | None = typer.Option(
        None, "--download-dir", "-d", help="Where finished archives are saved."
    ),
    default_index: int | None = typer.Option(
        None, "--default-index", help="Index used when the stored one is invalid."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Write a configuration file with default values."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        key: value
        for key, value in {
            "base_url": base_url,
            "download_dir": download_dir,
            "default_index": default_index,
        }.items()
        if value is not None
    }
    try:
        ConfigManager(CONFIG_FILE).save_new_config(settings)
    except DatasetWatcherError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Start watching with: [cyan]dataset-watcher run[/cyan]")


@app.command()
def run(
    no_initial_check: bool = typer.Option(
        False,
        "--no-initial-check",
        help="Wait for the first timer tick instead of checking right away.",
    ),
    download_dir: str | None = typer.Option(
        None, "--download-dir", "-d", help="Override the download directory."
    ),
):
    """Watch for new archives until interrupted."""
    overrides = {"download_dir": download_dir} if download_dir else None
    config = _load_config(overrides)

    async def _watch(watcher: Watcher):
        await watcher.start(initial_check=not no_initial_check)
        console.print("[dim]Watching. Press Ctrl+C to stop.[/dim]")
        await asyncio.Event().wait()

    _run_with_watcher(config, _watch)


@app.command()
def check():
    """Check for the watched archive once, downloading it if it is available."""
    config = _load_config()

    async def _check(watcher: Watcher) -> SequenceState:
        state = await watcher.check_now()
        if state.is_downloading:
            console.print(
                "[cyan]Download in progress, waiting for it to finish...[/cyan]"
            )
            await watcher.wait_idle()
            state = await watcher.get_state()
        return state

    print_state(_run_with_watcher(config, _check))


@app.command()
def status():
    """Show the watched index and the result of the last check."""
    config = _load_config()
    print_state(_run_with_watcher(config, lambda watcher: watcher.get_state()))


@app.command(name="set")
def set_command(
    enable: bool | None = typer.Option(
        None, "--enable/--disable", help="Turn periodic checking on or off."
    ),
    next_index: str | None = typer.Option(
        None, "--next-index", "-n", help="Index of the archive to watch for (>= 1)."
    ),
    interval: str | None = typer.Option(
        None, "--interval", "-i", help="Polling interval in minutes (>= 1)."
    ),
):
    """Change the watched index, polling interval or on/off switch."""
    patch = {
        key: value
        for key, value in {
            "enabled": enable,
            "next_index": next_index,
            "interval_minutes": interval,
        }.items()
        if value is not None
    }
    if not patch:
        console.print(
            "[red]✗ Nothing to change.[/red] "
            "Use [cyan]--enable/--disable[/cyan], [cyan]--next-index[/cyan] "
            "or [cyan]--interval[/cyan]."
        )
        raise typer.Exit(code=1)

    config = _load_config()
    state = _run_with_watcher(config, lambda watcher: watcher.apply_settings(patch))
    print_state(state, title="Settings Saved")


@app.command(name="reset-state")
def reset_state(
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Clear a download marked as in flight by a process that no longer runs."""
    if not force and not typer.confirm(
        "Clear the in-flight download marker? Only do this when no watcher is "
        "running, or its current download will be forgotten."
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()

    config = _load_config()

    async def _reset(watcher: Watcher) -> SequenceState:
        await watcher.reconcile()
        return await watcher.get_state()

    print_state(_run_with_watcher(config, _reset))
