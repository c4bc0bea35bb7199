"""
The watcher: polls for the next archive in the sequence, downloads it when it
appears and advances to the following index.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.console import Console

from dataset_watcher.exceptions import StateStoreError
from dataset_watcher.models.config import WatcherConfig
from dataset_watcher.models.state import (
    DownloadEvent,
    DownloadState,
    SequenceState,
    coerce_positive_number,
)
from dataset_watcher.net.downloader import DownloadRequester
from dataset_watcher.net.prober import ExistenceProber
from dataset_watcher.storage.state_store import StateStore
from dataset_watcher.utils.path import dataset_filename, dataset_url
from dataset_watcher.utils.structured_logger import (
    WatcherEventLogger,
    create_event_logger,
)

from .notifier import ConsoleNotifier, Notifier
from .scheduler import PeriodicTimer

log = logging.getLogger(__name__)

ALARM_NAME = "dataset_check_alarm"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Watcher:
    """
    Coordinates probing, downloading and sequence advancement.

    Every read-modify-write of the persisted state (check cycles, download events,
    settings updates, startup reconciliation) runs under `self._lock`, which is what
    guarantees at most one download in flight even when a timer tick and a manual
    check race. A completed download runs the next check cycle while still holding
    the lock, so already-published archives are drained back to back.
    """

    def __init__(
        self,
        config: WatcherConfig,
        store: StateStore,
        prober: ExistenceProber,
        requester: DownloadRequester,
        notifier: Notifier,
        timer: PeriodicTimer | None = None,
        events: WatcherEventLogger | None = None,
    ):
        self.config = config
        self.store = store
        self.prober = prober
        self.requester = requester
        self.notifier = notifier
        self.timer = timer or PeriodicTimer(self.on_timer)
        self.events = events or create_event_logger()
        self._lock = asyncio.Lock()
        self._defaults = SequenceState(next_index=config.default_index).to_stored()
        self.requester.set_event_handler(self.handle_download_event)

    @classmethod
    def from_config(
        cls, config: WatcherConfig, console: Console | None = None
    ) -> "Watcher":
        """Builds a watcher with the default HTTP, storage and console collaborators."""
        config_dir = Path(config.config_path).expanduser()
        return cls(
            config,
            StateStore(config_dir),
            ExistenceProber(timeout=config.probe_timeout, user_agent=config.user_agent),
            DownloadRequester(
                Path(config.download_dir).expanduser(),
                user_agent=config.user_agent,
                timeout=config.download_timeout,
            ),
            ConsoleNotifier(console, enabled=config.notifications),
            events=create_event_logger(config_dir / "logs", enable_json=config.event_log),
        )

    # ------------------------------------------------------------------ state

    async def _load(self) -> tuple[SequenceState, set[str], dict[str, Any]]:
        stored = await self.store.load()
        state, invalid = SequenceState.from_stored(stored, self._defaults)
        return state, invalid, stored

    async def _save(self, **changes: Any) -> None:
        patch = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in changes.items()
        }
        await self.store.save(patch)

    def _notify(self, title: str, message: str) -> None:
        # Notifications never propagate failures into the cycle that sent them.
        try:
            self.notifier.notify(title, message)
        except Exception as e:
            log.debug(f"Notification '{title}' failed: {e}")

    async def get_state(self) -> SequenceState:
        """Returns a snapshot of the current state."""
        state, _, _ = await self._load()
        return state

    # ------------------------------------------------------------ check cycle

    async def check_once(self) -> None:
        """
        Runs one check cycle: probe the watched index and start its download if
        it exists. Safe to call from the timer, at startup, on user request and
        concurrently with itself.
        """
        async with self._lock:
            await self._check_once_locked()

    async def _check_once_locked(self) -> None:
        state, invalid, stored = await self._load()

        if not state.enabled:
            log.debug("Checking is disabled, skipping cycle.")
            return
        if state.is_downloading:
            if state.current_download_id is not None:
                log.debug(
                    f"Download {state.current_download_id} still in flight, skipping cycle."
                )
                return
            # Busy without a handle: the handle was never recorded.
            log.warning(
                "[yellow]Download marker has no handle, "
                f"{dataset_filename(state.next_index)} will be retried.[/yellow]"
            )
            self.events.state_repaired("is_downloading", True, False)
            await self._save(is_downloading=False)

        if invalid:
            repairs = {name: self._defaults[name] for name in invalid}
            for name, replacement in repairs.items():
                self.events.state_repaired(name, stored.get(name), replacement)
            await self.store.save(repairs)
            if "next_index" in invalid:
                log.warning(
                    f"[yellow]Stored index {stored.get('next_index')!r} is invalid, "
                    f"reset to {self._defaults['next_index']}.[/yellow]"
                )
                return

        index = state.next_index
        url = dataset_url(self.config.base_url, index)
        result = await self.prober.probe(url)

        await self._save(
            last_checked_at=_now(), last_checked_url=url, last_status=result.status
        )
        self.events.check_completed(index, url, result.exists, result.status)

        if not result.exists:
            status = result.status if result.status is not None else "no response"
            log.info(f"{dataset_filename(index)} not available yet ({status}).")
            return

        log.info(f"[green]Found {dataset_filename(index)}[/green]")
        await self._start_download(index)

    # ---------------------------------------------------- download coordinator

    async def _start_download(self, index: int) -> None:
        """
        Marks the watcher busy and hands `index` to the download requester.

        Must be called with the lock held and only when no download is in flight.
        A request that fails to start is handled like an interrupted download.
        """
        filename = dataset_filename(index)
        url = dataset_url(self.config.base_url, index)

        await self._save(
            is_downloading=True, last_found_index=index, last_found_at=_now()
        )
        self._notify("DataSet found", f"Found {filename}, starting download.")

        try:
            handle = await self.requester.start(
                url, filename, conflict_policy="uniquify", prompt_user=False
            )
        except Exception as e:
            log.error(f"[red]✗ Could not start download of {filename}: {e}[/red]")
            self.events.download_start_failed(index, str(e))
            await self._save(is_downloading=False, current_download_id=None)
            self._notify(
                "Download interrupted",
                f"Could not start {filename}. Will keep checking.",
            )
            return

        try:
            await self._save(current_download_id=handle)
        except StateStoreError as e:
            log.error(
                f"[red]✗ Could not record download {handle} of {filename}: {e}[/red]"
            )
            self.events.download_start_failed(index, str(e))
            await self._save(is_downloading=False)
            self._notify(
                "Download interrupted",
                f"Could not start {filename}. Will keep checking.",
            )
            return
        self.events.download_started(index, handle)

    async def handle_download_event(self, event: DownloadEvent) -> None:
        """Reacts to a state change reported by the download requester."""
        async with self._lock:
            state, _, _ = await self._load()
            if (
                state.current_download_id is None
                or event.handle != state.current_download_id
            ):
                log.debug(f"Ignoring {event.state.value} event for {event.handle}.")
                return

            finished = state.last_found_index or state.next_index

            if event.state == DownloadState.COMPLETE:
                next_index = finished + 1
                self._notify(
                    "Download complete",
                    f"Downloaded {dataset_filename(finished)}. "
                    f"Now watching for {dataset_filename(next_index)}.",
                )
                await self._save(
                    is_downloading=False,
                    current_download_id=None,
                    next_index=next_index,
                )
                self.events.download_finished(finished, event.handle, next_index)
                # The next archive may already be published.
                await self._check_once_locked()

            elif event.state == DownloadState.INTERRUPTED:
                self._notify(
                    "Download interrupted",
                    "Download was interrupted. Will keep checking.",
                )
                await self._save(is_downloading=False, current_download_id=None)
                self.events.download_interrupted(finished, event.handle)

    # -------------------------------------------------------------- settings

    async def apply_settings(self, patch: dict[str, Any]) -> SequenceState:
        """
        Applies a partial settings update and reschedules the timer.

        `enabled` must be a bool; `next_index` must be a whole number >= 1 and
        `interval_minutes` a number >= 1. Anything else leaves the field as it was.
        """
        accepted: dict[str, Any] = {}
        if isinstance(patch.get("enabled"), bool):
            accepted["enabled"] = patch["enabled"]
        next_index = coerce_positive_number(patch.get("next_index"), integral=True)
        if next_index is not None:
            accepted["next_index"] = next_index
        interval = coerce_positive_number(patch.get("interval_minutes"))
        if interval is not None:
            accepted["interval_minutes"] = interval

        rejected = set(patch) - set(accepted)
        if rejected:
            log.warning(
                f"[yellow]Ignoring invalid settings: {', '.join(sorted(rejected))}"
                "[/yellow]"
            )

        async with self._lock:
            await self.store.save(accepted)
            state = await self.get_state()

        self.timer.schedule(ALARM_NAME, state.interval_minutes)
        return state

    # ------------------------------------------------------- caller interface

    async def check_now(self) -> SequenceState:
        """Runs one check cycle and returns the resulting state."""
        await self.check_once()
        return await self.get_state()

    async def dispatch(self, message: dict[str, Any]) -> dict[str, Any]:
        """
        Message-style entry point: GET_STATE, CHECK_NOW or SETTINGS.

        SETTINGS accepts `enabled`, `nextIndex` and `intervalMinutes` (or their
        snake_case names).
        """
        kind = message.get("type") if isinstance(message, dict) else None
        if kind == "GET_STATE":
            state = await self.get_state()
        elif kind == "CHECK_NOW":
            state = await self.check_now()
        elif kind == "SETTINGS":
            patch = {}
            for key, alias in (
                ("enabled", "enabled"),
                ("next_index", "nextIndex"),
                ("interval_minutes", "intervalMinutes"),
            ):
                if alias in message:
                    patch[key] = message[alias]
                elif key in message:
                    patch[key] = message[key]
            state = await self.apply_settings(patch)
        else:
            return {"ok": False, "error": "Unknown message"}
        return {"ok": True, "state": state.to_stored()}

    # -------------------------------------------------------------- lifecycle

    async def reconcile(self) -> SequenceState:
        """
        Clears a download recorded as in flight that this process is not running.

        Such a record is left behind by a process that exited mid-download. It is
        treated as interrupted, so the same index is retried and a late event
        carrying the old handle no longer matches anything.
        """
        async with self._lock:
            state, _, _ = await self._load()
            if state.is_downloading and not self.requester.is_active(
                state.current_download_id
            ):
                log.warning(
                    "[yellow]A previous download did not finish, "
                    f"{dataset_filename(state.next_index)} will be retried.[/yellow]"
                )
                await self._save(is_downloading=False, current_download_id=None)
                state = await self.get_state()
        return state

    async def start(self, initial_check: bool = True) -> None:
        """Starts periodic checking, optionally with an immediate first check."""
        state = await self.reconcile()

        self.timer.schedule(ALARM_NAME, state.interval_minutes)
        log.info(
            f"Watching for {dataset_filename(state.next_index)} every "
            f"{state.interval_minutes:g} min."
        )
        if initial_check:
            await self.check_once()

    async def on_timer(self, name: str) -> None:
        """Timer callback: runs a check cycle for this watcher's timer."""
        if name != ALARM_NAME:
            return
        await self.check_once()

        # Pick up interval changes made by another process.
        state = await self.get_state()
        if self.timer.active.get(ALARM_NAME) != state.interval_minutes:
            log.info(f"Polling interval changed to {state.interval_minutes:g} min.")
            self.timer.schedule(ALARM_NAME, state.interval_minutes)

    async def wait_idle(self) -> None:
        """Waits until no download (including drained follow-ups) is running."""
        await self.requester.join()

    async def stop(self) -> None:
        """Cancels the timer and transfers and releases network resources."""
        await self.timer.close()
        await self.requester.close()
        await self.prober.close()
        self.events.logger.close()
