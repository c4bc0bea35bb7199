"""
Handles the streaming download of archives over HTTP and reports each transfer's
progress as asynchronous state-change events.
"""

import asyncio
import logging
import os
import time
import uuid
from collections.abc import Awaitable, Callable
from contextlib import suppress
from pathlib import Path

import aiofiles
import aiohttp

from dataset_watcher.exceptions import DownloadStartError, UnsupportedDownloadOptionError
from dataset_watcher.models.config import DEFAULT_USER_AGENT
from dataset_watcher.models.state import DownloadEvent, DownloadState
from dataset_watcher.utils.formatting import format_duration, format_size
from dataset_watcher.utils.path import create_dir, resolve_download_path

log = logging.getLogger(__name__)

EventHandler = Callable[[DownloadEvent], Awaitable[None]]

CONFLICT_POLICIES = ("uniquify", "overwrite")


class DownloadRequester:
    """
    Starts background transfers and reports their state through an event handler.

    `start` returns an opaque handle immediately; the transfer itself runs as an
    asyncio task that emits IN_PROGRESS once the server answers, then exactly one
    of COMPLETE or INTERRUPTED.
    """

    CHUNK_SIZE = 262144  # 256 KB

    def __init__(
        self,
        download_dir: Path,
        on_event: EventHandler | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 0.0,
        session: aiohttp.ClientSession | None = None,
    ):
        """
        Initializes the requester.

        Args:
            download_dir: Directory that receives finished files.
            on_event: Coroutine called with every DownloadEvent.
            user_agent: User-Agent header for transfers.
            timeout: Total time limit for one transfer in seconds, 0 for none.
            session: An existing session to use instead of creating one.
        """
        self.download_dir = download_dir
        self._on_event = on_event
        self._user_agent = user_agent
        self._timeout = aiohttp.ClientTimeout(
            total=timeout or None, sock_connect=15, sock_read=90
        )
        self._session = session
        self._owns_session = session is None
        self._tasks: dict[str, asyncio.Task] = {}

    def set_event_handler(self, on_event: EventHandler) -> None:
        """Sets the coroutine that receives download state changes."""
        self._on_event = on_event

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self._user_agent},
                timeout=self._timeout,
            )
            self._owns_session = True
        return self._session

    def is_active(self, handle: str | None) -> bool:
        """Returns True if `handle` names a transfer that is still running."""
        return handle is not None and handle in self._tasks

    async def start(
        self,
        url: str,
        suggested_filename: str,
        conflict_policy: str = "uniquify",
        prompt_user: bool = False,
    ) -> str:
        """
        Requests a download and returns its handle.

        Raises:
            UnsupportedDownloadOptionError: For `prompt_user=True` or an unknown
                conflict policy.
            DownloadStartError: If the download directory cannot be created.
        """
        if prompt_user:
            raise UnsupportedDownloadOptionError(
                "This downloader runs unattended and cannot prompt for a location."
            )
        if conflict_policy not in CONFLICT_POLICIES:
            raise UnsupportedDownloadOptionError(
                f"Unknown conflict policy '{conflict_policy}'. "
                f"Expected one of: {', '.join(CONFLICT_POLICIES)}."
            )

        try:
            await asyncio.to_thread(create_dir, self.download_dir)
        except OSError as e:
            raise DownloadStartError(
                f"Cannot create download directory '{self.download_dir}': {e}"
            ) from e

        handle = uuid.uuid4().hex
        task = asyncio.create_task(
            self._transfer(handle, url, suggested_filename, conflict_policy),
            name=f"download:{handle}",
        )
        self._tasks[handle] = task
        task.add_done_callback(lambda _t: self._tasks.pop(handle, None))
        log.debug(f"Started download {handle} for {url}")
        return handle

    async def _emit(self, handle: str, state: DownloadState) -> None:
        if self._on_event is None:
            return
        try:
            await self._on_event(DownloadEvent(handle=handle, state=state))
        except Exception:
            log.exception(f"Download event handler failed for {handle} ({state.value}).")

    async def _transfer(
        self, handle: str, url: str, suggested_filename: str, conflict_policy: str
    ) -> None:
        """Streams `url` to disk and emits the transfer's state changes."""
        part_path: Path | None = None
        start_time = time.monotonic()
        try:
            session = await self._initialize_session()
            async with session.get(url, allow_redirects=True) as response:
                response.raise_for_status()
                await self._emit(handle, DownloadState.IN_PROGRESS)

                destination = await asyncio.to_thread(
                    resolve_download_path,
                    self.download_dir,
                    suggested_filename,
                    conflict_policy,
                )
                part_path = destination.with_name(destination.name + ".part")

                bytes_downloaded = 0
                async with aiofiles.open(part_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                        await f.write(chunk)
                        bytes_downloaded += len(chunk)

            await asyncio.to_thread(os.replace, part_path, destination)
            part_path = None
            log.info(
                f"[green]✓ Saved '{destination.name}' "
                f"({format_size(bytes_downloaded)} in "
                f"{format_duration(time.monotonic() - start_time)}).[/green]"
            )
        except asyncio.CancelledError:
            log.debug(f"Download {handle} was cancelled.")
            await self._discard(part_path)
            await self._emit(handle, DownloadState.INTERRUPTED)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            log.warning(f"[yellow]Download of {url} failed: {e}[/yellow]")
            await self._discard(part_path)
            await self._emit(handle, DownloadState.INTERRUPTED)
            return

        await self._emit(handle, DownloadState.COMPLETE)

    @staticmethod
    async def _discard(part_path: Path | None) -> None:
        if part_path is None:
            return
        with suppress(OSError):
            await asyncio.to_thread(part_path.unlink, missing_ok=True)

    async def join(self) -> None:
        """
        Waits until no transfer is running, including transfers started by event
        handlers while waiting.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def close(self) -> None:
        """Cancels running transfers and closes the session if owned."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            log.debug("Downloader session closed.")
