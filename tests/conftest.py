"""
Shared fixtures and in-memory collaborators for the watcher tests.
"""

import asyncio
import json
from pathlib import Path

import pytest

from dataset_watcher.core.watcher import Watcher
from dataset_watcher.models.config import WatcherConfig
from dataset_watcher.models.state import DownloadEvent, DownloadState, ProbeResult
from dataset_watcher.storage.state_store import StateStore
from dataset_watcher.utils.path import dataset_url
from dataset_watcher.utils.structured_logger import create_event_logger

BASE_URL = "https://files.example.test/data/"


def url_for(index: int) -> str:
    return dataset_url(BASE_URL, index)


class FakeProber:
    """Answers probes from a table of URL -> ProbeResult (404 by default)."""

    def __init__(self, results: dict[str, ProbeResult] | None = None, delay: float = 0):
        self.results = results or {}
        self.delay = delay
        self.calls: list[str] = []

    def publish(self, *indexes: int) -> None:
        for index in indexes:
            self.results[url_for(index)] = ProbeResult(exists=True, status=200)

    async def probe(self, url: str) -> ProbeResult:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.results.get(url, ProbeResult(exists=False, status=404))

    async def close(self) -> None:
        pass


class FakeRequester:
    """Records download requests; tests deliver state changes with `emit`."""

    def __init__(self, fail: Exception | None = None):
        self.fail = fail
        self.started: list[dict] = []
        self.active: set[str] = set()
        self._handler = None

    def set_event_handler(self, handler) -> None:
        self._handler = handler

    async def start(
        self, url, suggested_filename, conflict_policy="uniquify", prompt_user=False
    ) -> str:
        if self.fail:
            raise self.fail
        handle = f"dl-{len(self.started) + 1}"
        self.started.append(
            {
                "handle": handle,
                "url": url,
                "filename": suggested_filename,
                "conflict_policy": conflict_policy,
                "prompt_user": prompt_user,
            }
        )
        self.active.add(handle)
        return handle

    def is_active(self, handle) -> bool:
        return handle in self.active

    async def emit(self, handle: str, state: DownloadState) -> None:
        if state != DownloadState.IN_PROGRESS:
            self.active.discard(handle)
        await self._handler(DownloadEvent(handle=handle, state=state))

    async def join(self) -> None:
        pass

    async def close(self) -> None:
        pass


class FakeTimer:
    def __init__(self):
        self.schedules: list[tuple[str, float]] = []
        self._active: dict[str, float] = {}

    @property
    def active(self) -> dict[str, float]:
        return dict(self._active)

    def schedule(self, name: str, period_minutes: float) -> None:
        self.schedules.append((name, period_minutes))
        self._active[name] = period_minutes

    def cancel(self, name: str) -> bool:
        return self._active.pop(name, None) is not None

    async def close(self) -> None:
        self._active.clear()


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.notes: list[tuple[str, str]] = []

    def notify(self, title: str, message: str) -> None:
        self.notes.append((title, message))
        if self.fail:
            raise RuntimeError("notification service unavailable")

    @property
    def titles(self) -> list[str]:
        return [title for title, _ in self.notes]


class Harness:
    """A watcher wired to fakes, plus direct access to the state file."""

    def __init__(self, tmp_path: Path, **watcher_kwargs):
        self.store = StateStore(tmp_path)
        self.config = WatcherConfig(base_url=BASE_URL, config_path=str(tmp_path))
        self.prober = watcher_kwargs.pop("prober", FakeProber())
        self.requester = watcher_kwargs.pop("requester", FakeRequester())
        self.notifier = watcher_kwargs.pop("notifier", RecordingNotifier())
        self.timer = FakeTimer()
        self._watcher = None

    @property
    def watcher(self) -> Watcher:
        # Built lazily so the asyncio.Lock is created inside the running loop.
        if self._watcher is None:
            self._watcher = Watcher(
                self.config,
                self.store,
                self.prober,
                self.requester,
                self.notifier,
                timer=self.timer,
                events=create_event_logger(),
            )
        return self._watcher

    def seed(self, **values) -> None:
        self.store.path.parent.mkdir(parents=True, exist_ok=True)
        self.store.path.write_text(json.dumps(values), encoding="utf-8")

    def stored(self) -> dict:
        if not self.store.path.is_file():
            return {}
        return json.loads(self.store.path.read_text(encoding="utf-8"))


@pytest.fixture
def harness(tmp_path):
    return Harness(tmp_path)
