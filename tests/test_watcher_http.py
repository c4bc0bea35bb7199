"""
End-to-end watcher run against a real local aiohttp server, using the real
prober, download requester and state store.
"""

import asyncio

from aiohttp import web
from aiohttp.test_utils import TestServer

from dataset_watcher.core.watcher import Watcher
from dataset_watcher.models.config import WatcherConfig
from dataset_watcher.net.downloader import DownloadRequester
from dataset_watcher.net.prober import ExistenceProber
from dataset_watcher.storage.state_store import StateStore
from dataset_watcher.utils.structured_logger import create_event_logger
from tests.conftest import FakeTimer, RecordingNotifier


def _archive_server(published: dict[str, bytes]) -> web.Application:
    async def handler(request):
        body = published.get(request.match_info["name"])
        if body is None:
            return web.Response(status=404)
        return web.Response(body=body)

    app = web.Application()
    app.router.add_get("/files/{name}", handler)
    return app


def test_published_archives_are_downloaded_back_to_back(tmp_path):
    published = {
        "DataSet 9.zip": b"PK\x03\x04nine",
        "DataSet 10.zip": b"PK\x03\x04ten",
    }
    download_dir = tmp_path / "downloads"
    notifier = RecordingNotifier()

    async def scenario():
        async with TestServer(_archive_server(published)) as server:
            config = WatcherConfig(
                base_url=str(server.make_url("/files/")),
                config_path=str(tmp_path),
            )
            watcher = Watcher(
                config,
                StateStore(tmp_path),
                ExistenceProber(timeout=5),
                DownloadRequester(download_dir),
                notifier,
                timer=FakeTimer(),
                events=create_event_logger(),
            )
            try:
                started = await watcher.check_now()
                await watcher.wait_idle()
                return started, await watcher.get_state()
            finally:
                await watcher.stop()

    started, state = asyncio.run(scenario())

    assert started.is_downloading is True
    assert started.last_found_index == 9
    assert (download_dir / "DataSet 9.zip").read_bytes() == published["DataSet 9.zip"]
    assert (download_dir / "DataSet 10.zip").read_bytes() == published["DataSet 10.zip"]
    assert state.next_index == 11
    assert state.last_found_index == 10
    assert state.is_downloading is False
    assert state.current_download_id is None
    assert state.last_status == 404
    assert state.last_checked_url.endswith("/files/DataSet%2011.zip")
    assert notifier.titles.count("Download complete") == 2
