"""
Download requester tests against a real local aiohttp server.
"""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from dataset_watcher.exceptions import UnsupportedDownloadOptionError
from dataset_watcher.models.state import DownloadState
from dataset_watcher.net.downloader import DownloadRequester

PAYLOAD = b"PK\x03\x04" + b"x" * 300_000


def _make_app(status=200, release: asyncio.Event | None = None):
    async def handler(request):
        if status != 200:
            return web.Response(status=status)
        response = web.StreamResponse(status=200)
        response.content_length = len(PAYLOAD)
        await response.prepare(request)
        await response.write(PAYLOAD[:1000])
        if release is not None:
            await release.wait()
        await response.write(PAYLOAD[1000:])
        await response.write_eof()
        return response

    app = web.Application()
    app.router.add_get("/files/{name}", handler)
    return app


async def _download(tmp_path, app, filename="DataSet 9.zip", **start_kwargs):
    events = []

    async def on_event(event):
        events.append(event)

    async with TestServer(app) as server:
        requester = DownloadRequester(tmp_path, on_event=on_event)
        try:
            handle = await requester.start(
                str(server.make_url("/files/DataSet%209.zip")), filename, **start_kwargs
            )
            await requester.join()
        finally:
            await requester.close()
    return handle, events


def test_download_completes_and_saves_file(tmp_path):
    handle, events = asyncio.run(_download(tmp_path, _make_app()))

    assert [(e.handle, e.state) for e in events] == [
        (handle, DownloadState.IN_PROGRESS),
        (handle, DownloadState.COMPLETE),
    ]
    assert (tmp_path / "DataSet 9.zip").read_bytes() == PAYLOAD
    assert not list(tmp_path.glob("*.part"))


def test_existing_file_is_uniquified(tmp_path):
    (tmp_path / "DataSet 9.zip").write_bytes(b"old")
    (tmp_path / "DataSet 9 (1).zip").write_bytes(b"older")

    asyncio.run(_download(tmp_path, _make_app()))

    assert (tmp_path / "DataSet 9.zip").read_bytes() == b"old"
    assert (tmp_path / "DataSet 9 (1).zip").read_bytes() == b"older"
    assert (tmp_path / "DataSet 9 (2).zip").read_bytes() == PAYLOAD


def test_overwrite_policy_replaces_file(tmp_path):
    (tmp_path / "DataSet 9.zip").write_bytes(b"old")

    asyncio.run(_download(tmp_path, _make_app(), conflict_policy="overwrite"))

    assert (tmp_path / "DataSet 9.zip").read_bytes() == PAYLOAD


def test_http_error_interrupts(tmp_path):
    handle, events = asyncio.run(_download(tmp_path, _make_app(status=404)))

    assert [(e.handle, e.state) for e in events] == [
        (handle, DownloadState.INTERRUPTED)
    ]
    assert list(tmp_path.iterdir()) == []


def test_handles_are_unique(tmp_path):
    async def scenario():
        requester = DownloadRequester(tmp_path)
        try:
            first = await requester.start("http://127.0.0.1:9/a", "a.zip")
            second = await requester.start("http://127.0.0.1:9/b", "b.zip")
            await requester.join()
        finally:
            await requester.close()
        return first, second

    first, second = asyncio.run(scenario())

    assert first != second


def test_prompting_is_not_supported(tmp_path):
    async def scenario():
        requester = DownloadRequester(tmp_path)
        try:
            await requester.start("http://example.test/a.zip", "a.zip", prompt_user=True)
        finally:
            await requester.close()

    with pytest.raises(UnsupportedDownloadOptionError):
        asyncio.run(scenario())


def test_unknown_conflict_policy_is_rejected(tmp_path):
    async def scenario():
        requester = DownloadRequester(tmp_path)
        try:
            await requester.start(
                "http://example.test/a.zip", "a.zip", conflict_policy="prompt"
            )
        finally:
            await requester.close()

    with pytest.raises(UnsupportedDownloadOptionError):
        asyncio.run(scenario())


def test_close_interrupts_running_transfer(tmp_path):
    async def scenario():
        release = asyncio.Event()
        events = []
        in_progress = asyncio.Event()

        async def on_event(event):
            events.append(event)
            if event.state == DownloadState.IN_PROGRESS:
                in_progress.set()

        async with TestServer(_make_app(release=release)) as server:
            requester = DownloadRequester(tmp_path, on_event=on_event)
            handle = await requester.start(
                str(server.make_url("/files/DataSet%209.zip")), "DataSet 9.zip"
            )
            await asyncio.wait_for(in_progress.wait(), timeout=5)
            assert requester.is_active(handle)
            await requester.close()
            release.set()
        return handle, events, requester

    handle, events, requester = asyncio.run(scenario())

    assert [e.state for e in events] == [
        DownloadState.IN_PROGRESS,
        DownloadState.INTERRUPTED,
    ]
    assert not requester.is_active(handle)
    assert list(tmp_path.iterdir()) == []
