"""Integration tests for ImageManager over HTTP with the file cache."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import pytest

from imagemanager import FileImageCache, HttpSource, ImageManager, RouterSource
from imagemanager.core.exceptions import StreamTransferError


if TYPE_CHECKING:
    from pathlib import Path


class ImageServer:
    """httpx mock handler serving images, counting requests."""

    def __init__(self, images: dict[str, bytes], *, fail_after: int | None = None) -> None:
        self.images = images
        self.fail_after = fail_after
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1]
        self.requests.append(name)
        if name not in self.images:
            return httpx.Response(404)
        data = self.images[name]

        async def body():
            for offset in range(0, len(data), 8):
                if self.fail_after is not None and offset >= self.fail_after:
                    raise httpx.ReadError("connection dropped")
                await asyncio.sleep(0)
                yield data[offset : offset + 8]

        return httpx.Response(
            200,
            content=body(),
            headers={
                "Content-Type": "application/octet-stream",
                "Content-Length": str(len(data)),
            },
        )


def _manager(server: ImageServer, tmp_path: Path) -> ImageManager:
    client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    http = HttpSource(client=client)
    source = RouterSource({"https": http}, "https://images.example.com/{identifier}")
    return ImageManager(source=source, cache=FileImageCache(tmp_path / "cache"))


@pytest.mark.e2e
class TestAcquireOverHttp:
    """Tests for acquire() against an HTTP origin."""

    @pytest.mark.asyncio
    async def test_download_reports_progress_and_caches(self, tmp_path: Path) -> None:
        """A download should report progress and be served from cache next."""
        server = ImageServer({"rpi": b"x" * 40})
        manager = _manager(server, tmp_path)

        handle = await manager.acquire("rpi")
        events = []
        handle.progress.subscribe(events.append)
        await handle.read()

        assert events
        assert events[-1].bytes_received == 40
        assert events[-1].percentage == 100.0

        cached = await manager.acquire("rpi")
        assert await cached.read() == b"x" * 40
        assert server.requests == ["rpi"]

    @pytest.mark.asyncio
    async def test_interrupted_download_leaves_no_entry(self, tmp_path: Path) -> None:
        """A dropped connection should fail the reader and cache nothing."""
        server = ImageServer({"rpi": b"y" * 40}, fail_after=16)
        manager = _manager(server, tmp_path)

        handle = await manager.acquire("rpi")
        with pytest.raises(StreamTransferError):
            await handle.read()

        assert not await manager.is_fresh("rpi")
        assert list((tmp_path / "cache").iterdir()) == []

    @pytest.mark.asyncio
    async def test_concurrent_acquires_both_succeed(self, tmp_path: Path) -> None:
        """Two concurrent misses each download and the cache ends up consistent."""
        server = ImageServer({"rpi": b"z" * 64})
        manager = _manager(server, tmp_path)

        async def acquire_and_read() -> bytes:
            return await (await manager.acquire("rpi")).read()

        first, second = await asyncio.gather(acquire_and_read(), acquire_and_read())

        assert first == second == b"z" * 64
        assert server.requests == ["rpi", "rpi"]
        assert await (await manager.cache.read_stream("rpi")).read() == b"z" * 64
