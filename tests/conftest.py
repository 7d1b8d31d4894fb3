"""Pytest configuration and shared fixtures.

This module registers custom markers for CI job separation and provides
in-memory fakes of the fetch source and cache ports for the core tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from imagemanager.core.exceptions import (
    CacheReadError,
    CacheWriteError,
    FetchNotFoundError,
)
from imagemanager.core.models import DEFAULT_CONTENT_TYPE, ProgressState
from imagemanager.core.streams import ProgressEmitter, StreamHandle, track_progress


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "core: Core models, ports, streams and services")
    config.addinivalue_line("markers", "tee: Stream tee fan-out")
    config.addinivalue_line("markers", "sources: Fetch source adapters (http, s3, filesystem)")
    config.addinivalue_line("markers", "cache: File cache adapter")
    config.addinivalue_line("markers", "staging: Staging and archive extraction")
    config.addinivalue_line("markers", "progress: Rich progress integration")
    config.addinivalue_line("markers", "cli: CLI tests")
    config.addinivalue_line("markers", "e2e: End-to-end tests")


class MemorySource:
    """FetchSourcePort fake serving images from a dict.

    Attributes:
        fetch_calls: Identifiers passed to fetch(), in call order.
        emitted: Every ProgressState emitted by any handle, in order.
    """

    def __init__(
        self,
        images: dict[str, bytes],
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
        chunk_size: int = 4,
        fail_after_chunks: int | None = None,
        advertise_length: bool = True,
    ) -> None:
        self.images = images
        self.content_type = content_type
        self.chunk_size = chunk_size
        self.fail_after_chunks = fail_after_chunks
        self.advertise_length = advertise_length
        self.fetch_calls: list[str] = []
        self.emitted: list[ProgressState] = []

    async def fetch(self, identifier: str) -> StreamHandle:
        self.fetch_calls.append(identifier)
        if identifier not in self.images:
            raise FetchNotFoundError(
                f"No image named {identifier}", identifier=identifier
            )
        data = self.images[identifier]
        total = len(data) if self.advertise_length else None

        async def chunks() -> AsyncIterator[bytes]:
            for index, offset in enumerate(range(0, len(data), self.chunk_size)):
                if self.fail_after_chunks is not None and index >= self.fail_after_chunks:
                    raise ConnectionResetError("connection reset by peer")
                await asyncio.sleep(0)
                yield data[offset : offset + self.chunk_size]

        progress = ProgressEmitter()
        progress.subscribe(self.emitted.append)
        return StreamHandle(
            track_progress(chunks(), progress, total),
            total_length=total,
            content_type=self.content_type,
            progress=progress,
        )


class MemoryWriter:
    """WritableDestination fake that commits into a MemoryCache."""

    def __init__(
        self, cache: MemoryCache, identifier: str, content_type: str
    ) -> None:
        self.cache = cache
        self.identifier = identifier
        self.content_type = content_type
        self.chunks: list[bytes] = []
        self.committed = False
        self.aborted = False

    async def write(self, chunk: bytes) -> None:
        if self.cache.fail_writes:
            raise CacheWriteError("disk full", identifier=self.identifier)
        await asyncio.sleep(0)
        self.chunks.append(chunk)
        self.cache.log.append(("write", chunk))

    async def commit(self) -> None:
        if self.cache.fail_commits:
            raise CacheWriteError("fsync failed", identifier=self.identifier)
        self.cache.entries[self.identifier] = (b"".join(self.chunks), self.content_type)
        self.cache.stale.discard(self.identifier)
        self.committed = True
        self.cache.log.append(("commit", self.identifier))

    async def abort(self) -> None:
        self.aborted = True
        self.cache.log.append(("abort", self.identifier))


class MemoryCache:
    """CacheStorePort fake keeping committed entries in a dict.

    Attributes:
        entries: identifier -> (data, content_type) of committed entries.
        stale: identifiers whose entries are considered expired.
        writers: every writer handed out by write_stream().
        log: ordered record of writes, commits and aborts.
    """

    def __init__(self) -> None:
        self.entries: dict[str, tuple[bytes, str]] = {}
        self.stale: set[str] = set()
        self.writers: list[MemoryWriter] = []
        self.log: list[tuple[str, object]] = []
        self.fail_open = False
        self.fail_writes = False
        self.fail_commits = False

    def put(self, identifier: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> None:
        self.entries[identifier] = (data, content_type)

    async def is_fresh(self, identifier: str) -> bool:
        return identifier in self.entries and identifier not in self.stale

    async def read_stream(self, identifier: str) -> StreamHandle:
        if identifier not in self.entries:
            raise CacheReadError(f"{identifier} not cached", identifier=identifier)
        data, content_type = self.entries[identifier]
        return StreamHandle.from_bytes(data, content_type=content_type, chunk_size=4)

    async def write_stream(
        self, identifier: str, *, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> MemoryWriter:
        if self.fail_open:
            raise CacheWriteError("read-only filesystem", identifier=identifier)
        writer = MemoryWriter(self, identifier, content_type)
        self.writers.append(writer)
        return writer

    async def clean(self) -> None:
        self.entries.clear()


@pytest.fixture
def memory_cache() -> MemoryCache:
    """Empty in-memory cache."""
    return MemoryCache()


@pytest.fixture
def make_source() -> type[MemorySource]:
    """Factory for in-memory fetch sources."""
    return MemorySource


@pytest.fixture
def make_cache() -> type[MemoryCache]:
    """Factory for additional in-memory caches."""
    return MemoryCache
