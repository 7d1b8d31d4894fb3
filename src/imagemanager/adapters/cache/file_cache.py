"""File-based cache adapter implementing CacheStorePort."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import threading
import uuid
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from urllib.parse import quote

import aiofiles

from imagemanager.core.exceptions import CacheReadError, CacheWriteError
from imagemanager.core.models import DEFAULT_CONTENT_TYPE, CacheEntry
from imagemanager.core.streams import StreamHandle


logger = logging.getLogger(__name__)

# Chunk size for reading cached blobs (64KB)
_CHUNK_SIZE = 64 * 1024

_META_SUFFIX = ".meta.json"
_PART_SUFFIX = ".part"


class FileImageCache:
    """Local image cache with JSON metadata sidecars.

    Stores each image as a blob file with an accompanying .meta.json
    file recording when it was stored and its content type. Writes go
    to a hidden .part file and are published by renaming on commit, so
    readers never see a partially written entry.

    Attributes:
        cache_dir: Directory where cached images are stored.
        max_age: Entries older than this are stale. None means never stale.
    """

    def __init__(self, cache_dir: Path, max_age: timedelta | None = None) -> None:
        """Initialize the cache with a directory path.

        Args:
            cache_dir: Directory where cached images will be stored.
            max_age: Staleness policy applied by is_fresh().
        """
        self.cache_dir = cache_dir
        self.max_age = max_age
        self._publish_lock = threading.Lock()

    def _key(self, identifier: str) -> str:
        """Map an identifier to a safe file name."""
        if not identifier:
            raise ValueError("Image identifier cannot be empty")
        key = quote(identifier, safe="")
        # Hidden names are reserved for in-progress writes
        if key.startswith("."):
            key = "%2E" + key[1:]
        # Sidecar names are reserved for metadata
        if key.endswith(_META_SUFFIX):
            key = key[: -len(_META_SUFFIX)] + "%2E" + _META_SUFFIX[1:]
        return key

    def _file_path(self, identifier: str) -> Path:
        """Get the path for a cached blob."""
        return self.cache_dir / self._key(identifier)

    def _meta_path(self, identifier: str) -> Path:
        """Get the path for a metadata sidecar file."""
        return self.cache_dir / f"{self._key(identifier)}{_META_SUFFIX}"

    def _load_entry(self, identifier: str) -> CacheEntry | None:
        """Read the sidecar of an entry.

        Returns:
            The entry, or None if blob or sidecar is missing.

        Raises:
            CacheReadError: If the sidecar exists but is corrupt.
        """
        file_path = self._file_path(identifier)
        meta_path = self._meta_path(identifier)

        if not file_path.exists() or not meta_path.exists():
            return None

        try:
            with meta_path.open() as f:
                data = json.load(f)
            return CacheEntry(
                identifier=data.get("identifier", identifier),
                stored_at=datetime.fromisoformat(data["stored_at"]),
                blob_path=file_path,
                content_type=data.get("content_type") or DEFAULT_CONTENT_TYPE,
                size=int(data.get("size", 0)),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CacheReadError(
                f"Cache metadata corrupt for '{identifier}'",
                identifier=identifier,
                path=meta_path,
                cause=e,
            ) from e

    def get(self, identifier: str) -> CacheEntry | None:
        """Get the committed entry for an identifier, or None if not cached.

        Raises:
            CacheReadError: If metadata file exists but is corrupt/unreadable.
        """
        return self._load_entry(identifier)

    async def is_fresh(self, identifier: str) -> bool:
        """Check whether a committed, unexpired entry exists.

        Corrupt entries are reported as stale so they get re-fetched.
        """
        try:
            entry = self._load_entry(identifier)
        except CacheReadError as e:
            logger.warning("Treating corrupt cache entry as stale: %s", e)
            return False
        if entry is None:
            return False
        return entry.is_fresh(self.max_age)

    async def read_stream(self, identifier: str) -> StreamHandle:
        """Open a committed entry for reading.

        The blob is opened before returning, so a concurrent clean()
        does not affect the returned handle.

        Raises:
            CacheReadError: If the entry is absent or corrupt.
        """
        entry = self._load_entry(identifier)
        if entry is None:
            raise CacheReadError(
                f"Image '{identifier}' is not cached",
                identifier=identifier,
                path=self._file_path(identifier),
            )

        try:
            f = await aiofiles.open(entry.blob_path, "rb")
        except OSError as e:
            raise CacheReadError(
                f"Cannot open cached image '{identifier}'",
                identifier=identifier,
                path=entry.blob_path,
                cause=e,
            ) from e

        size = os.fstat(f.fileno()).st_size
        if size != entry.size:
            await f.close()
            raise CacheReadError(
                f"Cached image '{identifier}' is truncated "
                f"({size} of {entry.size} bytes)",
                identifier=identifier,
                path=entry.blob_path,
            )

        async def chunks() -> AsyncIterator[bytes]:
            try:
                while chunk := await f.read(_CHUNK_SIZE):
                    yield chunk
            finally:
                await f.close()

        return StreamHandle(
            chunks(),
            total_length=entry.size,
            content_type=entry.content_type,
            on_close=f.close,
        )

    async def write_stream(
        self, identifier: str, *, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> CacheWriter:
        """Open a destination that replaces the entry when committed.

        Raises:
            CacheWriteError: If the cache directory or part file cannot be created.
        """
        key = self._key(identifier)
        part_path = self.cache_dir / f".{key}.{uuid.uuid4().hex}{_PART_SUFFIX}"
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            f = await aiofiles.open(part_path, "wb")
        except OSError as e:
            raise CacheWriteError(
                f"Cannot open cache destination for '{identifier}'",
                identifier=identifier,
                path=part_path,
                cause=e,
            ) from e
        logger.debug("Caching '%s' via %s", identifier, part_path)
        return CacheWriter(self, identifier, content_type, part_path, f)

    async def clean(self) -> None:
        """Remove all committed entries.

        Hidden in-progress .part files are left alone; their writers may
        still commit afterwards.
        """
        if not self.cache_dir.exists():
            return
        removed = 0
        for path in list(self.cache_dir.iterdir()):
            if path.name.startswith("."):
                continue
            if path.is_file():
                path.unlink(missing_ok=True)
                if path.name.endswith(_META_SUFFIX):
                    removed += 1
        logger.debug("Removed %d cache entries from %s", removed, self.cache_dir)

    def _publish(self, identifier: str, part_path: Path, entry: dict[str, Any]) -> None:
        """Atomically move a finished part file and its sidecar into place."""
        file_path = self._file_path(identifier)
        meta_path = self._meta_path(identifier)
        meta_part = part_path.with_name(part_path.name + _META_SUFFIX)

        with meta_part.open("w") as f:
            json.dump(entry, f)
            f.flush()
            os.fsync(f.fileno())

        # Blob and sidecar of concurrent commits must not interleave
        with self._publish_lock:
            os.replace(part_path, file_path)
            os.replace(meta_part, meta_path)
        _fsync_dir(self.cache_dir)

    def size(self) -> int:
        """Calculate total cache size in bytes.

        Includes both blobs and metadata (.meta.json) files.

        Returns:
            Total size in bytes.
        """
        return self.statistics()["total_size"]

    def statistics(self) -> dict[str, int]:
        """Get cache statistics.

        Returns:
            Dictionary with 'total_size' (bytes) and 'entry_count' (committed images).
        """
        total_size = 0
        entry_count = 0

        if not self.cache_dir.exists():
            return {"total_size": 0, "entry_count": 0}

        for file_path in self.cache_dir.iterdir():
            if file_path.is_file():
                with contextlib.suppress(OSError):
                    total_size += file_path.stat().st_size
                    if file_path.name.endswith(_META_SUFFIX):
                        entry_count += 1

        return {"total_size": total_size, "entry_count": entry_count}


class CacheWriter:
    """WritableDestination that publishes a cache entry on commit."""

    def __init__(
        self,
        cache: FileImageCache,
        identifier: str,
        content_type: str,
        part_path: Path,
        file: Any,
    ) -> None:
        self._cache = cache
        self._identifier = identifier
        self._content_type = content_type
        self._part_path = part_path
        self._file = file
        self._size = 0
        self._closed = False

    @property
    def part_path(self) -> Path:
        """Temporary file receiving the data until commit."""
        return self._part_path

    async def write(self, chunk: bytes) -> None:
        """Append a chunk to the part file."""
        if self._closed:
            raise CacheWriteError(
                f"Cache write for '{self._identifier}' is already closed",
                identifier=self._identifier,
                path=self._part_path,
            )
        try:
            await self._file.write(chunk)
        except OSError as e:
            raise CacheWriteError(
                f"Failed writing cache for '{self._identifier}'",
                identifier=self._identifier,
                path=self._part_path,
                cause=e,
            ) from e
        self._size += len(chunk)

    async def commit(self) -> None:
        """Flush, fsync and atomically publish the entry."""
        if self._closed:
            raise CacheWriteError(
                f"Cache write for '{self._identifier}' is already closed",
                identifier=self._identifier,
                path=self._part_path,
            )
        self._closed = True
        entry = {
            "identifier": self._identifier,
            "stored_at": datetime.now(UTC).isoformat(),
            "content_type": self._content_type,
            "size": self._size,
        }
        try:
            await self._file.flush()
            await asyncio.to_thread(os.fsync, self._file.fileno())
            await self._file.close()
            await asyncio.to_thread(
                self._cache._publish, self._identifier, self._part_path, entry
            )
        except OSError as e:
            await self._discard()
            raise CacheWriteError(
                f"Failed committing cache for '{self._identifier}'",
                identifier=self._identifier,
                path=self._part_path,
                cause=e,
            ) from e
        logger.debug("Committed '%s' (%d bytes)", self._identifier, self._size)

    async def abort(self) -> None:
        """Discard the part file, leaving any previous entry untouched."""
        if self._closed:
            return
        self._closed = True
        await self._discard()
        logger.debug("Aborted cache write for '%s'", self._identifier)

    async def _discard(self) -> None:
        with contextlib.suppress(OSError):
            await self._file.close()
        self._part_path.unlink(missing_ok=True)
        self._part_path.with_name(self._part_path.name + _META_SUFFIX).unlink(
            missing_ok=True
        )


def _fsync_dir(path: Path) -> None:
    """Fsync a directory so renames inside it are durable.

    This is a best-effort operation; some platforms cannot open directories.
    """
    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError:
        logger.debug("Directory fsync not supported for %s", path)
        return
    try:
        os.fsync(fd)
    except OSError:
        logger.debug("Directory fsync failed for %s", path)
    finally:
        os.close(fd)
