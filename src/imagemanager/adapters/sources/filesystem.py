"""Filesystem fetch source for locally mirrored images."""

from __future__ import annotations

import mimetypes
import os
from collections.abc import AsyncIterator
from pathlib import Path

import aiofiles

from imagemanager.core.exceptions import (
    FetchAccessError,
    FetchError,
    FetchNotFoundError,
)
from imagemanager.core.models import DEFAULT_CONTENT_TYPE
from imagemanager.core.streams import ProgressEmitter, StreamHandle, track_progress


# Chunk size for reading files (64KB)
_CHUNK_SIZE = 64 * 1024


def guess_content_type(path: str | Path) -> str:
    """Guess a MIME type from a file name, defaulting to octet-stream."""
    content_type, encoding = mimetypes.guess_type(str(path))
    if encoding == "gzip" and content_type == "application/x-tar":
        return "application/x-gtar"
    return content_type or DEFAULT_CONTENT_TYPE


class FilesystemSource:
    """Fetch source reading images from the local filesystem.

    Implements FetchSourcePort for local paths and file:// URIs.
    Useful for local development, mirrors and testing without a network.
    """

    async def fetch(self, source: str, *, identifier: str | None = None) -> StreamHandle:
        """Open a local file as an image stream with progress reporting.

        Args:
            source: Path to the image file (absolute or relative).
            identifier: Image identifier for error reporting; defaults to source.

        Returns:
            StreamHandle with the file size and a content type guessed from
            the file name.

        Raises:
            FetchNotFoundError: If the file does not exist.
            FetchAccessError: If the file cannot be read.
        """
        identifier = identifier or source
        path = Path(source)
        try:
            f = await aiofiles.open(path, "rb")
        except (FileNotFoundError, IsADirectoryError) as e:
            raise FetchNotFoundError(
                f"File not found: {source}",
                identifier=identifier,
                source=source,
                cause=e,
            ) from e
        except PermissionError as e:
            raise FetchAccessError(
                f"Permission denied: {source}",
                identifier=identifier,
                source=source,
                cause=e,
            ) from e
        except OSError as e:
            raise FetchError(
                f"Cannot open {source}: {e}",
                identifier=identifier,
                source=source,
                cause=e,
            ) from e

        total_size = os.fstat(f.fileno()).st_size

        async def chunks() -> AsyncIterator[bytes]:
            try:
                while chunk := await f.read(_CHUNK_SIZE):
                    yield chunk
            finally:
                await f.close()

        progress = ProgressEmitter()
        return StreamHandle(
            track_progress(chunks(), progress, total_size),
            total_length=total_size,
            content_type=guess_content_type(path),
            progress=progress,
            on_close=f.close,
        )
