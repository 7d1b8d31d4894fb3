"""Port interfaces for hexagonal architecture.

Ports define contracts that adapters must implement. The core domain
depends only on these protocols, never on concrete implementations.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from imagemanager.core.models import DEFAULT_CONTENT_TYPE


if TYPE_CHECKING:
    from pathlib import Path

    from imagemanager.core.models import ProgressState
    from imagemanager.core.streams import StreamHandle

ProgressCallback = Callable[["ProgressState"], None]


@runtime_checkable
class WritableDestination(Protocol):
    """An in-progress write that only becomes visible on commit."""

    async def write(self, chunk: bytes) -> None:
        """Accept the next chunk. Returns once the chunk has been written."""
        ...

    async def commit(self) -> None:
        """Make the written data durable and publish it atomically."""
        ...

    async def abort(self) -> None:
        """Discard the written data. Safe to call more than once."""
        ...


@runtime_checkable
class CacheStorePort(Protocol):
    """Local image cache keyed by image identifier."""

    async def is_fresh(self, identifier: str) -> bool:
        """Check whether a committed entry exists and is within max age.

        Never raises for missing or unreadable entries; returns False.
        """
        ...

    async def read_stream(self, identifier: str) -> StreamHandle:
        """Open a committed entry for reading.

        Raises:
            CacheReadError: If the entry is absent or corrupt.
        """
        ...

    async def write_stream(
        self, identifier: str, *, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> WritableDestination:
        """Open a destination that replaces the entry when committed.

        Raises:
            CacheWriteError: If the destination cannot be opened.
        """
        ...

    async def clean(self) -> None:
        """Remove all committed entries.

        Handles returned by read_stream() before the call keep working.
        """
        ...


@runtime_checkable
class FetchSourcePort(Protocol):
    """Remote origin of device images."""

    async def fetch(self, identifier: str) -> StreamHandle:
        """Open a stream of the image named by identifier.

        The returned handle emits a ProgressState after every chunk and
        raises from its iteration if the transfer fails mid-flight.

        Raises:
            FetchError: If the origin is unreachable or has no such image.
        """
        ...


@runtime_checkable
class ArchiveExtractorPort(Protocol):
    """Materializes an archive byte stream as files in a directory."""

    async def extract(self, stream: AsyncIterable[bytes], destination: Path) -> None:
        """Extract all members of the archive into destination.

        Raises:
            ExtractionFormatError: If the archive data is malformed.
        """
        ...


@runtime_checkable
class ProgressReporter(Protocol):
    """Reports download progress to the user.

    This protocol defines the contract for progress display adapters.
    The core domain uses this to report progress without depending
    on any specific UI library.
    """

    def start_task(self, name: str, total: int | None) -> ProgressCallback:
        """Start tracking a download task.

        Args:
            name: Human-readable name for the task (image identifier).
            total: Total bytes to download, or None if unknown.

        Returns:
            A ProgressCallback to subscribe to a stream's progress emitter.
        """
        ...

    def finish_task(self, name: str) -> None:
        """Mark a task as complete.

        Args:
            name: The task name passed to start_task().
        """
        ...


class NullProgressReporter:
    """A ProgressReporter that produces no output.

    Used as the default when no progress reporting is desired.
    """

    def start_task(self, name: str, total: int | None) -> ProgressCallback:  # noqa: ARG002
        """Return a no-op callback."""
        return lambda _state: None

    def finish_task(self, name: str) -> None:
        """Do nothing."""
        _ = name  # Unused but required by protocol
