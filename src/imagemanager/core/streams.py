"""Byte streams with attached transfer metadata.

A StreamHandle is the unit that flows between fetch sources, the cache,
the tee and the staging extractor: an async iterator of byte chunks plus
total length, content type and a progress event channel.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from typing import Self

from imagemanager.core.models import DEFAULT_CONTENT_TYPE, ProgressState


logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressState], None]


class ProgressEmitter:
    """Synchronous event source of ProgressState events.

    Listeners are called in subscription order on the emitting task.
    """

    def __init__(self) -> None:
        self._listeners: list[ProgressListener] = []

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, state: ProgressState) -> None:
        """Deliver a progress event to every listener."""
        for listener in list(self._listeners):
            listener(state)

    @property
    def listener_count(self) -> int:
        """Number of currently subscribed listeners."""
        return len(self._listeners)


class StreamHandle:
    """A single-consumer byte stream with attached metadata.

    Attributes:
        total_length: Total bytes the stream will produce, or None if unknown.
        content_type: MIME type of the content.
        progress: Emitter of progress events for this stream.

    Example:
        >>> async def consume(handle: StreamHandle) -> bytes:
        ...     return b"".join([chunk async for chunk in handle])
    """

    def __init__(
        self,
        chunks: AsyncIterable[bytes],
        *,
        total_length: int | None = None,
        content_type: str | None = None,
        progress: ProgressEmitter | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        """Wrap a chunk iterator.

        Args:
            chunks: Producer of the byte chunks.
            total_length: Expected byte count, or None if unknown.
            content_type: MIME type; defaults to application/octet-stream.
            progress: Emitter to attach; a fresh one is created if omitted.
            on_close: Coroutine function releasing the producer's resources.
                Awaited by aclose() even if iteration never started, so it
                must tolerate being called after the producer cleaned up.
        """
        self._chunks = chunks
        self._iterator: AsyncIterator[bytes] | None = None
        self._on_close = on_close
        self.total_length = total_length
        self.content_type = content_type or DEFAULT_CONTENT_TYPE
        self.progress = progress if progress is not None else ProgressEmitter()

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        *,
        content_type: str | None = None,
        chunk_size: int = 64 * 1024,
    ) -> Self:
        """Build a handle over an in-memory payload (no progress events)."""

        async def chunks() -> AsyncIterator[bytes]:
            for offset in range(0, len(data), chunk_size):
                yield data[offset : offset + chunk_size]

        return cls(chunks(), total_length=len(data), content_type=content_type)

    @property
    def consumed(self) -> bool:
        """True once iteration has started."""
        return self._iterator is not None

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._iterator is not None:
            raise RuntimeError("StreamHandle can only be consumed once")
        self._iterator = aiter(self._chunks)
        return self._iterator

    async def read(self) -> bytes:
        """Drain the whole stream into memory."""
        return b"".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        """Release the underlying producer without draining it.

        An async generator that never started skips its finally block when
        closed, so resources opened before the first read are released
        through the on_close callback.
        """
        if self._iterator is None:
            self._iterator = aiter(self._chunks)
        close = getattr(self._iterator, "aclose", None)
        try:
            if close is not None:
                await close()
        finally:
            on_close, self._on_close = self._on_close, None
            if on_close is not None:
                await on_close()


async def track_progress(
    chunks: AsyncIterable[bytes],
    emitter: ProgressEmitter,
    total_length: int | None,
) -> AsyncIterator[bytes]:
    """Re-yield chunks, emitting a ProgressState after each one.

    Used by fetch sources to give their handles a progress channel.
    """
    received = 0
    async for chunk in chunks:
        received += len(chunk)
        emitter.emit(ProgressState.from_counts(received, total_length))
        yield chunk
    logger.debug("Stream finished after %d bytes", received)
