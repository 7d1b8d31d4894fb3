"""Lock-step fan-out of one byte stream into several destinations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from imagemanager.core.exceptions import StreamTransferError
from imagemanager.core.models import SinkResult, WriteOutcome
from imagemanager.core.ports import WritableDestination
from imagemanager.core.streams import ProgressEmitter, StreamHandle


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TeeSink:
    """A destination attached to a tee.

    Attributes:
        destination: Where every chunk of the source is written.
        required: If True, a failure of this sink fails the output stream.
            Best-effort sinks are dropped from the transfer instead.
        result: Outcome of the sink, updated while the tee runs.
    """

    destination: WritableDestination
    required: bool = False
    result: SinkResult = field(default_factory=SinkResult)


class StreamTee:
    """Duplicates a source stream into sinks and a consumer-facing handle.

    The transfer is driven by the consumer: each chunk is read from the
    source only when the output handle is asked for its next chunk, written
    to every healthy sink, and handed to the consumer once all sinks have
    accepted it. A slow sink therefore slows the upstream read instead of
    growing a buffer, and a consumer that stops reading pauses the transfer.

    The output signals end-of-stream only after every healthy sink has
    acknowledged its commit.

    Example:
        >>> tee = StreamTee(upstream, [TeeSink(cache_writer)])
        >>> data = await tee.output.read()
        >>> tee.results[0].outcome
        <WriteOutcome.COMMITTED: 'committed'>
    """

    def __init__(self, source: StreamHandle, sinks: Sequence[TeeSink]) -> None:
        self._source = source
        self._sinks = list(sinks)
        self._finished = False
        self._released = False
        progress = ProgressEmitter()
        self._unsubscribe = source.progress.subscribe(progress.emit)
        self.output = StreamHandle(
            self._run(),
            total_length=source.total_length,
            content_type=source.content_type,
            progress=progress,
            on_close=self._release,
        )

    @property
    def results(self) -> list[SinkResult]:
        """One SinkResult per sink, in the order the sinks were given."""
        return [sink.result for sink in self._sinks]

    @property
    def finished(self) -> bool:
        """True once the source was drained and all sinks settled."""
        return self._finished

    def _healthy(self) -> list[TeeSink]:
        return [sink for sink in self._sinks if sink.result.healthy]

    async def _degrade(self, sink: TeeSink, error: BaseException) -> None:
        """Drop a failed sink from the transfer, or fail if it is required."""
        sink.result.outcome = WriteOutcome.DEGRADED
        sink.result.error = error
        try:
            await sink.destination.abort()
        except Exception:
            logger.exception("Abort of failed tee sink raised")
        if sink.required:
            raise StreamTransferError(
                f"Required sink failed: {error}", cause=error
            ) from error
        logger.warning("Tee sink degraded, continuing without it: %s", error)

    async def _offer(self, chunk: bytes) -> None:
        """Write a chunk to every healthy sink concurrently."""
        sinks = self._healthy()
        outcomes = await asyncio.gather(
            *(sink.destination.write(chunk) for sink in sinks),
            return_exceptions=True,
        )
        for sink, outcome in zip(sinks, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                await self._degrade(sink, outcome)
            else:
                sink.result.bytes_written += len(chunk)

    async def _commit(self) -> None:
        for sink in self._healthy():
            try:
                await sink.destination.commit()
            except Exception as e:
                await self._degrade(sink, e)
            else:
                sink.result.outcome = WriteOutcome.COMMITTED

    async def _abort_pending(self) -> None:
        for sink in self._sinks:
            if sink.result.outcome is WriteOutcome.PENDING:
                sink.result.outcome = WriteOutcome.DEGRADED
                try:
                    await sink.destination.abort()
                except Exception:
                    logger.exception("Abort of tee sink raised")

    async def _run(self) -> AsyncIterator[bytes]:
        try:
            source = aiter(self._source)
            while True:
                try:
                    chunk = await anext(source)
                except StopAsyncIteration:
                    break
                except StreamTransferError:
                    raise
                except Exception as e:
                    raise StreamTransferError(
                        f"Source stream failed: {e}", cause=e
                    ) from e
                await self._offer(chunk)
                yield chunk
            await self._commit()
            self._finished = True
        finally:
            await self._release()

    async def _release(self) -> None:
        """Detach from the source, aborting sinks if the transfer is unfinished.

        Runs when _run exits and when the output is closed, including
        before its first read.
        """
        if self._released:
            return
        self._released = True
        self._unsubscribe()
        if self._finished:
            return
        await self._abort_pending()
        try:
            await self._source.aclose()
        except Exception:
            logger.exception("Closing the tee source raised")


def tee(source: StreamHandle, sinks: Sequence[WritableDestination]) -> StreamHandle:
    """Duplicate source into best-effort sinks and return the consumer handle."""
    return StreamTee(source, [TeeSink(destination) for destination in sinks]).output
