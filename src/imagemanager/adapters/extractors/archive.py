"""Archive extractor adapters implementing ArchiveExtractorPort.

zipfile needs a seekable file and tarfile needs a blocking one, so both
extractors spool the incoming stream to an anonymous temporary file and
extract it in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import tarfile
import tempfile
import zipfile
from collections.abc import AsyncIterable
from pathlib import Path
from typing import IO

from imagemanager.core.exceptions import ExtractionFormatError


logger = logging.getLogger(__name__)


async def _spool(stream: AsyncIterable[bytes]) -> IO[bytes]:
    """Copy a stream into an anonymous temporary file, rewound to the start."""
    spool = tempfile.TemporaryFile()
    try:
        async for chunk in stream:
            await asyncio.to_thread(spool.write, chunk)
        await asyncio.to_thread(spool.flush)
        spool.seek(0)
    except BaseException:
        spool.close()
        raise
    return spool


class ZipExtractor:
    """Extracts zip archives."""

    def _extract(self, spool: IO[bytes], destination: Path) -> int:
        try:
            with zipfile.ZipFile(spool) as archive:
                members = archive.infolist()
                archive.extractall(destination)
        except zipfile.BadZipFile as e:
            raise ExtractionFormatError(
                f"Malformed zip archive: {e}", path=destination, cause=e
            ) from e
        return len(members)

    async def extract(self, stream: AsyncIterable[bytes], destination: Path) -> None:
        """Extract a zip stream into destination.

        Raises:
            ExtractionFormatError: If the data is not a valid zip archive.
        """
        spool = await _spool(stream)
        try:
            count = await asyncio.to_thread(self._extract, spool, destination)
        finally:
            spool.close()
        logger.debug("Extracted %d zip members into %s", count, destination)


class TarExtractor:
    """Extracts tar archives, optionally gzip/bz2/xz compressed.

    Members are filtered with tarfile's "data" filter, which rejects
    absolute paths, links outside the destination and device files.
    """

    def _extract(self, spool: IO[bytes], destination: Path) -> int:
        try:
            with tarfile.open(fileobj=spool, mode="r:*") as archive:
                members = archive.getmembers()
                archive.extractall(destination, filter="data")
        except (tarfile.TarError, EOFError) as e:
            raise ExtractionFormatError(
                f"Malformed tar archive: {e}", path=destination, cause=e
            ) from e
        return len(members)

    async def extract(self, stream: AsyncIterable[bytes], destination: Path) -> None:
        """Extract a tar stream into destination.

        Raises:
            ExtractionFormatError: If the data is not a valid tar archive or
                contains members that escape the destination.
        """
        spool = await _spool(stream)
        try:
            count = await asyncio.to_thread(self._extract, spool, destination)
        finally:
            spool.close()
        logger.debug("Extracted %d tar members into %s", count, destination)
