"""Staging of image streams into caller-owned temporary locations."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path

import aiofiles

from imagemanager.core.exceptions import StagingError
from imagemanager.core.models import is_archive, normalize_content_type
from imagemanager.core.ports import ArchiveExtractorPort
from imagemanager.core.streams import StreamHandle


logger = logging.getLogger(__name__)

_TEMP_PREFIX = "imagemanager-"


class StagingExtractor:
    """Drains a StreamHandle into a fresh temporary file or directory.

    Archives (by content type) are extracted into a new directory, anything
    else is copied verbatim into a new file. The returned path belongs to
    the caller; it is never deleted here, not even after a failure.
    """

    def __init__(
        self,
        extractors: Mapping[str, ArchiveExtractorPort] | None = None,
        base_dir: Path | None = None,
    ) -> None:
        """Initialize the stager.

        Args:
            extractors: Mapping of normalized archive content type to extractor.
                Defaults to the zip and tar extractors.
            base_dir: Directory for temporary paths. Defaults to the system
                temporary directory.
        """
        if extractors is None:
            from imagemanager.adapters.extractors import default_extractors

            extractors = default_extractors()
        self._extractors = dict(extractors)
        self._base_dir = base_dir

    def _extractor_for(self, content_type: str) -> ArchiveExtractorPort | None:
        if not is_archive(content_type):
            return None
        return self._extractors.get(normalize_content_type(content_type))

    async def stage(self, handle: StreamHandle) -> Path:
        """Drain handle into a new temporary location.

        Args:
            handle: The stream to stage. It is fully consumed.

        Returns:
            A directory holding the extracted archive, or a file holding
            the stream's bytes.

        Raises:
            StagingError: On any read, write or extraction failure.
            ExtractionFormatError: If the archive data is malformed.
        """
        if self._base_dir is not None:
            self._base_dir.mkdir(parents=True, exist_ok=True)

        extractor = self._extractor_for(handle.content_type)
        if extractor is not None:
            path = Path(tempfile.mkdtemp(prefix=_TEMP_PREFIX, dir=self._base_dir))
            logger.debug("Extracting %s stream into %s", handle.content_type, path)
            try:
                await extractor.extract(handle, path)
            except StagingError:
                raise
            except Exception as e:
                raise StagingError(
                    f"Failed to extract image into {path}: {e}", path=path, cause=e
                ) from e
            return path

        fd, name = tempfile.mkstemp(prefix=_TEMP_PREFIX, dir=self._base_dir)
        os.close(fd)
        path = Path(name)
        logger.debug("Copying %s stream into %s", handle.content_type, path)
        try:
            async with aiofiles.open(path, "wb") as f:
                async for chunk in handle:
                    await f.write(chunk)
                await f.flush()
        except Exception as e:
            raise StagingError(
                f"Failed to write image to {path}: {e}", path=path, cause=e
            ) from e
        return path
