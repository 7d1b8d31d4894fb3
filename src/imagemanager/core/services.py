"""Core domain services for imagemanager."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Self

from imagemanager.core.exceptions import CacheWriteError
from imagemanager.core.ports import CacheStorePort, FetchSourcePort
from imagemanager.core.staging import StagingExtractor
from imagemanager.core.tee import StreamTee, TeeSink


if TYPE_CHECKING:
    from types import TracebackType

    from imagemanager.config import Settings
    from imagemanager.core.streams import StreamHandle


logger = logging.getLogger(__name__)


class ImageManager:
    """Orchestrates image acquisition with caching and staging."""

    def __init__(
        self,
        source: FetchSourcePort,
        cache: CacheStorePort,
        stager: StagingExtractor | None = None,
    ) -> None:
        self._source = source
        self._cache = cache
        self._stager = stager

    @classmethod
    def from_settings(cls, settings: Settings) -> ImageManager:
        """Create an ImageManager with the default adapters.

        Args:
            settings: Resolved configuration.

        Returns:
            ImageManager with a routed fetch source, a FileImageCache and a
            StagingExtractor writing under settings.staging_dir.

        Raises:
            ConfigurationError: If no image source is configured.
        """
        from imagemanager.adapters.cache import FileImageCache
        from imagemanager.adapters.sources import create_router

        return cls(
            source=create_router(settings),
            cache=FileImageCache(settings.cache_dir, max_age=settings.max_age),
            stager=StagingExtractor(base_dir=settings.staging_dir),
        )

    async def aclose(self) -> None:
        """Release connections held by the fetch source."""
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def cache(self) -> CacheStorePort:
        """The cache store backing this manager."""
        return self._cache

    async def is_fresh(self, identifier: str) -> bool:
        """Check whether acquire() would be served from cache."""
        return await self._cache.is_fresh(identifier)

    async def acquire(self, identifier: str) -> StreamHandle:
        """Get a stream of a device image, downloading it if stale.

        A fresh cache entry is returned as-is. Otherwise the image is fetched
        and the download is written to the cache while it is forwarded to the
        caller. The returned handle carries the origin's length, content type
        and progress events; the transfer happens as the caller reads it.

        Caching is best-effort: if the cache cannot be written the image is
        still forwarded, it just will not be fresh next time.

        Args:
            identifier: The image identifier (device type slug).

        Returns:
            A StreamHandle over the image bytes.

        Raises:
            CacheReadError: If a fresh entry cannot be read.
            FetchError: If the image cannot be fetched.
        """
        if await self._cache.is_fresh(identifier):
            logger.debug("Serving '%s' from cache", identifier)
            return await self._cache.read_stream(identifier)

        logger.debug("Cache stale for '%s', fetching", identifier)
        upstream = await self._source.fetch(identifier)

        sinks: list[TeeSink] = []
        try:
            writer = await self._cache.write_stream(
                identifier, content_type=upstream.content_type
            )
        except CacheWriteError as e:
            logger.warning("Not caching '%s': %s", identifier, e)
        else:
            sinks.append(TeeSink(writer))

        return StreamTee(upstream, sinks).output

    async def purge_cache(self) -> None:
        """Remove all cached images, forcing re-download on next acquire."""
        logger.debug("Purging image cache")
        await self._cache.clean()

    async def stage_to_temporary(self, handle: StreamHandle) -> Path:
        """Drain a stream into a new temporary file or directory.

        Archives (zip, tar) are extracted into a directory. Delete the
        returned path when done with it.

        Args:
            handle: The stream to stage, typically from acquire().

        Returns:
            The temporary path.

        Raises:
            StagingError: If writing or extracting fails.
        """
        if self._stager is None:
            self._stager = StagingExtractor()
        return await self._stager.stage(handle)
