"""HTTP(S) fetch source using httpx."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx

from imagemanager.core.exceptions import (
    FetchAccessError,
    FetchError,
    FetchNotFoundError,
)
from imagemanager.core.streams import ProgressEmitter, StreamHandle, track_progress


logger = logging.getLogger(__name__)

USER_AGENT = "imagemanager/0.1"

# Request timeout in seconds
REQUEST_TIMEOUT = 30.0

# Chunk size for streaming downloads (64KB)
_CHUNK_SIZE = 64 * 1024


class HttpSource:
    """Fetch source for images served over HTTP(S).

    The response body is streamed; nothing is buffered beyond one chunk.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        """Initialize HTTP source.

        Args:
            client: Optional httpx client. If not provided, one is created
                with the given timeout and redirects enabled.
            timeout: Request timeout in seconds for the default client.
        """
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def fetch(self, source: str, *, identifier: str | None = None) -> StreamHandle:
        """Open a URL as an image stream with progress reporting.

        Args:
            source: http:// or https:// URL.
            identifier: Image identifier for error reporting; defaults to source.

        Returns:
            StreamHandle with Content-Length (None if not advertised) and
            Content-Type from the response headers.

        Raises:
            FetchNotFoundError: On HTTP 404/410.
            FetchAccessError: On HTTP 401/403.
            FetchError: On other HTTP errors or transport failures.
        """
        identifier = identifier or source
        request = self._client.build_request("GET", source)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise FetchError(
                f"Request to {source} failed: {e}",
                identifier=identifier,
                source=source,
                cause=e,
            ) from e

        if response.is_error:
            await response.aclose()
            raise self._translate_status(response, source, identifier)

        total_size = _content_length(response)
        logger.debug(
            "GET %s -> %d (%s bytes)", source, response.status_code, total_size
        )

        async def chunks() -> AsyncIterator[bytes]:
            try:
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    yield chunk
            finally:
                await response.aclose()

        progress = ProgressEmitter()
        return StreamHandle(
            track_progress(chunks(), progress, total_size),
            total_length=total_size,
            content_type=response.headers.get("Content-Type"),
            progress=progress,
            on_close=response.aclose,
        )

    def _translate_status(
        self, response: httpx.Response, source: str, identifier: str
    ) -> FetchError:
        """Translate an HTTP error status to a domain exception."""
        status = response.status_code
        error = httpx.HTTPStatusError(
            f"HTTP {status}", request=response.request, response=response
        )
        if status in (404, 410):
            return FetchNotFoundError(
                f"Image not found: {source}",
                identifier=identifier,
                source=source,
                cause=error,
            )
        if status in (401, 403):
            return FetchAccessError(
                f"Access denied: {source}",
                identifier=identifier,
                source=source,
                cause=error,
            )
        return FetchError(
            f"HTTP error ({status}): {source}",
            identifier=identifier,
            source=source,
            cause=error,
        )


def _content_length(response: httpx.Response) -> int | None:
    """Return the advertised body length, or None when unknown."""
    if "Content-Encoding" in response.headers:
        # aiter_bytes() yields decoded bytes; the header counts encoded ones
        return None
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None
