"""S3 fetch source using boto3."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from imagemanager.core.exceptions import (
    FetchAccessError,
    FetchError,
    FetchNotFoundError,
)
from imagemanager.core.streams import ProgressEmitter, StreamHandle, track_progress


if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client


# Chunk size for streaming downloads (64KB)
_CHUNK_SIZE = 64 * 1024


class S3Source:
    """Fetch source for images stored in S3.

    Implements FetchSourcePort for s3:// URIs. boto3 calls are blocking,
    so they run in worker threads to keep the event loop responsive.
    """

    def __init__(self, client: S3Client | None = None) -> None:
        """Initialize S3 source.

        Args:
            client: Optional boto3 S3 client. If not provided, creates a default client.
        """
        self._client = client or boto3.client("s3")

    async def fetch(self, source: str, *, identifier: str | None = None) -> StreamHandle:
        """Open an S3 object as an image stream with progress reporting.

        Args:
            source: S3 URI (s3://bucket/key).
            identifier: Image identifier for error reporting; defaults to source.

        Returns:
            StreamHandle with ContentLength and ContentType from S3.

        Raises:
            FetchNotFoundError: If object does not exist.
            FetchAccessError: If access is denied.
            FetchError: For other S3 errors.
        """
        identifier = identifier or source
        bucket, key = self._parse_s3_uri(source)

        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=bucket, Key=key
            )
        except ClientError as e:
            raise self._translate_client_error(e, source, identifier) from e
        except BotoCoreError as e:
            raise FetchError(
                f"S3 request failed: {e}",
                identifier=identifier,
                source=source,
                cause=e,
            ) from e

        total_size = response.get("ContentLength")
        body = response["Body"]

        async def chunks() -> AsyncIterator[bytes]:
            try:
                while chunk := await asyncio.to_thread(body.read, _CHUNK_SIZE):
                    yield chunk
            finally:
                body.close()

        async def release() -> None:
            body.close()

        progress = ProgressEmitter()
        return StreamHandle(
            track_progress(chunks(), progress, total_size),
            total_length=total_size,
            content_type=response.get("ContentType"),
            progress=progress,
            on_close=release,
        )

    def _parse_s3_uri(self, uri: str) -> tuple[str, str]:
        """Parse an S3 URI into bucket and key.

        Args:
            uri: S3 URI in format s3://bucket/key.

        Returns:
            Tuple of (bucket, key).

        Raises:
            ValueError: If URI is not a valid S3 URI.
        """
        if not uri.startswith("s3://"):
            raise ValueError(f"Invalid S3 URI: {uri}")

        # Remove s3:// prefix
        path = uri[5:]

        # Split on first /
        parts = path.split("/", 1)
        if len(parts) != 2 or not parts[1]:
            raise ValueError(f"Invalid S3 URI (missing key): {uri}")

        bucket, key = parts
        return bucket, key

    def _translate_client_error(
        self, error: ClientError, source: str, identifier: str
    ) -> FetchError:
        """Translate botocore ClientError to domain exception.

        Args:
            error: The botocore ClientError.
            source: The source URI for context.
            identifier: The image identifier being fetched.

        Returns:
            Appropriate FetchError subclass.
        """
        response: dict[str, Any] = error.response  # type: ignore[assignment]
        code = response.get("Error", {}).get("Code", "")

        # Not found errors
        if code in ("404", "NoSuchKey", "NoSuchBucket"):
            return FetchNotFoundError(
                f"Object not found: {source}",
                identifier=identifier,
                source=source,
                cause=error,
            )

        # Access denied errors
        if code in ("403", "AccessDenied"):
            return FetchAccessError(
                f"Access denied: {source}",
                identifier=identifier,
                source=source,
                cause=error,
            )

        # Generic S3 error
        return FetchError(
            f"S3 error ({code}): {error}",
            identifier=identifier,
            source=source,
            cause=error,
        )
