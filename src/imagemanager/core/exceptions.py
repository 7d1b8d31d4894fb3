"""Domain exceptions for imagemanager.

All library errors inherit from ImageManagerError, allowing users to catch
any library exception with a single except clause. Each exception provides
a recovery_hint property with guidance on resolving the error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from pathlib import Path


class ImageManagerError(Exception):
    """Base class for all imagemanager exceptions.

    Catch this to handle any error from the library.
    """

    @property
    def recovery_hint(self) -> str | None:
        """Optional guidance on how to resolve this error."""
        return None


class FetchError(ImageManagerError):
    """Raised when an image cannot be fetched from its remote origin.

    Attributes:
        identifier: The image identifier that was requested.
        source: The resolved location (URL, S3 URI, path), if known.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        identifier: str,
        source: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.identifier = identifier
        self.source = source
        self.cause = cause
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        """Suggest checking connectivity to the origin."""
        return "Check network connectivity and the configured image source"


class FetchNotFoundError(FetchError):
    """Raised when the origin has no image for the identifier."""

    @property
    def recovery_hint(self) -> str:
        """Suggest verifying the identifier."""
        location = self.source or self.identifier
        return f"Verify that the image exists: {location}"


class FetchAccessError(FetchError):
    """Raised when the origin denies access (permissions, credentials)."""

    @property
    def recovery_hint(self) -> str:
        """Suggest checking credentials."""
        return "Check credentials and permissions for the image source"


class CacheError(ImageManagerError):
    """Base class for cache-related errors.

    Attributes:
        identifier: The image identifier of the cache entry.
        path: The cache file involved, if any.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        identifier: str,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.identifier = identifier
        self.path = path
        self.cause = cause
        super().__init__(message)


class CacheReadError(CacheError):
    """Raised when a cache entry is missing or corrupt."""

    @property
    def recovery_hint(self) -> str:
        """Suggest purging the cache."""
        return f"Run 'imagemanager clean' and fetch '{self.identifier}' again"


class CacheWriteError(CacheError):
    """Raised when a cache destination cannot be opened or written."""

    @property
    def recovery_hint(self) -> str:
        """Suggest checking the cache directory."""
        return "Check free disk space and permissions of the cache directory"


class StreamTransferError(ImageManagerError):
    """Raised to a stream reader when a transfer fails mid-flight.

    Attributes:
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        """Suggest retrying the download."""
        return "The download was interrupted; retry the operation"


class StagingError(ImageManagerError):
    """Raised when an image cannot be staged to a temporary location.

    The partially written path is left in place for inspection.

    Attributes:
        path: The temporary file or directory that was being populated.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        path: Path,
        cause: BaseException | None = None,
    ) -> None:
        self.path = path
        self.cause = cause
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        """Point at the leftover temporary path."""
        return f"Remove the partial output at {self.path} and retry"


class ExtractionFormatError(StagingError):
    """Raised when content declared as an archive is malformed."""

    @property
    def recovery_hint(self) -> str:
        """Suggest the archive is corrupt."""
        return (
            "The archive is malformed; purge the cache to force a fresh "
            f"download (partial output at {self.path})"
        )


class ConfigurationError(ImageManagerError):
    """Raised for configuration problems (missing or invalid settings)."""

    pass
