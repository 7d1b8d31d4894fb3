"""RouterSource composite adapter for URI scheme-based routing."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import quote

from imagemanager.core.exceptions import ConfigurationError


if TYPE_CHECKING:
    from imagemanager.config import Settings
    from imagemanager.core.streams import StreamHandle


class LocationSource(Protocol):
    """A backend that fetches an image from a resolved location."""

    async def fetch(self, source: str, *, identifier: str | None = None) -> StreamHandle:
        """Open the image at source."""
        ...


def parse_uri_scheme(uri: str) -> str | None:
    """Extract the URI scheme from a source string.

    Args:
        uri: Source URI or file path.

    Returns:
        The scheme (e.g., 's3', 'https') or None for local paths.
    """
    if "://" in uri:
        scheme = uri.split("://", 1)[0]
        # Avoid confusing Windows drive letters (C:) with schemes
        if len(scheme) > 1:
            return scheme.lower()
    return None


def strip_file_scheme(uri: str) -> str:
    """Strip file:// prefix from URI, returning plain path.

    Args:
        uri: URI that may have file:// prefix.

    Returns:
        The path without file:// prefix.
    """
    if uri.startswith("file://"):
        return uri[7:]  # len("file://") == 7
    return uri


def resolve_location(template: str, identifier: str) -> str:
    """Expand a source template for an identifier.

    The identifier is percent-encoded so it cannot escape its path segment.

    Example:
        >>> resolve_location("s3://images/{identifier}.zip", "raspberry-pi")
        's3://images/raspberry-pi.zip'
    """
    if "{identifier}" not in template:
        raise ConfigurationError(
            f"Image source template must contain '{{identifier}}': {template}"
        )
    return template.replace("{identifier}", quote(identifier, safe=""))


class RouterSource:
    """Fetch source that resolves identifiers and routes by URI scheme.

    Implements FetchSourcePort by expanding a source template and
    delegating to scheme-specific backends.
    """

    def __init__(
        self, backends: dict[str | None, LocationSource], template: str
    ) -> None:
        """Initialize with scheme-to-backend mapping.

        Args:
            backends: Mapping of scheme (e.g., 's3', 'https') to backend.
                      Use None as key for default (local paths without scheme).
            template: Location template containing '{identifier}'.
        """
        self._backends = backends
        self._template = template

    def _get_backend_and_path(self, uri: str) -> tuple[LocationSource, str]:
        """Get the appropriate backend and normalized path for a URI."""
        scheme = parse_uri_scheme(uri)
        if scheme in self._backends:
            # Strip file:// prefix for filesystem backend
            path = strip_file_scheme(uri) if scheme == "file" else uri
            return self._backends[scheme], path
        if scheme is None and None in self._backends:
            return self._backends[None], uri
        scheme_display = f"'{scheme}'" if scheme else "local path"
        raise ConfigurationError(
            f"No fetch backend registered for scheme {scheme_display}"
        )

    def locate(self, identifier: str) -> str:
        """Return the location an identifier resolves to."""
        return resolve_location(self._template, identifier)

    async def fetch(self, identifier: str) -> StreamHandle:
        """Fetch an image by delegating to the appropriate backend."""
        backend, path = self._get_backend_and_path(self.locate(identifier))
        return await backend.fetch(path, identifier=identifier)

    async def aclose(self) -> None:
        """Close every backend holding connections, once each."""
        closed: list[LocationSource] = []
        for backend in self._backends.values():
            if any(backend is seen for seen in closed):
                continue
            closed.append(backend)
            close = getattr(backend, "aclose", None)
            if close is not None:
                await close()


def create_router(
    settings: Settings,
    s3_client: Any | None = None,
    http_client: Any | None = None,
) -> RouterSource:
    """Create a RouterSource with default backends.

    Args:
        settings: Settings providing the source template and HTTP timeout.
        s3_client: Optional boto3 S3 client. If not provided, creates default
            on first use of the s3 backend.
        http_client: Optional httpx.AsyncClient.

    Returns:
        RouterSource configured with HttpSource, S3Source and FilesystemSource.

    Raises:
        ConfigurationError: If settings has no source template.
    """
    from imagemanager.adapters.sources import FilesystemSource, HttpSource, S3Source

    if not settings.source_template:
        raise ConfigurationError(
            "No image source configured; set IMAGEMANAGER_SOURCE"
        )

    fs = FilesystemSource()
    http = HttpSource(client=http_client, timeout=settings.http_timeout_s)
    backends: dict[str | None, LocationSource] = {
        "http": http,
        "https": http,
        "file": fs,
        None: fs,
    }
    if parse_uri_scheme(settings.source_template) == "s3":
        backends["s3"] = S3Source(client=s3_client)
    return RouterSource(backends, settings.source_template)
