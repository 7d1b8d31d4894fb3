"""Core domain models for imagemanager.

These models are pure Python dataclasses with no I/O dependencies.
They represent the cache entries, progress snapshots and tee outcomes
shared between the core services and the adapters.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path


ImageIdentifier = str
"""Opaque caller-supplied key naming a device image (e.g. a device type slug)."""

DEFAULT_CONTENT_TYPE = "application/octet-stream"

ZIP_CONTENT_TYPES = frozenset({"application/zip", "application/x-zip-compressed"})
TAR_CONTENT_TYPES = frozenset({"application/x-tar", "application/x-gtar"})


def normalize_content_type(content_type: str | None) -> str:
    """Strip MIME parameters and lower-case a content type.

    Example:
        >>> normalize_content_type("Application/ZIP; charset=binary")
        'application/zip'
    """
    if not content_type:
        return DEFAULT_CONTENT_TYPE
    return content_type.split(";", 1)[0].strip().lower() or DEFAULT_CONTENT_TYPE


def is_archive(content_type: str | None) -> bool:
    """Check whether a content type denotes a supported archive format."""
    normalized = normalize_content_type(content_type)
    return normalized in ZIP_CONTENT_TYPES or normalized in TAR_CONTENT_TYPES


@dataclass(frozen=True, slots=True)
class ProgressState:
    """A snapshot of transfer progress, emitted after every chunk.

    Attributes:
        percentage: Completion in percent, or None when the total length
            is unknown (indeterminate progress).
        bytes_received: Bytes transferred so far.
        total_bytes: Total bytes advertised by the origin, if known.
    """

    percentage: float | None
    bytes_received: int
    total_bytes: int | None = None

    @classmethod
    def from_counts(cls, bytes_received: int, total_bytes: int | None) -> ProgressState:
        """Build a state, computing the percentage only for a known total."""
        if total_bytes is None or total_bytes < 0:
            return cls(percentage=None, bytes_received=bytes_received)
        if total_bytes == 0:
            return cls(percentage=100.0, bytes_received=bytes_received, total_bytes=0)
        percentage = min(100.0, bytes_received * 100.0 / total_bytes)
        return cls(
            percentage=percentage,
            bytes_received=bytes_received,
            total_bytes=total_bytes,
        )

    @property
    def is_indeterminate(self) -> bool:
        """True when no percentage can be computed."""
        return self.percentage is None


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A committed image in the local cache.

    This is persisted as a JSON sidecar file next to the cached blob.

    Attributes:
        identifier: The image identifier this entry belongs to.
        stored_at: When the entry was committed (timezone-aware, UTC).
        blob_path: Location of the cached blob.
        content_type: MIME type reported by the origin when fetched.
        size: Blob size in bytes.
    """

    identifier: ImageIdentifier
    stored_at: datetime
    blob_path: Path
    content_type: str = DEFAULT_CONTENT_TYPE
    size: int = 0

    def age(self, now: datetime | None = None) -> timedelta:
        """Return how long ago the entry was stored."""
        if now is None:
            now = datetime.now(UTC)
        stored_at = self.stored_at
        if stored_at.tzinfo is None:
            stored_at = stored_at.replace(tzinfo=UTC)
        return now - stored_at

    def is_fresh(self, max_age: timedelta | None, now: datetime | None = None) -> bool:
        """Check the entry against a max-age policy.

        Args:
            max_age: Maximum allowed age. None means entries never go stale.
            now: Evaluation time, defaults to the current time.

        Returns:
            True if the entry may be served without re-fetching.
        """
        if max_age is None:
            return True
        return self.age(now) <= max_age


class WriteOutcome(Enum):
    """Outcome of writing a stream into one tee sink."""

    PENDING = "pending"
    COMMITTED = "committed"
    DEGRADED = "degraded"


@dataclass(slots=True)
class SinkResult:
    """Mutable record of a sink's progress through a tee.

    Attributes:
        outcome: COMMITTED once the sink acknowledged a durable commit,
            DEGRADED if it failed and was dropped from the transfer.
        bytes_written: Bytes accepted by the sink.
        error: The failure that degraded the sink, if any.
    """

    outcome: WriteOutcome = WriteOutcome.PENDING
    bytes_written: int = 0
    error: BaseException | None = None

    @property
    def healthy(self) -> bool:
        """True while the sink still participates in the transfer."""
        return self.outcome is not WriteOutcome.DEGRADED
