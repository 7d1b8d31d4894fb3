"""imagemanager - Cached download and staging of device images.

This library fetches device images from a remote source as async byte
streams, writes each download to a local cache while forwarding it to the
caller, serves fresh cached copies without re-downloading, and stages
images (extracting zip/tar archives) into temporary locations.

Example:
    >>> from imagemanager import ImageManager, create_settings_from_env
    >>> manager = ImageManager.from_settings(create_settings_from_env())
    >>> handle = await manager.acquire("raspberry-pi")  # Downloads if stale
    >>> path = await manager.stage_to_temporary(handle)
"""

from imagemanager.adapters.cache import FileImageCache
from imagemanager.adapters.extractors import TarExtractor, ZipExtractor
from imagemanager.adapters.sources import (
    FilesystemSource,
    HttpSource,
    RouterSource,
    S3Source,
    create_router,
)
from imagemanager.config import Settings, create_settings_from_env
from imagemanager.core.exceptions import (
    CacheError,
    CacheReadError,
    CacheWriteError,
    ConfigurationError,
    ExtractionFormatError,
    FetchAccessError,
    FetchError,
    FetchNotFoundError,
    ImageManagerError,
    StagingError,
    StreamTransferError,
)
from imagemanager.core.models import CacheEntry, ProgressState, SinkResult, WriteOutcome
from imagemanager.core.ports import (
    ArchiveExtractorPort,
    CacheStorePort,
    FetchSourcePort,
    NullProgressReporter,
    ProgressCallback,
    ProgressReporter,
    WritableDestination,
)
from imagemanager.core.services import ImageManager
from imagemanager.core.staging import StagingExtractor
from imagemanager.core.streams import ProgressEmitter, StreamHandle
from imagemanager.core.tee import StreamTee, TeeSink, tee
from imagemanager.progress import RichProgressReporter


__version__ = "0.1.0"

__all__ = [
    "ArchiveExtractorPort",
    "CacheEntry",
    "CacheError",
    "CacheReadError",
    "CacheStorePort",
    "CacheWriteError",
    "ConfigurationError",
    "ExtractionFormatError",
    "FetchAccessError",
    "FetchError",
    "FetchNotFoundError",
    "FetchSourcePort",
    "FileImageCache",
    "FilesystemSource",
    "HttpSource",
    "ImageManager",
    "ImageManagerError",
    "NullProgressReporter",
    "ProgressCallback",
    "ProgressEmitter",
    "ProgressReporter",
    "ProgressState",
    "RichProgressReporter",
    "RouterSource",
    "S3Source",
    "Settings",
    "SinkResult",
    "StagingError",
    "StagingExtractor",
    "StreamHandle",
    "StreamTee",
    "StreamTransferError",
    "TarExtractor",
    "TeeSink",
    "WritableDestination",
    "WriteOutcome",
    "ZipExtractor",
    "__version__",
    "create_router",
    "create_settings_from_env",
    "tee",
]
