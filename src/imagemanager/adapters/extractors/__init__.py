"""Archive extractor adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

from imagemanager.adapters.extractors.archive import TarExtractor, ZipExtractor
from imagemanager.core.models import TAR_CONTENT_TYPES, ZIP_CONTENT_TYPES


if TYPE_CHECKING:
    from imagemanager.core.ports import ArchiveExtractorPort


def default_extractors() -> dict[str, ArchiveExtractorPort]:
    """Map every supported archive content type to its extractor."""
    zip_extractor = ZipExtractor()
    tar_extractor = TarExtractor()
    extractors: dict[str, ArchiveExtractorPort] = {}
    for content_type in ZIP_CONTENT_TYPES:
        extractors[content_type] = zip_extractor
    for content_type in TAR_CONTENT_TYPES:
        extractors[content_type] = tar_extractor
    return extractors


__all__ = ["TarExtractor", "ZipExtractor", "default_extractors"]
