"""Fetch source adapters."""

from imagemanager.adapters.sources.filesystem import FilesystemSource
from imagemanager.adapters.sources.http import HttpSource
from imagemanager.adapters.sources.router import RouterSource, create_router
from imagemanager.adapters.sources.s3 import S3Source


__all__ = ["FilesystemSource", "HttpSource", "RouterSource", "S3Source", "create_router"]
