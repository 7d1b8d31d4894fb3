"""Cache adapters."""

from imagemanager.adapters.cache.file_cache import CacheWriter, FileImageCache


__all__ = ["CacheWriter", "FileImageCache"]
