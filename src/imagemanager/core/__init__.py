"""Core domain module for imagemanager.

This module contains the domain models, port definitions and the
streaming cache/fetch orchestration. Adapters are injected through
the ports, so the core can be tested with in-memory fakes.
"""

from imagemanager.core.models import CacheEntry, ProgressState
from imagemanager.core.ports import CacheStorePort, FetchSourcePort, ProgressCallback
from imagemanager.core.streams import StreamHandle


__all__ = [
    "CacheEntry",
    "CacheStorePort",
    "FetchSourcePort",
    "ProgressCallback",
    "ProgressState",
    "StreamHandle",
]
