"""Storage sub-package for offline-sync.

Provides the typed key/value store used to persist offline preferences
and cache timestamps.
"""
from __future__ import annotations

from offline_sync.storage.local_storage import (
    JsonFileBackend,
    LocalStorage,
    MemoryBackend,
    StorageBackend,
)

__all__ = [
    "JsonFileBackend",
    "LocalStorage",
    "MemoryBackend",
    "StorageBackend",
]
