"""
Storage adapter abstraction for the in-storage cache.

This module provides a pluggable storage interface supporting:
- SQLite (durable, single file)
- In-memory (for testing)

The cache mirrors every record write to the adapter, so the adapter holds
everything needed to rehydrate the cache in a later process.

Invariants:
    - Keys and values crossing the adapter boundary are strings
    - Adapters are called from a single thread, one call at a time

How to change safely:
    - New backends must implement the StorageAdapter protocol
    - Add the backend to create_storage() and StorageBackend
"""

from .base import (
    InjectedStorageError,
    StorageAdapter,
    StorageConnectionError,
    StorageError,
    create_storage,
    read_snapshot,
)
from .memory import InMemoryStorage
from .sqlite import SqliteStorage

__all__ = [
    # Protocol and errors
    "StorageAdapter",
    "StorageError",
    "StorageConnectionError",
    "InjectedStorageError",
    # Helpers
    "create_storage",
    "read_snapshot",
    # Implementations
    "InMemoryStorage",
    "SqliteStorage",
]
