"""
Base protocol and errors for storage adapters.

A storage adapter wraps an external synchronous key-value store. Keys and
values are strings; records are encoded by the codec before they cross this
boundary.

Invariants:
    - get() returns None for absent keys, never raises for them
    - set() returns only after the value is visible to get()
    - keys() enumerates every stored key (needed to report a snapshot)

How to change safely:
    - Protocol changes require updating all implementations
    - Adapters backed by a remote store must serialize concurrent calls
      themselves; the cache issues calls from a single thread
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import CacheSettings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage adapter operations."""
    pass


class StorageConnectionError(StorageError):
    """Connection to the storage backend failed."""
    pass


class InjectedStorageError(StorageError):
    """Failure injected by a test helper."""
    pass


@runtime_checkable
class StorageAdapter(Protocol):
    """Protocol for key-value storage backends.

    Example:
        >>> storage = InMemoryStorage()
        >>> storage.set("ROOT_QUERY", '{"field":"simple value"}')
        >>> storage.get("ROOT_QUERY")
        '{"field":"simple value"}'
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key``, or None."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value.

        Raises:
            StorageError: If the backend rejects the write
        """
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove ``key``; removing an absent key is not an error."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove every key."""
        ...

    @abstractmethod
    def keys(self) -> Iterable[str]:
        """Enumerate all stored keys."""
        ...


def read_snapshot(storage: StorageAdapter) -> Dict[str, str]:
    """Report the storage's own snapshot: every key with its stored value."""
    snapshot: Dict[str, str] = {}
    for key in list(storage.keys()):
        value = storage.get(key)
        if value is not None:
            snapshot[key] = value
    return snapshot


def create_storage(settings: "CacheSettings") -> StorageAdapter:
    """Factory function to create a storage adapter from settings.

    Args:
        settings: Cache settings

    Returns:
        Appropriate StorageAdapter implementation

    Raises:
        ValueError: If the backend is not supported
    """
    from ..config import StorageBackend
    from .memory import InMemoryStorage
    from .sqlite import SqliteStorage

    if settings.storage_backend == StorageBackend.MEMORY:
        return InMemoryStorage()
    elif settings.storage_backend == StorageBackend.SQLITE:
        return SqliteStorage(
            settings.sqlite_path,
            table=settings.sqlite_table,
            busy_timeout_ms=settings.sqlite_busy_timeout_ms,
            wal_mode=settings.sqlite_wal_mode,
        )
    else:
        raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")
