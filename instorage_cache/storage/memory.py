"""
In-memory storage adapter.

This module provides a dict-backed storage adapter for:
- Unit tests
- Integration tests
- Local development without a durable backend

Invariants:
    - All data is lost on process exit
    - Keys and values must be strings, as with any adapter

How to change safely:
    - Keep interface compatible with the StorageAdapter protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from .base import InjectedStorageError

logger = logging.getLogger(__name__)


class InMemoryStorage:
    """In-memory implementation of StorageAdapter.

    Attributes:
        writes: Number of successful set/remove/clear calls (testing aid)

    Example:
        >>> storage = InMemoryStorage()
        >>> cache = InStorageCache(storage)
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = {}
        self._failure: Optional[Exception] = None
        self.writes = 0
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(key, str) or not isinstance(value, str):
            raise TypeError("storage keys and values must be strings")
        self._raise_injected()
        self._data[key] = value
        self.writes += 1

    def remove(self, key: str) -> None:
        self._raise_injected()
        if self._data.pop(key, None) is not None:
            self.writes += 1

    def clear(self) -> None:
        self._raise_injected()
        self._data.clear()
        self.writes += 1
        logger.debug("InMemoryStorage cleared")

    def keys(self) -> List[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    # Testing helpers

    def to_object(self) -> Dict[str, Any]:
        """Decode every stored value as JSON (testing helper).

        Values that are not valid JSON are returned as raw strings.
        """
        result: Dict[str, Any] = {}
        for key, value in self._data.items():
            try:
                result[key] = json.loads(value)
            except json.JSONDecodeError:
                result[key] = value
        return result

    def get_item_count(self) -> int:
        """Number of stored keys (testing helper)."""
        return len(self._data)

    def inject_failure(self, exception: Optional[Exception] = None) -> None:
        """Make the next set/remove/clear call raise (testing helper)."""
        self._failure = exception or InjectedStorageError("injected storage failure")

    def _raise_injected(self) -> None:
        if self._failure is not None:
            failure, self._failure = self._failure, None
            raise failure
