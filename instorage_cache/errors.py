"""
Error types for the in-storage cache.

This module defines the exception types raised by the cache core:
- CacheError: Base exception
- ConfigurationError: Cache cannot be constructed as configured
- CorruptRecordError: A stored value cannot be decoded into a record
- InvalidKeyError: An identity strategy produced a key outside its namespace

Cache misses and dangling references are not exceptions; they are reported
on the read result (see store.MissingField).

Invariants:
    - All errors inherit from CacheError
    - Errors include context for debugging
    - ConfigurationError is never swallowed by the cache
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CacheError(Exception):
    """Base exception for all cache errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "CACHE_ERROR"
        self.details = details or {}


class ConfigurationError(CacheError):
    """The cache was constructed with an unusable configuration.

    Raised when:
    - No storage adapter is provided
    - The storage adapter does not implement the adapter protocol
    - The identity argument is neither a strategy nor a callable
    """

    def __init__(self, message: str, option: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"option": option},
        )
        self.option = option


class CorruptRecordError(CacheError):
    """A stored value could not be decoded into a normalized record.

    Attributes:
        key: Entity key whose stored value is corrupt
        reason: What was wrong with the value
    """

    def __init__(self, key: Optional[str], reason: str) -> None:
        super().__init__(
            f"Corrupt record '{key}': {reason}",
            code="CORRUPT_RECORD",
            details={"key": key, "reason": reason},
        )
        self.key = key
        self.reason = reason


class InvalidKeyError(CacheError):
    """An identity strategy returned a key that would collide with reserved keys.

    Stable keys may not start with the generated-key marker and may not equal
    the root key.
    """

    def __init__(self, key: Any, reason: str) -> None:
        super().__init__(
            f"Invalid entity key {key!r}: {reason}",
            code="INVALID_KEY",
            details={"key": key, "reason": reason},
        )
        self.key = key
        self.reason = reason
