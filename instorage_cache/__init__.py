"""
instorage-cache - Normalized object cache persisted to a key-value store.

This package sits between a query-execution client and a durable key-value
storage backend:
- Nested query results are decomposed into flat records keyed by identity
- Every record write is mirrored to a pluggable storage adapter
- Query results are rehydrated from records, skipping the network when the
  cache can answer
- Reads are dependency-tracked per record, so a write invalidates only the
  reads that consulted the written record

Architecture:
    ┌─────────────┐     ┌─────────────────┐     ┌──────────────┐
    │ Query layer │────▶│  InStorageCache │────▶│  Normalizer  │
    │ (QueryPlan) │     │     (facade)    │     │  + Identity  │
    └─────────────┘     └───────┬─────────┘     └──────┬───────┘
                                │                      │
                                ▼                      ▼
                      ┌───────────────────┐   ┌─────────────────┐
                      │ DependencyTracker │◀──│   RecordStore   │
                      └───────────────────┘   └────────┬────────┘
                                                       │ codec
                                                       ▼
                                              ┌─────────────────┐
                                              │ StorageAdapter  │
                                              │ (memory/SQLite) │
                                              └─────────────────┘

Invariants:
    - A storage adapter is mandatory
    - Records never embed other records; nested objects become references
    - Stable keys ("Type:id") and generated keys ("$parent.path") never collide
    - Writes apply to storage and memory in the order issued

Version: see _version.py.
"""

from ._version import __version__
from .cache import InStorageCache, InvalidationEvent
from .client import CacheFirstClient, FetchPolicy, QueryResult
from .codec import JsonRecordCodec, RecordCodec
from .dependencies import DependencyTracker
from .errors import (
    CacheError,
    ConfigurationError,
    CorruptRecordError,
    InvalidKeyError,
)
from .identity import (
    CallableIdentity,
    IdentityResolver,
    IdentityStrategy,
    TypenameIdIdentity,
)
from .plan import Field, QueryPlan, selection
from .records import ROOT_KEY, JsonBlob, Reference
from .storage import InMemoryStorage, SqliteStorage, StorageAdapter, StorageError
from .store import MissingField, MissReason, ReadResult, RecordStore

__all__ = [
    # Version
    "__version__",
    # Facade
    "InStorageCache",
    "InvalidationEvent",
    "CacheFirstClient",
    "FetchPolicy",
    "QueryResult",
    # Plans
    "Field",
    "QueryPlan",
    "selection",
    # Records
    "ROOT_KEY",
    "Reference",
    "JsonBlob",
    # Components
    "RecordStore",
    "ReadResult",
    "MissingField",
    "MissReason",
    "DependencyTracker",
    "IdentityResolver",
    "IdentityStrategy",
    "TypenameIdIdentity",
    "CallableIdentity",
    "RecordCodec",
    "JsonRecordCodec",
    # Storage
    "StorageAdapter",
    "StorageError",
    "InMemoryStorage",
    "SqliteStorage",
    # Errors
    "CacheError",
    "ConfigurationError",
    "CorruptRecordError",
    "InvalidKeyError",
]
