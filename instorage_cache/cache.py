"""
InStorageCache - public entry point of the cache.

Composes the identity resolver, record store, dependency tracker and codec:

    plan ──▶ InStorageCache ──▶ Normalizer ──▶ RecordStore ──▶ codec ──▶ StorageAdapter
                   │                                 │
                   └──── InvalidationEvent ◀──── DependencyTracker

Invariants:
    - A storage adapter is mandatory; construction fails without one
    - Every read is dependency-tracked under its plan's logical id
    - Every write invalidates exactly the reads that consulted a changed key
    - restore() triggers no invalidation

How to change safely:
    - Listeners run synchronously inside write(); keep them cheap
    - Do not catch ConfigurationError anywhere in this module
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    FrozenSet,
    List,
    Mapping,
    Optional,
    Set,
)

from .codec import JsonRecordCodec, RecordCodec
from .dependencies import DependencyTracker
from .errors import ConfigurationError, CorruptRecordError
from .identity import IdentityResolver, TypenameIdIdentity, as_identity_strategy
from .normalize import Normalizer
from .plan import QueryPlan
from .records import ROOT_KEY, FieldValue
from .storage.base import StorageAdapter, create_storage
from .store import ReadResult, RecordStore, Snapshot

if TYPE_CHECKING:
    from .config import CacheSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvalidationEvent:
    """A previously served read became stale.

    Attributes:
        read_id: Logical id of the stale read
        keys: Entity keys written that the read depended on
    """

    read_id: str
    keys: FrozenSet[str]


Listener = Callable[[InvalidationEvent], None]


class InStorageCache:
    """Normalized cache persisted to a storage adapter.

    Attributes:
        storage: Storage adapter records are mirrored to
        codec: Record codec
        resolver: Identity resolver for nested objects
        tracker: Dependency tracker
        store: Normalized record store

    Example:
        >>> cache = InStorageCache(InMemoryStorage())
        >>> plan = QueryPlan.from_selection({"field": None})
        >>> cache.write(plan, {"field": "simple value"})
        frozenset()
        >>> cache.read(plan).data
        {'field': 'simple value'}
    """

    def __init__(
        self,
        storage: Optional[StorageAdapter] = None,
        identity: Any = None,
        *,
        codec: Optional[RecordCodec] = None,
        root_key: str = ROOT_KEY,
        add_typename: bool = True,
    ) -> None:
        """Initialize the cache.

        Args:
            storage: Storage adapter (required)
            identity: IdentityStrategy, ``(obj) -> key | None`` callable, or
                None for the default type+id rule
            codec: Record codec (JSON by default)
            root_key: Key of the root record
            add_typename: Store and return ``__typename`` of nested objects

        Raises:
            ConfigurationError: If no usable storage adapter is given
        """
        if storage is None:
            raise ConfigurationError("must provide a storage", option="storage")
        if not isinstance(storage, StorageAdapter):
            raise ConfigurationError(
                f"storage must implement get/set/remove/clear/keys, got {type(storage).__name__}",
                option="storage",
            )

        self.storage = storage
        self.codec = codec if codec is not None else JsonRecordCodec()
        self.root_key = root_key
        self.add_typename = add_typename
        self.resolver = IdentityResolver(as_identity_strategy(identity), root_key)
        self.tracker = DependencyTracker()
        self.store = RecordStore(storage, self.codec, self.tracker)
        self._normalizer = Normalizer(self.resolver, add_typename)
        self._stale: Set[str] = set()
        self._listeners: List[Listener] = []
        self.restore_errors: List[CorruptRecordError] = []

    @classmethod
    def from_settings(cls, settings: Optional["CacheSettings"] = None) -> InStorageCache:
        """Build a cache and its storage adapter from settings.

        Args:
            settings: Cache settings (loaded from env if not provided)
        """
        from .config import CacheSettings

        settings = settings or CacheSettings()
        return cls(
            create_storage(settings),
            TypenameIdIdentity(settings.id_fields),
            root_key=settings.root_key,
            add_typename=settings.add_typename,
        )

    # Reads and writes

    def read(self, plan: QueryPlan) -> ReadResult:
        """Serve ``plan`` from the store.

        Opens (or supersedes) the dependency set of the plan's logical id and
        records every key the read consults. An incomplete result is a miss,
        not an error.
        """
        read_id = plan.logical_id
        self.tracker.begin_read(read_id)
        self._stale.discard(read_id)
        result = self.store.read(
            plan.root_key,
            plan.selections,
            read_id=read_id,
            add_typename=self.add_typename,
        )
        if not result.complete:
            logger.debug(
                "Cache miss",
                extra={"read_id": read_id, "missing": len(result.missing)},
            )
        return result

    def write(self, plan: QueryPlan, data: Mapping[str, Any]) -> FrozenSet[str]:
        """Normalize ``data`` selected by ``plan`` and merge it into the store.

        Returns:
            Read ids invalidated by this write
        """
        records = self._normalizer.normalize(plan.root_key, plan.selections, data)
        touched: Dict[str, Set[str]] = {}
        try:
            for key, fields in records.items():
                for read_id in self.store.write(key, fields):
                    touched.setdefault(read_id, set()).add(key)
        except Exception:
            # Records already applied before the failure stay applied.
            self._invalidate(touched)
            raise
        logger.debug(
            "Write applied",
            extra={"records": len(records), "invalidated": len(touched)},
        )
        return self._invalidate(touched)

    def write_record(self, key: str, fields: Mapping[str, FieldValue]) -> FrozenSet[str]:
        """Merge already-normalized ``fields`` into the record at ``key``."""
        return self._invalidate({read_id: {key} for read_id in self.store.write(key, fields)})

    def evict(self, key: str) -> FrozenSet[str]:
        """Remove one record from memory and storage.

        Returns:
            Read ids invalidated by the eviction
        """
        return self._invalidate({read_id: {key} for read_id in self.store.delete(key)})

    def reset(self) -> FrozenSet[str]:
        """Clear memory and storage; every active read becomes stale."""
        touched = {
            read_id: set(self.tracker.dependencies(read_id) or ())
            for read_id in self.tracker.active_reads
        }
        self.store.clear()
        logger.info("Cache reset", extra={"invalidated": len(touched)})
        return self._invalidate(touched)

    # Snapshots

    def restore(self, snapshot: Snapshot) -> InStorageCache:
        """Load ``snapshot`` as the authoritative state.

        Corrupt entries are skipped, logged and kept in ``restore_errors``.
        No reads are invalidated.

        Returns:
            self, so construction and restore can be chained
        """
        self.restore_errors = self.store.restore(snapshot)
        return self

    def extract(self) -> Dict[str, str]:
        """Snapshot of the current in-memory state."""
        return self.store.extract()

    # Read lifecycle

    def release(self, read_id: str) -> bool:
        """Forget the dependency set of ``read_id``."""
        self._stale.discard(read_id)
        return self.tracker.release(read_id)

    def is_stale(self, read_id: str) -> bool:
        """Whether ``read_id`` was invalidated since it was last read."""
        return read_id in self._stale

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for invalidation events.

        Returns:
            Function that unregisters the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _invalidate(self, touched: Mapping[str, Set[str]]) -> FrozenSet[str]:
        # Mark everything stale before any listener can raise.
        self._stale.update(touched)
        for read_id, keys in touched.items():
            event = InvalidationEvent(read_id, frozenset(keys))
            for listener in list(self._listeners):
                listener(event)
        return frozenset(touched)
