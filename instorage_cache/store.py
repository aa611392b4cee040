"""
Normalized record store.

The store is the central map from entity key to normalized record. Every
mutation is mirrored to the storage adapter through the codec, and every
record consulted by a read is reported to the dependency tracker.

Records persisted by an earlier process (or seeded straight into storage)
are hydrated lazily: a key missing from memory is looked up in the storage
adapter on first access.

Invariants:
    - Every in-memory record equals the decoding of its stored value
    - Writes hit storage first, then memory; a failed storage call leaves
      memory unchanged
    - A read's dependency set is exactly the keys it consulted, including
      keys it looked for and did not find
    - Corrupt or missing records are misses for the read that met them,
      never errors for unrelated reads

How to change safely:
    - Keep storage and memory updates in the same method
    - New miss reasons must be added to MissReason and handled by callers
      that decide whether to refetch
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from .codec import JsonRecordCodec, RecordCodec
from .dependencies import DependencyTracker
from .errors import CorruptRecordError
from .plan import Field
from .records import TYPENAME_FIELD, FieldValue, JsonBlob, Record, Reference
from .storage.base import StorageAdapter

logger = logging.getLogger(__name__)

PathElement = Union[str, int]
Snapshot = Mapping[str, Union[str, Mapping[str, Any]]]

_MISSING = object()

# Snapshot entries given as decoded JSON objects use the JSON object form.
_OBJECT_CODEC = JsonRecordCodec()


class MissReason(str, Enum):
    """Why part of a read could not be served from the store."""

    MISSING_RECORD = "missing_record"
    MISSING_FIELD = "missing_field"
    DANGLING_REFERENCE = "dangling_reference"
    CORRUPT_RECORD = "corrupt_record"


@dataclass(frozen=True)
class MissingField:
    """One miss encountered by a read.

    Attributes:
        path: Result path of the missing data
        key: Entity key of the record involved
        reason: Kind of miss
        error: Decode error, for corrupt records
    """

    path: Tuple[PathElement, ...]
    key: str
    reason: MissReason
    error: Optional[CorruptRecordError] = None


@dataclass(frozen=True)
class ReadResult:
    """Outcome of a read.

    A read that misses is not an error: ``data`` holds whatever could be
    served and ``missing`` says what could not, so the caller can decide to
    fetch over the network.
    """

    data: Optional[Dict[str, Any]]
    missing: Tuple[MissingField, ...] = ()
    dependencies: FrozenSet[str] = frozenset()
    read_id: Optional[str] = None

    @property
    def complete(self) -> bool:
        return not self.missing

    @property
    def errors(self) -> Tuple[CorruptRecordError, ...]:
        return tuple(m.error for m in self.missing if m.error is not None)


class _ReadContext:
    """Per-read state: consulted keys and misses."""

    def __init__(self, read_id: Optional[str], tracker: Optional[DependencyTracker]) -> None:
        self.read_id = read_id
        self.tracker = tracker
        self.touched: Set[str] = set()
        self.missing: List[MissingField] = []

    def touch(self, key: str) -> None:
        self.touched.add(key)
        if self.read_id is not None and self.tracker is not None:
            self.tracker.record_access(self.read_id, key)

    def miss(
        self,
        path: Tuple[PathElement, ...],
        key: str,
        reason: MissReason,
        error: Optional[CorruptRecordError] = None,
    ) -> None:
        self.missing.append(MissingField(path, key, reason, error))


class RecordStore:
    """Entity key -> record map mirrored to a storage adapter.

    Attributes:
        storage: Storage adapter records are persisted to
        codec: Codec converting records to stored strings
        tracker: Dependency tracker notified of reads and writes

    Example:
        >>> store = RecordStore(InMemoryStorage())
        >>> store.write("ROOT_QUERY", {"field": "simple value"})
        set()
        >>> store.read("ROOT_QUERY", (Field("field"),)).data
        {'field': 'simple value'}
    """

    def __init__(
        self,
        storage: StorageAdapter,
        codec: Optional[RecordCodec] = None,
        tracker: Optional[DependencyTracker] = None,
    ) -> None:
        self.storage = storage
        self.codec = codec if codec is not None else JsonRecordCodec()
        self.tracker = tracker if tracker is not None else DependencyTracker()
        self._records: Dict[str, Record] = {}
        self._encoded: Dict[str, str] = {}

    # Record access

    def get(self, key: str) -> Optional[Record]:
        """Return a copy of the record at ``key``, or None if absent.

        Raises:
            CorruptRecordError: If the stored value cannot be decoded
        """
        record = self._load(key)
        return dict(record) if record is not None else None

    def _load(self, key: str) -> Optional[Record]:
        record = self._records.get(key)
        if record is not None:
            return record

        raw = self.storage.get(key)
        if raw is None:
            return None
        record = self.codec.decode(raw, key)
        self._records[key] = record
        self._encoded[key] = raw
        logger.debug("Hydrated record from storage", extra={"key": key})
        return record

    def write(self, key: str, fields: Mapping[str, FieldValue]) -> Set[str]:
        """Merge ``fields`` into the record at ``key`` and persist it.

        Fields present in ``fields`` overwrite fields of the same name; other
        fields of the existing record are kept.

        Returns:
            Read ids whose dependency set contains ``key``; empty when the
            merge changed nothing
        """
        try:
            existing = self._load(key)
        except CorruptRecordError as e:
            logger.warning(
                "Overwriting corrupt record",
                extra={"key": key, "reason": e.reason},
            )
            existing = None

        merged: Record = dict(existing) if existing is not None else {}
        merged.update(fields)
        # Compare encoded forms: 1, 1.0 and True are equal as Python values.
        encoded = self.codec.encode(merged)
        if existing is not None and encoded == self._encoded.get(key):
            return set()

        self.storage.set(key, encoded)
        self._records[key] = merged
        self._encoded[key] = encoded
        logger.debug("Record written", extra={"key": key, "fields": sorted(fields)})
        return self.tracker.on_write(key)

    def delete(self, key: str) -> Set[str]:
        """Remove the record at ``key`` from memory and storage.

        Returns:
            Read ids that depended on ``key``; empty if nothing was stored
        """
        existed = key in self._records or self.storage.get(key) is not None
        if not existed:
            return set()
        self.storage.remove(key)
        self._records.pop(key, None)
        self._encoded.pop(key, None)
        logger.debug("Record deleted", extra={"key": key})
        return self.tracker.on_write(key)

    def clear(self) -> None:
        """Remove every record from memory and storage."""
        self.storage.clear()
        self._records.clear()
        self._encoded.clear()

    # Reads

    def read(
        self,
        root_key: str,
        selections: Sequence[Field],
        read_id: Optional[str] = None,
        add_typename: bool = True,
    ) -> ReadResult:
        """Read ``selections`` starting at the record ``root_key``.

        Every key consulted, including transitively referenced keys and keys
        that turned out to be absent, is recorded under ``read_id``.
        """
        ctx = _ReadContext(read_id, self.tracker)
        data = self._read_object(root_key, selections, (), ctx, add_typename, nested=False)
        return ReadResult(
            data=None if data is _MISSING else data,
            missing=tuple(ctx.missing),
            dependencies=frozenset(ctx.touched),
            read_id=read_id,
        )

    def _load_for_read(
        self,
        key: str,
        path: Tuple[PathElement, ...],
        ctx: _ReadContext,
        nested: bool,
    ) -> Optional[Record]:
        ctx.touch(key)
        try:
            record = self._load(key)
        except CorruptRecordError as e:
            logger.warning("Corrupt record treated as miss", extra={"key": key, "reason": e.reason})
            ctx.miss(path, key, MissReason.CORRUPT_RECORD, e)
            return None
        if record is None:
            if nested:
                logger.debug("Dangling reference", extra={"key": key, "path": list(path)})
                ctx.miss(path, key, MissReason.DANGLING_REFERENCE)
            else:
                ctx.miss(path, key, MissReason.MISSING_RECORD)
        return record

    def _read_object(
        self,
        key: str,
        selections: Sequence[Field],
        path: Tuple[PathElement, ...],
        ctx: _ReadContext,
        add_typename: bool,
        nested: bool,
    ) -> Any:
        record = self._load_for_read(key, path, ctx, nested)
        if record is None:
            return _MISSING

        result: Dict[str, Any] = {}
        for f in selections:
            field_path = path + (f.response_key,)
            if f.storage_key not in record:
                ctx.miss(field_path, key, MissReason.MISSING_FIELD)
                continue
            value = self._read_value(record[f.storage_key], f, field_path, ctx, add_typename)
            if value is not _MISSING:
                result[f.response_key] = value

        if add_typename and nested and TYPENAME_FIELD in record and TYPENAME_FIELD not in result:
            result[TYPENAME_FIELD] = record[TYPENAME_FIELD]
        return result

    def _read_value(
        self,
        value: FieldValue,
        f: Field,
        path: Tuple[PathElement, ...],
        ctx: _ReadContext,
        add_typename: bool,
    ) -> Any:
        if isinstance(value, Reference):
            if f.selections is None:
                return self._resolve_whole(value, path, ctx, frozenset())
            return self._read_object(value.key, f.selections, path, ctx, add_typename, nested=True)
        if isinstance(value, list):
            items = []
            for index, item in enumerate(value):
                resolved = self._read_value(item, f, path + (index,), ctx, add_typename)
                items.append(None if resolved is _MISSING else resolved)
            return items
        if isinstance(value, JsonBlob):
            return copy.deepcopy(value.value)
        return value

    def _resolve_whole(
        self,
        ref: Reference,
        path: Tuple[PathElement, ...],
        ctx: _ReadContext,
        ancestors: FrozenSet[str],
    ) -> Any:
        """Materialize every field of the referenced record.

        A key already on the current resolution path is a cycle; it is
        returned as its Reference instead of being expanded again.
        """
        if ref.key in ancestors:
            return ref
        record = self._load_for_read(ref.key, path, ctx, nested=True)
        if record is None:
            return _MISSING

        inner = ancestors | {ref.key}
        result: Dict[str, Any] = {}
        for name, value in record.items():
            resolved = self._materialize(value, path + (name,), ctx, inner)
            if resolved is not _MISSING:
                result[name] = resolved
        return result

    def _materialize(
        self,
        value: FieldValue,
        path: Tuple[PathElement, ...],
        ctx: _ReadContext,
        ancestors: FrozenSet[str],
    ) -> Any:
        if isinstance(value, Reference):
            return self._resolve_whole(value, path, ctx, ancestors)
        if isinstance(value, list):
            items = []
            for index, item in enumerate(value):
                resolved = self._materialize(item, path + (index,), ctx, ancestors)
                items.append(None if resolved is _MISSING else resolved)
            return items
        if isinstance(value, JsonBlob):
            return copy.deepcopy(value.value)
        return value

    # Snapshots

    def restore(self, snapshot: Snapshot) -> List[CorruptRecordError]:
        """Replace the in-memory state with ``snapshot``.

        Bypasses the write-merge path and triggers no invalidation. Values may
        be stored strings or already-decoded JSON objects. Valid entries are
        also written to storage; corrupt entries are skipped. Records held in
        memory that the snapshot does not carry are removed from storage.

        Returns:
            Errors for the skipped entries
        """
        decoded: Dict[str, Tuple[Record, str]] = {}
        errors: List[CorruptRecordError] = []
        for key, raw in snapshot.items():
            try:
                if isinstance(raw, str):
                    record = self.codec.decode(raw, key)
                    encoded = raw
                else:
                    record, encoded = self._from_object(raw, key)
            except CorruptRecordError as e:
                logger.warning("Skipping corrupt snapshot entry", extra={"key": key, "reason": e.reason})
                errors.append(e)
                continue
            decoded[key] = (record, encoded)

        # Keys this store holds that the snapshot drops must not be rehydrated.
        dropped = [key for key in self._records if key not in decoded]
        for key in dropped:
            self.storage.remove(key)

        self._records.clear()
        self._encoded.clear()
        for key, (record, encoded) in decoded.items():
            self.storage.set(key, encoded)
            self._records[key] = record
            self._encoded[key] = encoded

        logger.info(
            "Snapshot restored",
            extra={"records": len(decoded), "skipped": len(errors), "dropped": len(dropped)},
        )
        return errors

    def _from_object(self, obj: Any, key: str) -> Tuple[Record, str]:
        if not isinstance(obj, Mapping):
            raise CorruptRecordError(key, f"expected object, got {type(obj).__name__}")
        record = _OBJECT_CODEC.from_object(dict(obj), key)
        try:
            encoded = self.codec.encode(record)
        except (TypeError, ValueError) as e:
            raise CorruptRecordError(key, str(e)) from e
        return record, encoded

    def extract(self) -> Dict[str, str]:
        """Snapshot of the in-memory state, as stored strings."""
        return dict(self._encoded)

    # Introspection

    def keys(self) -> Iterable[str]:
        """Keys currently held in memory."""
        return list(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)
