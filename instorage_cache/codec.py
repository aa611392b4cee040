"""
Serialization codec for normalized records.

Converts an in-memory record to and from the string stored by a storage
adapter. The wire form is a compact JSON object with sorted keys:

    scalar      -> JSON scalar
    list        -> JSON array of encoded values
    Reference   -> {"type": "id", "id": <key>, "generated": <bool>, "typename": <str>}
    JsonBlob    -> {"type": "json", "json": <value>}

Any other JSON object in a field position is rejected on decode, so opaque
data can never be mistaken for a reference.

Invariants:
    - decode(encode(record)) == record for every well-formed record
    - Encoding is deterministic (same record, same string)
    - Malformed input raises CorruptRecordError naming the key

How to change safely:
    - New value tags must be added to both encode and decode
    - Never change the tag of an existing value kind; stored snapshots
      written by older versions must keep decoding
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from .errors import CorruptRecordError
from .records import FieldValue, JsonBlob, Record, Reference

REFERENCE_TAG = "id"
JSON_TAG = "json"


@runtime_checkable
class RecordCodec(Protocol):
    """Protocol for record codecs."""

    def encode(self, record: Record) -> str:
        ...

    def decode(self, raw: str, key: Optional[str] = None) -> Record:
        ...


class JsonRecordCodec:
    """JSON implementation of RecordCodec.

    Example:
        >>> codec = JsonRecordCodec()
        >>> raw = codec.encode({"field": "simple value"})
        >>> codec.decode(raw, key="ROOT_QUERY")
        {'field': 'simple value'}
    """

    def encode(self, record: Record) -> str:
        """Serialize a record.

        Raises:
            TypeError: If a field holds a value no record can contain
            ValueError: If a float is NaN or infinite
        """
        return json.dumps(
            self.to_object(record),
            sort_keys=True,
            separators=(",", ":"),
            allow_nan=False,
        )

    def decode(self, raw: str, key: Optional[str] = None) -> Record:
        """Deserialize a stored record.

        Args:
            raw: Stored string
            key: Entity key the value was stored under (for error reporting)

        Raises:
            CorruptRecordError: If the string is not a valid encoded record
        """
        if not isinstance(raw, str):
            raise CorruptRecordError(key, f"expected str, got {type(raw).__name__}")
        try:
            obj = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptRecordError(key, f"invalid JSON: {e}") from e
        return self.from_object(obj, key)

    def to_object(self, record: Record) -> dict[str, Any]:
        """Convert a record to its JSON-compatible object form."""
        if not isinstance(record, Mapping):
            raise TypeError(f"record must be a mapping, got {type(record).__name__}")
        return {str(name): self._encode_value(value) for name, value in record.items()}

    def from_object(self, obj: Any, key: Optional[str] = None) -> Record:
        """Convert a JSON object form back into a record.

        Raises:
            CorruptRecordError: If the object is not a valid encoded record
        """
        if not isinstance(obj, dict):
            raise CorruptRecordError(key, f"expected object, got {type(obj).__name__}")
        return {name: self._decode_value(value, key, name) for name, value in obj.items()}

    def _encode_value(self, value: FieldValue) -> Any:
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        if isinstance(value, Reference):
            encoded: dict[str, Any] = {
                "type": REFERENCE_TAG,
                "id": value.key,
                "generated": value.generated,
            }
            if value.typename is not None:
                encoded["typename"] = value.typename
            return encoded
        if isinstance(value, JsonBlob):
            return {"type": JSON_TAG, "json": value.value}
        if isinstance(value, list):
            return [self._encode_value(item) for item in value]
        raise TypeError(f"Cannot encode field value of type {type(value).__name__}")

    def _decode_value(self, value: Any, key: Optional[str], field_name: str) -> FieldValue:
        if isinstance(value, list):
            return [self._decode_value(item, key, field_name) for item in value]
        if not isinstance(value, dict):
            return value

        tag = value.get("type")
        if tag == REFERENCE_TAG:
            target = value.get("id")
            typename = value.get("typename")
            if not isinstance(target, str) or not target:
                raise CorruptRecordError(key, f"field '{field_name}' has a reference without an id")
            if typename is not None and not isinstance(typename, str):
                raise CorruptRecordError(key, f"field '{field_name}' has a non-string typename")
            return Reference(
                key=target,
                generated=bool(value.get("generated", False)),
                typename=typename,
            )
        if tag == JSON_TAG and "json" in value:
            return JsonBlob(value["json"])
        raise CorruptRecordError(key, f"field '{field_name}' holds an untagged object")
