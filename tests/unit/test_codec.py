"""
Unit tests for the record codec.

Tests cover:
- Round trip of every field value kind
- Wire format of references
- Corrupt input detection
"""

import json

import pytest

from instorage_cache.codec import JsonRecordCodec
from instorage_cache.errors import CorruptRecordError
from instorage_cache.records import JsonBlob, Reference


class TestJsonRecordCodec:
    """Tests for JsonRecordCodec."""

    @pytest.fixture
    def codec(self):
        return JsonRecordCodec()

    def test_round_trip_mixed_record(self, codec):
        """decode(encode(r)) == r for scalars, lists, references and blobs."""
        record = {
            "name": "Alice",
            "age": 31,
            "score": 4.5,
            "active": True,
            "nickname": None,
            "tags": ["a", "b"],
            "best_friend": Reference("User:2", generated=False, typename="User"),
            "friends": [
                Reference("User:2", typename="User"),
                Reference("$User:1.friends.1", generated=True, typename="User"),
                None,
            ],
            "matrix": [[1, 2], [3]],
            "meta": JsonBlob({"nested": {"x": 1}, "list": [1, 2]}),
        }

        assert codec.decode(codec.encode(record), key="User:1") == record

    def test_reference_wire_format(self, codec):
        """References are stored as tagged id objects."""
        encoded = codec.encode(
            {"typeField": Reference("$ROOT_QUERY.typeField", generated=True, typename="TypeName")}
        )

        assert json.loads(encoded) == {
            "typeField": {
                "generated": True,
                "id": "$ROOT_QUERY.typeField",
                "type": "id",
                "typename": "TypeName",
            }
        }

    def test_reference_without_typename_omits_it(self, codec):
        encoded = json.loads(codec.encode({"f": Reference("X:1")}))

        assert "typename" not in encoded["f"]
        assert codec.decode(json.dumps(encoded)) == {"f": Reference("X:1")}

    def test_encoding_is_deterministic(self, codec):
        """Field order does not change the encoded string."""
        a = codec.encode({"b": 1, "a": 2})
        b = codec.encode({"a": 2, "b": 1})

        assert a == b
        assert a == '{"a":2,"b":1}'

    def test_empty_record(self, codec):
        assert codec.decode(codec.encode({})) == {}

    def test_decode_invalid_json_names_key(self, codec):
        with pytest.raises(CorruptRecordError) as exc_info:
            codec.decode("{not json", key="User:1")

        assert exc_info.value.key == "User:1"
        assert "User:1" in str(exc_info.value)
        assert exc_info.value.code == "CORRUPT_RECORD"

    def test_decode_non_object_is_corrupt(self, codec):
        with pytest.raises(CorruptRecordError):
            codec.decode("[1, 2, 3]", key="k")

    def test_decode_untagged_object_is_corrupt(self, codec):
        """Objects must be tagged; nothing is silently dropped."""
        with pytest.raises(CorruptRecordError) as exc_info:
            codec.decode('{"f": {"x": 1}}', key="k")

        assert "f" in exc_info.value.reason

    def test_decode_reference_without_id_is_corrupt(self, codec):
        with pytest.raises(CorruptRecordError):
            codec.decode('{"f": {"type": "id", "generated": false}}', key="k")

    def test_decode_non_string_is_corrupt(self, codec):
        with pytest.raises(CorruptRecordError):
            codec.decode(b'{"f": 1}', key="k")

    def test_encode_rejects_unknown_values(self, codec):
        with pytest.raises(TypeError):
            codec.encode({"f": object()})

    def test_encode_rejects_nan(self, codec):
        with pytest.raises(ValueError):
            codec.encode({"f": float("nan")})
