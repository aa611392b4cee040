"""
Normalized record types.

A normalized record maps field names to scalars, lists, opaque JSON blobs or
references. Nested objects never appear inline; they are replaced by a
Reference to their own record at normalization time.

Invariants:
    - The root record lives under ROOT_KEY
    - Generated keys start with GENERATED_KEY_PREFIX, stable keys never do
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

ROOT_KEY = "ROOT_QUERY"
GENERATED_KEY_PREFIX = "$"
TYPENAME_FIELD = "__typename"


@dataclass(frozen=True)
class Reference:
    """Pointer from one record field to another record.

    Attributes:
        key: Entity key of the target record
        generated: Whether the key was synthesized from the parent path
        typename: Type name of the target object, if known
    """

    key: str
    generated: bool = False
    typename: Optional[str] = None


@dataclass(frozen=True)
class JsonBlob:
    """An object stored as an opaque scalar (no sub-selection was given for it)."""

    value: Any


FieldValue = Union[None, bool, int, float, str, Reference, JsonBlob, List[Any]]
Record = Dict[str, FieldValue]


def is_generated_key(key: str) -> bool:
    return key.startswith(GENERATED_KEY_PREFIX)


def generated_key(parent_key: str, field_path: str) -> str:
    """Build the synthetic key for an object without stable identity.

    A generated parent already carries the marker, so it is not repeated:
    ``generated_key("ROOT_QUERY", "a")`` is ``"$ROOT_QUERY.a"`` and
    ``generated_key("$ROOT_QUERY.a", "b")`` is ``"$ROOT_QUERY.a.b"``.
    """
    key = f"{parent_key}.{field_path}"
    if not is_generated_key(key):
        key = GENERATED_KEY_PREFIX + key
    return key
