"""
Read/write plans consumed from the query-execution layer.

A plan is the already-computed shape of an operation: which fields to read
from (or write into) which root record, with nested selections for object
fields. The cache never parses query documents; the query layer hands it a
QueryPlan.

Example:
    >>> plan = QueryPlan.from_selection({"typeField": {"field": None}}, name="typed")
    >>> plan.selections[0].storage_key
    'typeField'
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from .records import ROOT_KEY

SelectionSpec = Union[Mapping[str, Any], Sequence[Union[str, "Field"]]]


@dataclass(frozen=True)
class Field:
    """One selected field.

    Attributes:
        name: Field name in the schema
        alias: Result key to use instead of the name
        arguments: Field arguments; part of the storage key
        selections: Sub-selection for object fields, None for leaves
    """

    name: str
    alias: Optional[str] = None
    arguments: Optional[Dict[str, Any]] = field(default=None, hash=False, compare=True)
    selections: Optional[Tuple["Field", ...]] = None

    @property
    def response_key(self) -> str:
        """Key of this field in result data."""
        return self.alias or self.name

    @property
    def storage_key(self) -> str:
        """Key of this field in the normalized record."""
        if not self.arguments:
            return self.name
        args = json.dumps(self.arguments, sort_keys=True, separators=(",", ":"))
        return f"{self.name}({args})"

    def to_dict(self) -> Dict[str, Any]:
        """Canonical dictionary form, used for fingerprints."""
        return {
            "name": self.name,
            "alias": self.alias,
            "arguments": self.arguments,
            "selections": [f.to_dict() for f in self.selections]
            if self.selections is not None
            else None,
        }


def selection(spec: SelectionSpec) -> Tuple[Field, ...]:
    """Build a selection tuple from a compact description.

    Accepts a mapping of field name to ``None`` (leaf) or a nested description, or a
    sequence of field names and Field objects.
    """
    if isinstance(spec, Mapping):
        fields = []
        for name, sub in spec.items():
            if isinstance(sub, Field):
                fields.append(sub)
            else:
                fields.append(Field(name, selections=None if sub is None else selection(sub)))
        return tuple(fields)
    return tuple(item if isinstance(item, Field) else Field(item) for item in spec)


@dataclass(frozen=True)
class QueryPlan:
    """Read/write plan for one operation.

    Attributes:
        selections: Top-level selected fields
        root_key: Record the selection starts from
        name: Operation name (informational)
        read_id: Explicit logical read id; derived from the selection if absent
    """

    selections: Tuple[Field, ...]
    root_key: str = ROOT_KEY
    name: Optional[str] = None
    read_id: Optional[str] = None

    @classmethod
    def from_selection(
        cls,
        spec: SelectionSpec,
        root_key: str = ROOT_KEY,
        name: Optional[str] = None,
        read_id: Optional[str] = None,
    ) -> QueryPlan:
        return cls(selection(spec), root_key=root_key, name=name, read_id=read_id)

    @property
    def fingerprint(self) -> str:
        """SHA-256 of the root key and canonical selection."""
        canonical = json.dumps(
            {"root": self.root_key, "selections": [f.to_dict() for f in self.selections]},
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @property
    def logical_id(self) -> str:
        """Id under which reads of this plan are dependency-tracked.

        Two plans with the same root and selection are the same logical query,
        so a newer read supersedes the older one's dependency set.
        """
        return self.read_id or f"{self.root_key}:{self.fingerprint[:16]}"
