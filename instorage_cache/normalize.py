"""
Normalization of nested result data into flat records.

The Normalizer walks result data alongside a plan's selection and produces
one record per object, replacing every nested object with a Reference.

Records are emitted children-first. The store applies them in that order, so
when a backend write fails part-way the stored records may be orphaned but,
outside reference cycles, never reference a record that was not written.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Set

from .identity import IdentityResolver
from .plan import Field
from .records import TYPENAME_FIELD, FieldValue, JsonBlob, Record, Reference

logger = logging.getLogger(__name__)


class Normalizer:
    """Decomposes result data into normalized records.

    Attributes:
        resolver: Identity resolver for nested objects
        add_typename: Store ``__typename`` of written objects even if unselected
    """

    def __init__(self, resolver: IdentityResolver, add_typename: bool = True) -> None:
        self.resolver = resolver
        self.add_typename = add_typename

    def normalize(
        self,
        root_key: str,
        selections: Sequence[Field],
        data: Mapping[str, Any],
    ) -> Dict[str, Record]:
        """Decompose ``data`` selected by ``selections`` under ``root_key``.

        Fields selected but absent from ``data`` are left out of the records,
        so the subsequent merge keeps whatever the store already holds.

        Returns:
            Mapping of entity key to the fields to merge, children first
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"result data must be a mapping, got {type(data).__name__}")
        out: Dict[str, Record] = {}
        self._write_object(root_key, selections, data, out, is_root=True)
        return _children_first(out, root_key)

    def _write_object(
        self,
        key: str,
        selections: Sequence[Field],
        obj: Mapping[str, Any],
        out: Dict[str, Record],
        is_root: bool = False,
    ) -> None:
        record: Record = {}
        for f in selections:
            if f.response_key not in obj:
                logger.debug("Missing field in written data", extra={"key": key, "field": f.response_key})
                continue
            record[f.storage_key] = self._normalize_value(
                obj[f.response_key], f, key, f.storage_key, out
            )

        if (
            self.add_typename
            and not is_root
            and TYPENAME_FIELD in obj
            and TYPENAME_FIELD not in record
        ):
            record[TYPENAME_FIELD] = obj[TYPENAME_FIELD]

        # The same entity may appear more than once in one result.
        if key in out:
            out[key].update(record)
        else:
            out[key] = record

    def _normalize_value(
        self,
        value: Any,
        f: Field,
        parent_key: str,
        path: str,
        out: Dict[str, Record],
    ) -> FieldValue:
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        if isinstance(value, (list, tuple)):
            return [
                self._normalize_value(item, f, parent_key, f"{path}.{index}", out)
                for index, item in enumerate(value)
            ]
        if isinstance(value, Mapping):
            if f.selections is None:
                return JsonBlob(dict(value))
            ref = self.resolver.resolve(value, parent_key, path)
            self._write_object(ref.key, f.selections, value, out)
            return ref
        raise TypeError(
            f"Cannot normalize value of type {type(value).__name__} for field '{f.response_key}'"
        )



def _children_first(records: Dict[str, Record], root_key: str) -> Dict[str, Record]:
    """Order ``records`` so every record follows the records it references.

    An entity met twice may gain children on its second appearance, after it
    was first emitted, so emission order alone is not enough. Records on a
    reference cycle keep the order in which the walk reaches them.
    """
    ordered: Dict[str, Record] = {}
    visiting: Set[str] = set()

    def visit(key: str) -> None:
        if key in ordered or key in visiting:
            return
        visiting.add(key)
        for child in _referenced_keys(records[key].values()):
            if child in records:
                visit(child)
        ordered[key] = records[key]

    visit(root_key)
    for key in records:
        visit(key)
    return ordered


def _referenced_keys(values: Iterable[FieldValue]) -> List[str]:
    keys: List[str] = []
    for value in values:
        if isinstance(value, Reference):
            keys.append(value.key)
        elif isinstance(value, list):
            keys.extend(_referenced_keys(value))
    return keys
