"""
Dependency tracking between reads and the records they consulted.

Every read runs under a read id. While it runs, the record store reports
each entity key it consults; a later write to one of those keys makes the
read stale. Invalidation is exact-match on entity key: writing any field of a
record invalidates exactly the reads that touched that record.

Invariants:
    - A dependency set is a set, not a multiset
    - beginning a read with an existing id supersedes its old dependency set
    - a released read id is never resurrected by late record_access calls
    - the reverse index (key -> read ids) mirrors the forward sets exactly

How to change safely:
    - Keep both indexes updated in the same method
    - on_write() must not mutate state; the caller decides what "stale" means
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, FrozenSet, Optional, Set

logger = logging.getLogger(__name__)


class DependencyTracker:
    """Tracks which entity keys each active read consulted.

    Example:
        >>> tracker = DependencyTracker()
        >>> tracker.begin_read("q1")
        >>> tracker.record_access("q1", "User:1")
        True
        >>> tracker.on_write("User:1")
        {'q1'}
    """

    def __init__(self) -> None:
        self._deps: Dict[str, Set[str]] = {}
        self._readers: Dict[str, Set[str]] = defaultdict(set)

    def begin_read(self, read_id: str) -> None:
        """Open a new, empty dependency set for ``read_id``."""
        if read_id in self._deps:
            self._unindex(read_id)
            logger.debug("Read superseded", extra={"read_id": read_id})
        self._deps[read_id] = set()

    def record_access(self, read_id: str, key: str) -> bool:
        """Add ``key`` to the dependency set of ``read_id``.

        Returns:
            False if the read is not active (never begun or released)
        """
        deps = self._deps.get(read_id)
        if deps is None:
            return False
        if key not in deps:
            deps.add(key)
            self._readers[key].add(read_id)
        return True

    def on_write(self, key: str) -> Set[str]:
        """Return the active reads whose dependency set contains ``key``."""
        readers = self._readers.get(key)
        return set(readers) if readers else set()

    def release(self, read_id: str) -> bool:
        """Discard the dependency set of ``read_id``.

        Returns:
            True if the read was active
        """
        if read_id not in self._deps:
            return False
        self._unindex(read_id)
        del self._deps[read_id]
        return True

    def dependencies(self, read_id: str) -> Optional[FrozenSet[str]]:
        """Current dependency set of ``read_id``, or None if not active."""
        deps = self._deps.get(read_id)
        return frozenset(deps) if deps is not None else None

    def is_active(self, read_id: str) -> bool:
        return read_id in self._deps

    @property
    def active_reads(self) -> FrozenSet[str]:
        return frozenset(self._deps)

    def clear(self) -> None:
        """Release every read."""
        self._deps.clear()
        self._readers.clear()

    def _unindex(self, read_id: str) -> None:
        for key in self._deps[read_id]:
            readers = self._readers.get(key)
            if readers is None:
                continue
            readers.discard(read_id)
            if not readers:
                del self._readers[key]

    def __len__(self) -> int:
        return len(self._deps)
