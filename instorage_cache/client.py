"""
Fetch-policy client over the cache.

The transport that performs network fetches lives outside this package; the
client only needs a ``fetcher`` callable that takes a QueryPlan and returns
result data. The client decides, per fetch policy, whether the cache can
answer or the fetcher must be invoked.

Example:
    >>> client = CacheFirstClient(cache, fetcher=transport.execute)
    >>> result = client.query(QueryPlan.from_selection({"field": None}))
    >>> result.from_cache
    False
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .cache import InStorageCache
from .plan import QueryPlan
from .store import MissingField

logger = logging.getLogger(__name__)

Fetcher = Callable[[QueryPlan], Mapping[str, Any]]


class FetchPolicy(Enum):
    """When to consult the network."""

    CACHE_FIRST = "cache-first"
    CACHE_ONLY = "cache-only"
    NETWORK_ONLY = "network-only"


@dataclass(frozen=True)
class QueryResult:
    """Data returned to the query layer.

    Attributes:
        data: Result data (may be partial for cache-only misses)
        from_cache: True if the fetcher was not invoked
        missing: What the cache could not serve (cache-only policy)
    """

    data: Optional[Dict[str, Any]]
    from_cache: bool
    missing: Tuple[MissingField, ...] = ()


class CacheFirstClient:
    """Serves plans from the cache, fetching only what the cache cannot answer.

    Attributes:
        cache: Cache to read from and write fetched data into
        fetcher: Network-fetch collaborator
    """

    def __init__(self, cache: InStorageCache, fetcher: Fetcher) -> None:
        self.cache = cache
        self.fetcher = fetcher

    def query(
        self,
        plan: QueryPlan,
        policy: FetchPolicy = FetchPolicy.CACHE_FIRST,
    ) -> QueryResult:
        """Execute ``plan`` under ``policy``.

        Under cache-first the fetcher is invoked at most once, and only when
        the cache read is incomplete.
        """
        if policy is not FetchPolicy.NETWORK_ONLY:
            cached = self.cache.read(plan)
            if cached.complete or policy is FetchPolicy.CACHE_ONLY:
                return QueryResult(cached.data, from_cache=True, missing=cached.missing)

        logger.debug(
            "Fetching from network",
            extra={"operation": plan.name, "policy": policy.value},
        )
        data = self.fetcher(plan)
        self.cache.write(plan, data)

        fresh = self.cache.read(plan)
        if not fresh.complete:
            # The response did not cover the plan; serve it as received.
            logger.warning(
                "Fetched data does not satisfy plan",
                extra={"operation": plan.name, "missing": len(fresh.missing)},
            )
            return QueryResult(dict(data), from_cache=False)
        return QueryResult(fresh.data, from_cache=False)
