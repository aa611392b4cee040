#!/usr/bin/env python3
"""
In-storage cache demo - shows normalization, persistence and invalidation.

A fake transport stands in for the network; watch how many times it is hit.
"""

import json
import tempfile
from pathlib import Path

from instorage_cache import (
    CacheFirstClient,
    InStorageCache,
    QueryPlan,
    SqliteStorage,
)

RESPONSES = {
    "viewer": {
        "viewer": {
            "__typename": "User",
            "id": "42",
            "name": "Alice",
            "settings": {"__typename": "Settings", "theme": "dark"},
        }
    },
    "team": {
        "team": {
            "__typename": "Team",
            "id": "7",
            "members": [{"__typename": "User", "id": "42", "name": "Alice"}],
        }
    },
}


class FakeTransport:
    def __init__(self):
        self.calls = 0

    def execute(self, plan):
        self.calls += 1
        return RESPONSES[plan.name]


def main():
    print("=" * 60)
    print("In-storage cache demo")
    print("=" * 60)

    viewer = QueryPlan.from_selection(
        {"viewer": {"id": None, "name": None, "settings": {"theme": None}}},
        name="viewer",
    )
    team = QueryPlan.from_selection(
        {"team": {"id": None, "members": {"id": None, "name": None}}},
        name="team",
    )

    with tempfile.TemporaryDirectory() as data_dir:
        db_path = str(Path(data_dir) / "cache.db")
        transport = FakeTransport()

        print("\n[Step 1] First process: fetch and persist")
        with SqliteStorage(db_path) as storage:
            cache = InStorageCache(storage)
            client = CacheFirstClient(cache, transport.execute)

            client.query(viewer)
            client.query(team)
            print(f"  - Network calls: {transport.calls}")
            print("  - Stored records:")
            for key in sorted(storage.keys()):
                print(f"      {key}: {storage.get(key)}")

            print("\n[Step 2] Rename the shared user and watch invalidation")
            cache.subscribe(lambda event: print(f"  - Stale read {event.read_id} via {sorted(event.keys)}"))
            cache.write_record("User:42", {"name": "Alice Liddell"})
            print(f"  - Team now reads: {json.dumps(cache.read(team).data)}")

        print("\n[Step 3] Second process: rehydrate from storage")
        with SqliteStorage(db_path) as storage:
            cache = InStorageCache(storage)
            client = CacheFirstClient(cache, transport.execute)
            result = client.query(viewer)
            print(f"  - From cache: {result.from_cache}")
            print(f"  - Data: {json.dumps(result.data)}")
            print(f"  - Network calls (total): {transport.calls}")

    print("\n" + "=" * 60)
    print("Demo Complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
