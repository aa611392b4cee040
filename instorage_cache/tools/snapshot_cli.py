"""
Snapshot CLI tool for SQLite-backed caches.

Commands:
    export   Write the stored snapshot of a cache database to JSON
    import   Restore a JSON snapshot into a cache database
    inspect  Decode every stored record and report corrupt ones

Usage:
    instorage-cache-snapshot export --db cache.db [-o snapshot.json]
    instorage-cache-snapshot import --db cache.db -i snapshot.json
    instorage-cache-snapshot inspect --db cache.db [--format json]

The snapshot file is a JSON object mapping entity key to the stored record
string, the same unit InStorageCache.restore() and extract() work with.

Invariants:
    - export never modifies the database
    - import goes through InStorageCache.restore(), so corrupt entries are
      skipped and reported instead of written
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..cache import InStorageCache
from ..codec import JsonRecordCodec
from ..config import CacheSettings
from ..errors import CorruptRecordError
from ..logging_setup import setup_logging
from ..records import Reference
from ..storage import SqliteStorage, read_snapshot

logger = logging.getLogger(__name__)


@dataclass
class InspectReport:
    """Result of inspecting a cache database.

    Attributes:
        records: Number of stored records
        references: Number of reference values across all records
        corrupt: Keys whose stored value cannot be decoded, with reasons
        dangling: (key, target) pairs whose target is not stored
    """

    records: int = 0
    references: int = 0
    corrupt: Dict[str, str] = field(default_factory=dict)
    dangling: List[List[str]] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.corrupt and not self.dangling

    def to_dict(self) -> dict:
        return {
            "records": self.records,
            "references": self.references,
            "corrupt": self.corrupt,
            "dangling": self.dangling,
            "healthy": self.healthy,
        }


class SnapshotCLI:
    """Snapshot operations over a storage adapter."""

    def __init__(self, storage: SqliteStorage) -> None:
        self.storage = storage
        self.codec = JsonRecordCodec()

    def export(self) -> Dict[str, str]:
        return read_snapshot(self.storage)

    def import_snapshot(self, snapshot: Dict[str, str]) -> List[CorruptRecordError]:
        cache = InStorageCache(self.storage)
        cache.restore(snapshot)
        return cache.restore_errors

    def inspect(self) -> InspectReport:
        report = InspectReport()
        snapshot = read_snapshot(self.storage)
        report.records = len(snapshot)
        for key, raw in sorted(snapshot.items()):
            try:
                record = self.codec.decode(raw, key)
            except CorruptRecordError as e:
                report.corrupt[key] = e.reason
                continue
            for ref in _references(list(record.values())):
                report.references += 1
                if ref.key not in snapshot:
                    report.dangling.append([key, ref.key])
        return report


def _references(values: list) -> List[Reference]:
    refs: List[Reference] = []
    for value in values:
        if isinstance(value, Reference):
            refs.append(value)
        elif isinstance(value, list):
            refs.extend(_references(value))
    return refs


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point for the snapshot tool."""
    parser = argparse.ArgumentParser(description="In-storage cache snapshot tool")
    parser.add_argument("--db", required=True, help="SQLite cache database")
    parser.add_argument("--table", default="cache_entries", help="Table holding the entries")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # export command
    export_parser = subparsers.add_parser("export", help="Export stored snapshot to JSON")
    export_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    # import command
    import_parser = subparsers.add_parser("import", help="Restore a JSON snapshot")
    import_parser.add_argument("--input", "-i", required=True, help="Snapshot JSON file")

    # inspect command
    inspect_parser = subparsers.add_parser("inspect", help="Check stored records")
    inspect_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    args = parser.parse_args(argv)
    setup_logging(CacheSettings(), verbose=args.verbose)

    with SqliteStorage(args.db, table=args.table) as storage:
        cli = SnapshotCLI(storage)

        if args.command == "export":
            output = json.dumps(cli.export(), indent=2, sort_keys=True)
            if args.output:
                with open(args.output, "w") as f:
                    f.write(output)
                print(f"Snapshot exported to {args.output}", file=sys.stderr)
            else:
                print(output)
            sys.exit(0)

        elif args.command == "import":
            with open(args.input) as f:
                snapshot = json.load(f)
            if not isinstance(snapshot, dict):
                print("Snapshot file must contain a JSON object", file=sys.stderr)
                sys.exit(1)

            errors = cli.import_snapshot(snapshot)
            imported = len(snapshot) - len(errors)
            print(f"Imported {imported} record(s)")
            if errors:
                print(f"Skipped {len(errors)} corrupt record(s):")
                for error in errors:
                    print(f"  - {error.key}: {error.reason}")
                sys.exit(1)
            sys.exit(0)

        elif args.command == "inspect":
            report = cli.inspect()
            if args.format == "json":
                print(json.dumps(report.to_dict(), indent=2))
            else:
                print(f"Records: {report.records}")
                print(f"References: {report.references}")
                for key, reason in report.corrupt.items():
                    print(f"  [CORRUPT] {key}: {reason}")
                for key, target in report.dangling:
                    print(f"  [DANGLING] {key} -> {target}")
                if report.healthy:
                    print("All records are healthy")
            sys.exit(0 if report.healthy else 1)


if __name__ == "__main__":
    main()
