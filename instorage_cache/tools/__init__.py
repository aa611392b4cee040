"""
Command line tools for the in-storage cache.

- snapshot_cli: export, import and inspect snapshots of a SQLite cache
"""

from .snapshot_cli import InspectReport, SnapshotCLI, main

__all__ = ["InspectReport", "SnapshotCLI", "main"]
