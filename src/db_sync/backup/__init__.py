"""Orphan-table backup artifacts: storage, drop and restore.

Usage:
    from db_sync.backup import BackupStore, OrphanTableManager, find_orphans
"""

from db_sync.backup.orphans import (
    OrphanTableManager,
    RestoreOutcome,
    build_insert_statement,
    find_orphans,
)
from db_sync.backup.store import BackupRecord, BackupState, BackupStore

__all__ = [
    "BackupStore",
    "BackupRecord",
    "BackupState",
    "OrphanTableManager",
    "RestoreOutcome",
    "find_orphans",
    "build_insert_statement",
]
