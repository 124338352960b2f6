"""File storage for orphan-table backup artifacts.

One ``.sql`` file per dropped table, named
``backup_<table>_<epochMillis>.sql``.  A file renamed with an
``.ignored`` suffix is kept on disk but never offered for restore again.

Usage:
    from db_sync.backup.store import BackupStore

    store = BackupStore("backups")
    record = store.write("old_logs", "INSERT INTO ...;\\n")
    latest = store.latest_pending("old_logs")
"""

import re
import time
from enum import Enum
from pathlib import Path

from pydantic import BaseModel

IGNORED_SUFFIX = ".ignored"


class BackupState(str, Enum):
    PENDING = "pending"
    IGNORED = "ignored"


class BackupRecord(BaseModel):
    """A backup artifact on disk.

    Example:
        >>> record = BackupRecord(table="logs", timestamp=1700000000000,
        ...                       path=Path("backup_logs_1700000000000.sql"))
        >>> record.state
        <BackupState.PENDING: 'pending'>
    """

    table: str
    timestamp: int
    path: Path
    state: BackupState = BackupState.PENDING


def backup_filename(table: str, timestamp: int) -> str:
    return f"backup_{table}_{timestamp}.sql"


class BackupStore:
    """Reads, writes and disposes of backup artifacts in one directory.

    Args:
        directory: Where artifacts live.  Created on first write.
    """

    def __init__(self, directory: str | Path = "."):
        self.directory = Path(directory)

    def write(self, table: str, content: str, timestamp: int | None = None) -> BackupRecord:
        """Persist *content* as a new pending artifact for *table*.

        Raises:
            OSError: If the directory or file cannot be written.
        """
        if timestamp is None:
            timestamp = time.time_ns() // 1_000_000
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / backup_filename(table, timestamp)
        path.write_text(content, encoding="utf-8")
        return BackupRecord(table=table, timestamp=timestamp, path=path)

    def read(self, record: BackupRecord) -> str:
        return record.path.read_text(encoding="utf-8")

    def list_records(self, table: str | None = None) -> list[BackupRecord]:
        """List artifacts, newest first.

        The table name is matched exactly: ``user`` does not pick up
        ``backup_user_roles_<ts>.sql``.  Artifacts sort lexically by file
        name, which orders a fixed-width epoch-millis suffix correctly.

        Args:
            table: Restrict to one table; all tables when None.
        """
        if not self.directory.is_dir():
            return []

        table_pattern = re.escape(table) if table is not None else "(?P<table>.+)"
        pattern = re.compile(
            rf"^backup_{table_pattern}_(?P<ts>\d+)\.sql(?P<ignored>{re.escape(IGNORED_SUFFIX)})?$"
        )

        records = []
        for path in sorted(self.directory.glob("backup_*.sql*"), key=lambda p: p.name, reverse=True):
            match = pattern.match(path.name)
            if match is None:
                continue
            records.append(
                BackupRecord(
                    table=table if table is not None else match.group("table"),
                    timestamp=int(match.group("ts")),
                    path=path,
                    state=BackupState.IGNORED if match.group("ignored") else BackupState.PENDING,
                )
            )
        return records

    def latest_pending(self, table: str) -> BackupRecord | None:
        """Most recent artifact for *table* that was not marked ignored."""
        for record in self.list_records(table):
            if record.state is BackupState.PENDING:
                return record
        return None

    def mark_ignored(self, record: BackupRecord) -> BackupRecord:
        """Rename the artifact with the ``.ignored`` suffix."""
        target = record.path.with_name(record.path.name + IGNORED_SUFFIX)
        record.path.rename(target)
        return record.model_copy(update={"path": target, "state": BackupState.IGNORED})

    def delete(self, record: BackupRecord) -> None:
        record.path.unlink()
