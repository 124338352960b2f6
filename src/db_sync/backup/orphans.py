"""Orphan tables: backup, drop, and later restore.

An orphan is a table present in the database with no declaration.  Its
rows are dumped to a replayable ``INSERT`` artifact before the table is
dropped; when a declaration for the same name reappears, the operator is
offered the newest artifact for replay.

Usage:
    from db_sync.backup.orphans import OrphanTableManager, find_orphans

    manager = OrphanTableManager(adapter, BackupStore("backups"), ConsolePrompt())
    for table in find_orphans(live_tables, declared_tables):
        await manager.backup_and_drop(table)

    outcome = await manager.offer_restore("users")
"""

import logging
from collections.abc import Iterable
from enum import Enum

from db_sync.adapters.base import DatabaseClient
from db_sync.backup.store import BackupRecord, BackupStore
from db_sync.errors import BackupWriteError, DdlApplyError, RestoreReplayError
from db_sync.prompts import DecisionProvider
from db_sync.schema.compiler import quote_identifier

logger = logging.getLogger(__name__)


class RestoreOutcome(str, Enum):
    """What ``offer_restore`` did with the newest artifact."""

    NO_BACKUP = "no_backup"
    RESTORED_DELETED = "restored_deleted"
    RESTORED_IGNORED = "restored_ignored"
    DECLINED_DELETED = "declined_deleted"
    DECLINED_IGNORED = "declined_ignored"
    REPLAY_FAILED = "replay_failed"


def find_orphans(
    live_tables: Iterable[str],
    declared_tables: Iterable[str],
    external_tables: Iterable[str] = (),
) -> list[str]:
    """Live tables with no declaration, in live order.

    Args:
        live_tables: Tables present in the database.
        declared_tables: Tables with a declaration.
        external_tables: Undeclared tables that declared foreign keys point
            to.  They are not orphans: dropping them would break the
            references.

    Example:
        >>> find_orphans(["users", "old_logs"], ["users"])
        ['old_logs']
    """
    keep = set(declared_tables) | set(external_tables)
    return [table for table in live_tables if table not in keep]


def build_insert_statement(table: str, rows: list[dict], escape) -> str:
    """Serialize rows as one multi-row INSERT.

    Args:
        table: Table name.
        rows: Non-empty list of row dicts sharing the same keys.
        escape: Literal escaper, normally ``DatabaseClient.escape_literal``.

    Returns:
        ``INSERT INTO `t` (`a`, `b`) VALUES (1, 'x'),\\n(2, NULL);\\n``
    """
    columns = list(rows[0].keys())
    column_list = ", ".join(quote_identifier(col) for col in columns)
    values = ",\n".join(
        "(" + ", ".join("NULL" if row[col] is None else escape(row[col]) for col in columns) + ")"
        for row in rows
    )
    return f"INSERT INTO {quote_identifier(table)} ({column_list}) VALUES {values};\n"


class OrphanTableManager:
    """Backs up and drops orphan tables, and offers restores.

    Args:
        client: Database adapter implementing ``DatabaseClient`` Protocol.
        store: Where backup artifacts are written.
        prompt: Operator decision provider for restore/delete questions.
    """

    def __init__(self, client: DatabaseClient, store: BackupStore, prompt: DecisionProvider):
        self._client = client
        self._store = store
        self._prompt = prompt

    async def backup_and_drop(self, table: str) -> BackupRecord | None:
        """Dump *table* to an artifact, then drop it.

        An empty table still gets an (empty) artifact, recording that the
        orphan was seen.  A failed write is logged and the drop proceeds.

        Returns:
            The written artifact, or None if writing failed.

        Raises:
            DdlApplyError: If reading the rows or dropping the table fails.
        """
        record: BackupRecord | None = None
        sql = f"SELECT * FROM {quote_identifier(table)}"
        try:
            rows = await self._client.fetch(sql)
        except Exception as e:
            raise DdlApplyError(table, "backup", sql, str(e)) from e

        content = build_insert_statement(table, rows, self._client.escape_literal) if rows else ""
        try:
            record = self._store.write(table, content)
        except OSError as e:
            err = BackupWriteError(table, str(self._store.directory), str(e))
            logger.warning(f"{err} -- dropping '{table}' without a backup")
        else:
            if rows:
                logger.info(f"Backed up {len(rows)} rows of '{table}' to {record.path}")
            else:
                logger.info(f"Table '{table}' is empty, wrote empty backup {record.path}")

        drop_sql = f"DROP TABLE IF EXISTS {quote_identifier(table)}"
        logger.info(f"Table '{table}' has no declaration, dropping")
        try:
            await self._client.execute(drop_sql)
        except Exception as e:
            raise DdlApplyError(table, "drop_table", drop_sql, str(e)) from e
        logger.info(f"Table '{table}' dropped")
        return record

    async def offer_restore(self, table: str) -> RestoreOutcome:
        """Offer the newest pending artifact for *table*, then dispose of it.

        Asks whether to replay the artifact; then asks whether to delete
        it -- declining renames it ``.ignored`` so it is never offered
        again.  A replay failure is logged, leaves the artifact as it was,
        and skips the second question.
        """
        record = self._store.latest_pending(table)
        if record is None:
            return RestoreOutcome.NO_BACKUP

        restored = self._prompt.ask(
            f"A backup was found for table '{table}' ({record.path}). Restore its data?"
        )
        if restored:
            try:
                content = self._store.read(record)
                if content.strip():
                    await self._client.execute(content)
            except Exception as e:
                err = RestoreReplayError(table, str(record.path), str(e))
                logger.warning(f"{err} -- backup left in place for manual retry")
                return RestoreOutcome.REPLAY_FAILED
            logger.info(f"Backup restored for table '{table}'")

        if self._prompt.ask(f"Delete the backup file '{record.path}'?"):
            self._store.delete(record)
            logger.info(f"Backup deleted: {record.path}")
            return RestoreOutcome.RESTORED_DELETED if restored else RestoreOutcome.DECLINED_DELETED

        ignored = self._store.mark_ignored(record)
        logger.info(f"Backup for table '{table}' ignored ({ignored.path}), it will not be offered again")
        return RestoreOutcome.RESTORED_IGNORED if restored else RestoreOutcome.DECLINED_IGNORED
