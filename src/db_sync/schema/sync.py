"""End-to-end schema synchronization pass (async).

Drives one pass over the declarations in a ``SchemaRegistry``:

1. Resolve foreign-key order (``CYCLE_ERROR`` on a cycle, before any DDL).
2. Ensure every declared table exists (``CREATE TABLE IF NOT EXISTS``),
   referenced tables first.
3. Back up and drop orphan tables.
4. For each declared table, in order: offer a backup restore, diff it
   against a fresh introspection, then apply renames, adds, modifies and
   (with dangerous sync) drops.

Each table's changes are committed as they are applied.  A failure aborts
the rest of the pass; earlier tables keep their changes, and the next run
re-diffs from the new live state.

Usage:
    from db_sync.schema.sync import SyncOrchestrator

    orchestrator = SyncOrchestrator(adapter, registry, store=BackupStore("backups"))
    result = await orchestrator.sync(dangerous_sync=False)
    print(result.format_report())
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field

from db_sync.adapters.base import DatabaseClient
from db_sync.backup.orphans import OrphanTableManager, RestoreOutcome, find_orphans
from db_sync.backup.store import BackupStore
from db_sync.errors import ConfigurationError, CyclicDependencyError, DdlApplyError
from db_sync.prompts import ConsolePrompt, DecisionProvider
from db_sync.schema.compiler import generate_create_table_statement
from db_sync.schema.dependencies import drop_order, resolve_order
from db_sync.schema.diff import ColumnPlan, diff_table
from db_sync.schema.introspector import SchemaIntrospector
from db_sync.schema.registry import SchemaRegistry

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Orchestrator states.  The last three are terminal failures."""

    INIT = "init"
    RESOLVED = "resolved"
    TABLES_ENSURED = "tables_ensured"
    ORPHANS_HANDLED = "orphans_handled"
    PER_TABLE_SYNC = "per_table_sync"
    DONE = "done"
    CYCLE_ERROR = "cycle_error"
    CREATE_ERROR = "create_error"
    DIFF_APPLY_ERROR = "diff_apply_error"


class TableSyncReport(BaseModel):
    """What happened to one declared table during the pass."""

    table: str
    created: bool = False
    restore: RestoreOutcome = RestoreOutcome.NO_BACKUP
    renamed: list[str] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    dropped: list[str] = Field(default_factory=list)
    suppressed_drops: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def change_count(self) -> int:
        return len(self.renamed) + len(self.added) + len(self.modified) + len(self.dropped)


class SyncResult(BaseModel):
    """Result of a synchronization pass.

    Attributes:
        state: Last state reached (``DONE`` on success).
        order: Declared tables in dependency order.
        orphans_dropped: Orphan tables backed up and dropped.
        backups_written: Paths of the backup artifacts written.
        tables: Per-table reports, in processing order.
        error: Error message if the pass aborted.
    """

    state: SyncState = SyncState.INIT
    order: list[str] = Field(default_factory=list)
    orphans_dropped: list[str] = Field(default_factory=list)
    backups_written: list[str] = Field(default_factory=list)
    tables: list[TableSyncReport] = Field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.state == SyncState.DONE

    @property
    def change_count(self) -> int:
        """Total column operations applied."""
        return sum(report.change_count for report in self.tables)

    def format_report(self) -> str:
        """Format the pass as a human-readable report."""
        if self.error:
            lines = [f"Sync aborted ({self.state.value}): {self.error}"]
        else:
            lines = [f"Sync complete: {len(self.tables)} tables, {self.change_count} column changes"]

        if self.orphans_dropped:
            lines.append(f"\n  Orphan tables dropped: {', '.join(self.orphans_dropped)}")

        for report in self.tables:
            parts = []
            if report.created:
                parts.append("created")
            for label, names in (
                ("renamed", report.renamed),
                ("added", report.added),
                ("modified", report.modified),
                ("dropped", report.dropped),
                ("kept (dangerous sync off)", report.suppressed_drops),
            ):
                if names:
                    parts.append(f"{label}: {', '.join(names)}")
            if report.restore is not RestoreOutcome.NO_BACKUP:
                parts.append(f"backup {report.restore.value}")
            lines.append(f"  - {report.table}: {'; '.join(parts) or 'up to date'}")

        return "\n".join(lines)


class SyncOrchestrator:
    """Runs synchronization passes for the declarations in a registry.

    The registry is drained once the creation order resolves: the pass owns
    that snapshot of declarations, and the caller registers afresh for the
    next pass.  A cyclic declaration set is left registered.

    Args:
        client: Database adapter implementing ``DatabaseClient`` Protocol.
        registry: Declarations to synchronize.
        store: Backup artifact storage (default: current directory).
        prompt: Operator decisions for backup restores (default: terminal).
    """

    def __init__(
        self,
        client: DatabaseClient,
        registry: SchemaRegistry,
        store: BackupStore | None = None,
        prompt: DecisionProvider | None = None,
    ):
        self._client = client
        self._registry = registry
        self._introspector = SchemaIntrospector(client)
        self._orphans = OrphanTableManager(client, store or BackupStore("."), prompt or ConsolePrompt())
        self.result = SyncResult()

    @property
    def state(self) -> SyncState:
        return self.result.state

    async def sync(self, dangerous_sync: bool = False) -> SyncResult:
        """Run one pass.

        Args:
            dangerous_sync: Allow column drops.  Orphan tables are backed up
                and dropped either way.

        Returns:
            ``SyncResult`` in state ``DONE``.

        Raises:
            ConfigurationError: If the registry is empty (a pass with no
                declarations would treat every table as an orphan).
            CyclicDependencyError: Foreign keys form a cycle; nothing applied.
            DdlApplyError: A statement failed; ``self.result`` holds the
                partial report and the failure state.
        """
        self.result = result = SyncResult()
        if not len(self._registry):
            raise ConfigurationError("No schemas registered; refusing to sync an empty declaration set")
        try:
            result.order = resolve_order(self._registry.schemas)
        except CyclicDependencyError as e:
            self._fail(SyncState.CYCLE_ERROR, e)
            raise
        schemas = {schema.name: schema for schema in self._registry.drain()}
        result.state = SyncState.RESOLVED

        live_tables = await self._introspector.get_tables()

        reports: dict[str, TableSyncReport] = {}
        for table in result.order:
            sql = generate_create_table_statement(schemas[table])
            try:
                await self._client.execute(sql)
            except Exception as e:
                err = DdlApplyError(table, "create", sql, str(e))
                self._fail(SyncState.CREATE_ERROR, err)
                raise err from e
            created = table not in live_tables
            if created:
                logger.info(f"Table '{table}' created")
            reports[table] = TableSyncReport(table=table, created=created)
        result.state = SyncState.TABLES_ENSURED

        external = {
            ref for schema in schemas.values() for ref in schema.referenced_tables
        } - schemas.keys()
        for orphan in await self._orphan_drop_order(find_orphans(live_tables, schemas, external)):
            try:
                record = await self._orphans.backup_and_drop(orphan)
            except DdlApplyError as e:
                self._fail(SyncState.DIFF_APPLY_ERROR, e)
                raise
            result.orphans_dropped.append(orphan)
            if record is not None:
                result.backups_written.append(str(record.path))
        result.state = SyncState.ORPHANS_HANDLED

        result.state = SyncState.PER_TABLE_SYNC
        for table in result.order:
            report = reports[table]
            result.tables.append(report)

            report.restore = await self._orphans.offer_restore(table)

            live = await self._introspector.get_columns(table)
            plan = diff_table(schemas[table], live, dangerous_sync=dangerous_sync)
            await self._apply_plan(plan, report)

        result.state = SyncState.DONE
        return result

    async def _orphan_drop_order(self, orphans: list[str]) -> list[str]:
        """Referencing orphans first, so no drop is blocked by a live foreign key."""
        if len(orphans) < 2:
            return orphans
        try:
            return drop_order(orphans, await self._introspector.get_references())
        except CyclicDependencyError:
            logger.warning(
                f"Orphan tables {', '.join(orphans)} reference each other in a cycle; "
                f"dropping them in catalog order"
            )
            return orphans

    async def _apply_plan(self, plan: ColumnPlan, report: TableSyncReport) -> None:
        """Apply one table's plan in order: renames, adds, modifies, drops."""
        for warning in plan.warnings:
            logger.warning(warning)
        report.warnings = list(plan.warnings)

        if plan.suppressed_drops:
            logger.warning(
                f"Columns {', '.join(plan.suppressed_drops)} of '{plan.table}' have no "
                f"declaration; kept because dangerous sync is off"
            )
        report.suppressed_drops = list(plan.suppressed_drops)

        targets = {
            "rename": report.renamed,
            "add": report.added,
            "modify": report.modified,
            "drop": report.dropped,
        }
        for operation in plan.operations:
            for statement in operation.statements():
                try:
                    await self._client.execute(statement)
                except Exception as e:
                    err = DdlApplyError(
                        plan.table, operation.kind, statement, str(e), column=operation.column
                    )
                    self._fail(SyncState.DIFF_APPLY_ERROR, err)
                    raise err from e
            targets[operation.kind].append(operation.column)
            logger.info(_describe(operation))

    def _fail(self, state: SyncState, error: Exception) -> None:
        self.result.state = state
        self.result.error = str(error)
        logger.error(str(error))


def _describe(operation) -> str:
    if operation.kind == "rename":
        return f"Column {operation.old_name} renamed to {operation.column} in {operation.table}"
    if operation.kind == "add":
        return f"Column {operation.column} added to {operation.table}"
    if operation.kind == "modify":
        return f"Column {operation.column} modified in {operation.table} ({', '.join(operation.reasons)})"
    return f"Column {operation.column} dropped from {operation.table}"


async def sync_schemas(
    client: DatabaseClient,
    registry: SchemaRegistry,
    dangerous_sync: bool = False,
    store: BackupStore | None = None,
    prompt: DecisionProvider | None = None,
) -> SyncResult:
    """Run a single pass with a one-off orchestrator.

    Example:
        result = await sync_schemas(adapter, registry, prompt=FixedAnswer(False))
    """
    orchestrator = SyncOrchestrator(client, registry, store=store, prompt=prompt)
    return await orchestrator.sync(dangerous_sync=dangerous_sync)
