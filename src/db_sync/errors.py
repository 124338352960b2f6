"""Exception hierarchy for schema synchronization.

Configuration errors are raised before any SQL runs.  Backup write and
restore replay errors are logged by the orphan manager and never abort a
pass.  DDL failures abort the pass; changes already applied to earlier
tables stay applied.

Usage:
    from db_sync.errors import ConfigurationError, DdlApplyError
"""


class DbSyncError(Exception):
    """Base class for all db-sync errors."""


class ConfigurationError(DbSyncError):
    """Invalid schema declaration (always fatal, never retried)."""

    def __init__(self, message: str, table: str | None = None, field: str | None = None):
        super().__init__(message)
        self.table = table
        self.field = field


class ConflictingConstraintError(ConfigurationError):
    """Field declares both PRIMARY KEY and UNIQUE."""


class UnsupportedTypeError(ConfigurationError):
    """Field type has no native mapping and no enum values."""


class ReservedTableNameError(ConfigurationError):
    """Table name is a reserved SQL keyword."""


class CyclicDependencyError(DbSyncError):
    """Foreign-key references between declared tables form a cycle."""

    def __init__(self, table: str):
        super().__init__(f"Cyclic foreign key dependency detected at table '{table}'")
        self.table = table


class BackupWriteError(DbSyncError):
    """Backup artifact for an orphan table could not be written."""

    def __init__(self, table: str, path: str, reason: str):
        super().__init__(f"Failed to write backup of '{table}' to {path}: {reason}")
        self.table = table
        self.path = path


class RestoreReplayError(DbSyncError):
    """Backup artifact could not be replayed into its table."""

    def __init__(self, table: str, path: str, reason: str):
        super().__init__(f"Failed to restore '{table}' from {path}: {reason}")
        self.table = table
        self.path = path


class DdlApplyError(DbSyncError):
    """A structural statement failed; aborts the rest of the pass.

    Attributes:
        table: Table the statement targeted.
        operation: One of ``create``, ``rename``, ``add``, ``modify``,
            ``drop``, ``backup``, ``drop_table``.
        column: Column name for column-level operations.
        sql: The statement that failed.
    """

    def __init__(
        self,
        table: str,
        operation: str,
        sql: str,
        reason: str,
        column: str | None = None,
    ):
        target = f"{table}.{column}" if column else table
        super().__init__(f"{operation} failed on {target}: {reason}")
        self.table = table
        self.operation = operation
        self.column = column
        self.sql = sql
