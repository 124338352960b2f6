"""db-sync: declarative MySQL schema synchronization.

Declare tables in Python, then converge a live MySQL/MariaDB database to
them: missing tables are created in foreign-key order, columns are
renamed, added, modified and (with dangerous sync) dropped, and tables
without a declaration are backed up to replayable SQL before being
dropped.

Usage:
    from db_sync import SchemaRegistry, SyncOrchestrator, get_adapter

    registry = SchemaRegistry()
    registry.register_schema("roles", {"id": {"type": "Number", "primary_key": True}})
    adapter = await get_adapter("local")
    result = await SyncOrchestrator(adapter, registry).sync()
"""

__version__ = "0.1.0"

# Adapters
from db_sync.adapters.base import DatabaseClient
from db_sync.adapters.mysql import AsyncMySQLAdapter

# Config
from db_sync.config.loader import load_db_config
from db_sync.config.models import DatabaseConfig, DatabaseProfile

# Errors
from db_sync.errors import (
    BackupWriteError,
    ConfigurationError,
    ConflictingConstraintError,
    CyclicDependencyError,
    DbSyncError,
    DdlApplyError,
    ReservedTableNameError,
    RestoreReplayError,
    UnsupportedTypeError,
)

# Factory
from db_sync.factory import ProfileNotFoundError, connect, get_adapter, resolve_url

# Model CRUD
from db_sync.model import Model

# Prompts
from db_sync.prompts import ConsolePrompt, DecisionProvider, FixedAnswer

# Schema
from db_sync.schema.registry import SchemaRegistry
from db_sync.schema.sync import SyncOrchestrator, SyncResult, SyncState, sync_schemas
from db_sync.schema.types import FieldType

# Backup
from db_sync.backup.store import BackupStore

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncMySQLAdapter",
    # Config
    "load_db_config",
    "DatabaseProfile",
    "DatabaseConfig",
    # Errors
    "DbSyncError",
    "ConfigurationError",
    "ConflictingConstraintError",
    "UnsupportedTypeError",
    "ReservedTableNameError",
    "CyclicDependencyError",
    "BackupWriteError",
    "RestoreReplayError",
    "DdlApplyError",
    # Factory
    "get_adapter",
    "connect",
    "ProfileNotFoundError",
    "resolve_url",
    # Model CRUD
    "Model",
    # Prompts
    "DecisionProvider",
    "ConsolePrompt",
    "FixedAnswer",
    # Schema
    "FieldType",
    "SchemaRegistry",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "sync_schemas",
    # Backup
    "BackupStore",
]
