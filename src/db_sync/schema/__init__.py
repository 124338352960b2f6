"""Table declarations, DDL compilation, live introspection and sync.

Provides the declaration registry (``SchemaRegistry``), column compilation
(``compile_column``), foreign-key ordering (``resolve_order``), live
introspection (``SchemaIntrospector``), column diffing (``diff_table``) and
the end-to-end pass (``SyncOrchestrator``).

Usage:
    from db_sync.schema import SchemaRegistry, SyncOrchestrator
    from db_sync.schema import compile_column, diff_table, resolve_order
"""

from db_sync.schema.compiler import compile_column, generate_create_table_statement
from db_sync.schema.dependencies import build_dependency_graph, resolve_order
from db_sync.schema.diff import (
    AddColumn,
    ColumnPlan,
    DropColumn,
    ModifyColumn,
    RenameColumn,
    diff_table,
)
from db_sync.schema.introspector import SchemaIntrospector
from db_sync.schema.models import (
    FieldDescriptor,
    ForeignKeyRef,
    LiveColumn,
    LiveForeignKey,
    TableSchema,
)
from db_sync.schema.registry import SchemaRegistry
from db_sync.schema.sync import (
    SyncOrchestrator,
    SyncResult,
    SyncState,
    TableSyncReport,
    sync_schemas,
)
from db_sync.schema.types import TYPE_CATALOG, FieldType, TypeCatalog

__all__ = [
    "FieldType",
    "TypeCatalog",
    "TYPE_CATALOG",
    "FieldDescriptor",
    "ForeignKeyRef",
    "TableSchema",
    "LiveColumn",
    "LiveForeignKey",
    "SchemaRegistry",
    "compile_column",
    "generate_create_table_statement",
    "build_dependency_graph",
    "resolve_order",
    "SchemaIntrospector",
    "diff_table",
    "ColumnPlan",
    "RenameColumn",
    "AddColumn",
    "ModifyColumn",
    "DropColumn",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "TableSyncReport",
    "sync_schemas",
]
