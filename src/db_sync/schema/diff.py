"""Column-level diff between a declared table and its live structure.

Pure logic -- no I/O, no database connections.  The caller introspects
the live columns and applies the resulting plan.

Operations are applied in a fixed order: renames, adds, modifies, drops.
Renames and adds must land before a modify can rely on final column
identity, and a drop must never touch a column about to be renamed.

Usage:
    from db_sync.schema.diff import diff_table

    live = await SchemaIntrospector(adapter).get_columns("users")
    plan = diff_table(schema, live, dangerous_sync=False)
    for operation in plan.operations:
        for statement in operation.statements():
            await adapter.execute(statement)
"""

import re
from dataclasses import dataclass, field

from db_sync.schema.compiler import (
    compile_column,
    default_literal,
    defaults_equal,
    enum_clause,
    expected_type,
    foreign_key_clause,
    quote_identifier,
)
from db_sync.schema.models import FieldDescriptor, ForeignKeyRef, LiveColumn, TableSchema
from db_sync.schema.types import TYPE_CATALOG


# ------------------------------------------------------------------
# Operation data classes
# ------------------------------------------------------------------


def _constraint_cleanup(
    table: str,
    drop_indexes: list[str],
    drop_primary_key: bool,
    statement: str,
    definition: str,
) -> list[str]:
    """Wrap a column statement with the index drops it depends on.

    Unique indexes go first (they may block a type change); the primary
    key goes after the column statement so that statement can first strip
    AUTO_INCREMENT.  A former key column stays NOT NULL once the key is
    gone, so the definition is applied once more to settle nullability.
    """
    statements = [
        f"ALTER TABLE {quote_identifier(table)} DROP INDEX {quote_identifier(index)}"
        for index in drop_indexes
    ]
    statements.append(statement)
    if drop_primary_key:
        statements.append(f"ALTER TABLE {quote_identifier(table)} DROP PRIMARY KEY")
        statements.append(f"ALTER TABLE {quote_identifier(table)} MODIFY COLUMN {definition}")
    return statements


def _drop_foreign_key(table: str, constraint: str | None) -> list[str]:
    if constraint is None:
        return []
    return [f"ALTER TABLE {quote_identifier(table)} DROP FOREIGN KEY {quote_identifier(constraint)}"]


def _add_foreign_key(table: str, column: str, ref: ForeignKeyRef | None) -> list[str]:
    if ref is None:
        return []
    return [f"ALTER TABLE {quote_identifier(table)} ADD {foreign_key_clause(column, ref)}"]


@dataclass
class RenameColumn:
    """A column renamed in place (data kept) via CHANGE COLUMN.

    A constraint on the old column follows the rename.  When it does not
    match the declaration it is dropped first (``drop_foreign_key``) and
    the declared one added afterwards (``add_foreign_key``).

    Example:
        op = RenameColumn(table="users", old_name="rang", column="role",
                          definition="`role` VARCHAR(20)")
        op.to_sql()
        # 'ALTER TABLE `users` CHANGE COLUMN `rang` `role` VARCHAR(20)'
    """

    table: str
    old_name: str
    column: str
    definition: str
    drop_indexes: list[str] = field(default_factory=list)
    drop_primary_key: bool = False
    drop_foreign_key: str | None = None
    add_foreign_key: ForeignKeyRef | None = None

    kind = "rename"

    def to_sql(self) -> str:
        return (
            f"ALTER TABLE {quote_identifier(self.table)} "
            f"CHANGE COLUMN {quote_identifier(self.old_name)} {self.definition}"
        )

    def statements(self) -> list[str]:
        return _drop_foreign_key(self.table, self.drop_foreign_key) + _constraint_cleanup(
            self.table, self.drop_indexes, self.drop_primary_key, self.to_sql(), self.definition
        ) + _add_foreign_key(self.table, self.column, self.add_foreign_key)


@dataclass
class AddColumn:
    """A declared column missing from the live table, with its foreign key."""

    table: str
    column: str
    definition: str
    add_foreign_key: ForeignKeyRef | None = None

    kind = "add"

    def to_sql(self) -> str:
        return f"ALTER TABLE {quote_identifier(self.table)} ADD COLUMN {self.definition}"

    def statements(self) -> list[str]:
        return [self.to_sql(), *_add_foreign_key(self.table, self.column, self.add_foreign_key)]


@dataclass
class ModifyColumn:
    """A column whose type or constraints drifted from the declaration.

    Attributes:
        reasons: Human-readable list of the detected differences.
        drop_indexes: Unique indexes to drop (declared not unique).
        drop_primary_key: True if the live primary key must be dropped.
        drop_foreign_key: Live constraint to drop (undeclared or retargeted).
        add_foreign_key: Declared reference the live column lacks.
    """

    table: str
    column: str
    definition: str
    reasons: list[str] = field(default_factory=list)
    drop_indexes: list[str] = field(default_factory=list)
    drop_primary_key: bool = False
    drop_foreign_key: str | None = None
    add_foreign_key: ForeignKeyRef | None = None

    kind = "modify"

    def to_sql(self) -> str:
        return f"ALTER TABLE {quote_identifier(self.table)} MODIFY COLUMN {self.definition}"

    def statements(self) -> list[str]:
        return _drop_foreign_key(self.table, self.drop_foreign_key) + _constraint_cleanup(
            self.table, self.drop_indexes, self.drop_primary_key, self.to_sql(), self.definition
        ) + _add_foreign_key(self.table, self.column, self.add_foreign_key)


@dataclass
class DropColumn:
    """A live column with no declaration (dangerous sync only)."""

    table: str
    column: str
    drop_foreign_key: str | None = None

    kind = "drop"

    def to_sql(self) -> str:
        return (
            f"ALTER TABLE {quote_identifier(self.table)} "
            f"DROP COLUMN {quote_identifier(self.column)}"
        )

    def statements(self) -> list[str]:
        return _drop_foreign_key(self.table, self.drop_foreign_key) + [self.to_sql()]


ColumnOperation = RenameColumn | AddColumn | ModifyColumn | DropColumn


@dataclass
class ColumnPlan:
    """Structural operations needed for one table to converge.

    Attributes:
        table: Table name.
        renames: Columns renamed from their ``old_name``.
        adds: Declared columns missing from the table.
        modifies: Columns whose type or constraints drifted.
        drops: Undeclared columns to drop (only with dangerous sync).
        suppressed_drops: Undeclared columns left in place because dangerous
            sync is off.  Detected, reported, never applied.
        warnings: Lint messages (stale ``old_name`` hints).
    """

    table: str
    renames: list[RenameColumn] = field(default_factory=list)
    adds: list[AddColumn] = field(default_factory=list)
    modifies: list[ModifyColumn] = field(default_factory=list)
    drops: list[DropColumn] = field(default_factory=list)
    suppressed_drops: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def operations(self) -> list[ColumnOperation]:
        """All operations in application order."""
        return [*self.renames, *self.adds, *self.modifies, *self.drops]

    @property
    def has_changes(self) -> bool:
        """True if there are any operations to apply."""
        return bool(self.renames or self.adds or self.modifies or self.drops)

    @property
    def operation_count(self) -> int:
        return len(self.renames) + len(self.adds) + len(self.modifies) + len(self.drops)


# ------------------------------------------------------------------
# Per-column comparison
# ------------------------------------------------------------------


def _squash(value: str) -> str:
    return re.sub(r"\s+", "", value).lower()


def _describe_ref(ref: ForeignKeyRef | None) -> str:
    return f"{ref.table}({ref.column})" if ref else "none"


def column_differences(field_name: str, field: FieldDescriptor, live: LiveColumn) -> list[str]:
    """List the ways a live column differs from its declaration.

    Compared: base type (case-insensitive, length ignored, catalog
    synonyms accepted; enum value lists compared in full), nullability,
    default (only when declared, see ``defaults_equal``), unique index and
    primary key membership, and the foreign-key target.

    Example:
        >>> column_differences("name", FieldDescriptor(type="String"),
        ...                    LiveColumn(name="name", native_type="int"))
        ['type INT -> VARCHAR']
    """
    reasons: list[str] = []

    native = expected_type(field)
    if field.enum_values:
        expected = enum_clause(field.enum_values)
        if _squash(expected) != _squash(live.native_type):
            reasons.append(f"type {live.native_type} -> {expected}")
    elif not TYPE_CATALOG.matches(native, live.native_type):
        reasons.append(f"type {live.native_type.upper()} -> {native}")

    if field.not_null == live.nullable:
        reasons.append("nullability " + ("NULL -> NOT NULL" if field.not_null else "NOT NULL -> NULL"))

    if field.has_default:
        expected_default = default_literal(field.default)
        if not defaults_equal(native, expected_default, live.default):
            reasons.append(f"default {live.default!r} -> {expected_default!r}")

    if field.unique != live.unique:
        reasons.append("unique " + ("added" if field.unique else "removed"))

    if field.primary_key != live.primary_key:
        reasons.append("primary key " + ("added" if field.primary_key else "removed"))

    if field.foreign_key != live.references:
        reasons.append(f"foreign key {_describe_ref(live.references)} -> {_describe_ref(field.foreign_key)}")

    return reasons


def _compile_against(field_name: str, field: FieldDescriptor, live: LiveColumn) -> str:
    """Compile a field for CHANGE/MODIFY, leaving out constraints the live column has."""
    return compile_column(
        field_name,
        field,
        unique=field.unique and not live.unique,
        primary_key=field.primary_key and not live.primary_key,
    )


def _foreign_key_changes(field: FieldDescriptor, live: LiveColumn) -> dict:
    """Constraint to drop and reference to add so the column matches its declaration."""
    if field.foreign_key == live.references:
        return {}
    return {
        "drop_foreign_key": live.foreign_key.name if live.foreign_key else None,
        "add_foreign_key": field.foreign_key,
    }


# ------------------------------------------------------------------
# Plan generation
# ------------------------------------------------------------------


def diff_table(
    schema: TableSchema,
    live: list[LiveColumn],
    dangerous_sync: bool = False,
) -> ColumnPlan:
    """Compute the operations that make a live table match its declaration.

    Per field:

    - **Rename** when ``old_name`` names a live column not yet claimed by
      another rename and not itself declared, and no live column carries
      the new name.  Takes precedence over add and modify.
    - **Add** when no live column carries the field name (after renames).
    - **Modify** when the live column differs (see ``column_differences``).
    - **Drop** for live columns neither declared nor renamed this pass,
      only when *dangerous_sync* is set; otherwise they are listed in
      ``suppressed_drops``.

    Foreign keys travel with the operation of their column: an added
    column gets its constraint right after ``ADD COLUMN``, and a live
    constraint that no longer matches is dropped before the column
    statement and replaced after it.

    Args:
        schema: Declared table.
        live: Columns introspected from the table.
        dangerous_sync: Allow destructive operations (column drops).

    Returns:
        ``ColumnPlan``; empty when the table already matches.
    """
    plan = ColumnPlan(table=schema.name)
    live_by_name = {col.name: col for col in live}
    declared = schema.fields

    claimed: set[str] = set()
    renamed: set[str] = set()

    for name, field_def in declared.items():
        if field_def.old_name:
            plan.warnings.append(
                f"Remove the 'old_name' hint from field '{name}' in the schema "
                f"of '{schema.name}' to avoid unintended renames in the future."
            )
        source = field_def.old_name
        if (
            source
            and source in live_by_name
            and source not in claimed
            and source not in declared
            and name not in live_by_name
        ):
            live_col = live_by_name[source]
            plan.renames.append(
                RenameColumn(
                    table=schema.name,
                    old_name=source,
                    column=name,
                    definition=_compile_against(name, field_def, live_col),
                    drop_indexes=[] if field_def.unique else list(live_col.unique_indexes),
                    drop_primary_key=live_col.primary_key and not field_def.primary_key,
                    **_foreign_key_changes(field_def, live_col),
                )
            )
            claimed.add(source)
            renamed.add(name)

    for name, field_def in declared.items():
        if name in renamed or name in live_by_name:
            continue
        plan.adds.append(
            AddColumn(
                table=schema.name,
                column=name,
                definition=compile_column(name, field_def),
                add_foreign_key=field_def.foreign_key,
            )
        )

    for name, field_def in declared.items():
        if name in renamed or name not in live_by_name:
            continue
        live_col = live_by_name[name]
        reasons = column_differences(name, field_def, live_col)
        if reasons:
            plan.modifies.append(
                ModifyColumn(
                    table=schema.name,
                    column=name,
                    definition=_compile_against(name, field_def, live_col),
                    reasons=reasons,
                    drop_indexes=[] if field_def.unique else list(live_col.unique_indexes),
                    drop_primary_key=live_col.primary_key and not field_def.primary_key,
                    **_foreign_key_changes(field_def, live_col),
                )
            )

    for col in live:
        if col.name in declared or col.name in claimed:
            continue
        if dangerous_sync:
            plan.drops.append(
                DropColumn(
                    table=schema.name,
                    column=col.name,
                    drop_foreign_key=col.foreign_key.name if col.foreign_key else None,
                )
            )
        else:
            plan.suppressed_drops.append(col.name)

    return plan
