"""Render column clauses and CREATE TABLE statements.

Pure logic -- no I/O.  Constraint clauses are emitted in a fixed order
(NOT NULL, DEFAULT, UNIQUE, AUTO_INCREMENT, PRIMARY KEY, custom suffix);
the engine is order-sensitive for them.

Usage:
    from db_sync.schema.compiler import compile_column

    compile_column("name", FieldDescriptor(type="String", length=50, required=True))
    # '`name` VARCHAR(50) NOT NULL'
"""

import datetime
from typing import Any

from db_sync.errors import ConflictingConstraintError, UnsupportedTypeError
from db_sync.schema.models import FieldDescriptor, ForeignKeyRef, TableSchema
from db_sync.schema.types import TYPE_CATALOG, FieldType

DEFAULT_LENGTH = 255

# Types whose defaults the server reports in its own numeric or date form
NUMERIC_TYPES = frozenset({"INT", "INTEGER", "TINYINT", "BOOLEAN", "BOOL", "FLOAT", "DOUBLE", "DECIMAL"})
TEMPORAL_TYPES = frozenset({"DATETIME", "TIMESTAMP"})


def quote_identifier(name: str) -> str:
    """Backtick-quote an identifier: ``users`` -> ``\\`users\\```."""
    return "`" + name.replace("`", "``") + "`"


def quote_string(value: str) -> str:
    """Single-quote a string literal, doubling embedded quotes."""
    return "'" + value.replace("'", "''") + "'"


def default_literal(value: Any) -> str | None:
    """Text form of a declared default, as the server reports it back.

    Booleans become ``1``/``0``; ``None`` stays ``None``.

    Example:
        >>> default_literal(True)
        '1'
        >>> default_literal(3)
        '3'
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _temporal_text(value: str) -> str:
    try:
        moment = datetime.datetime.fromisoformat(value)
    except ValueError:
        return value
    return moment.isoformat(sep=" ", timespec="microseconds" if moment.microsecond else "seconds")


def defaults_equal(native_type: str, declared: str | None, live: str | None) -> bool:
    """Compare a rendered declared default with the one the server reports.

    The server normalizes what it stores: ``FLOAT DEFAULT '1.0'`` reads back
    as ``1`` and a ``DATETIME`` default of ``2020-01-01`` as
    ``2020-01-01 00:00:00``.  Numeric types are compared as numbers and
    temporal types as timestamps; everything else as text.

    Example:
        >>> defaults_equal("FLOAT", "1.0", "1")
        True
        >>> defaults_equal("DATETIME", "2020-01-01", "2020-01-01 00:00:00")
        True
    """
    if declared is None or live is None:
        return declared == live
    base = native_type.split("(")[0].upper()
    if base in NUMERIC_TYPES:
        try:
            return float(declared) == float(live)
        except ValueError:
            return declared == live
    if base in TEMPORAL_TYPES:
        return _temporal_text(declared) == _temporal_text(live)
    return declared == live


def foreign_key_clause(field_name: str, ref: ForeignKeyRef) -> str:
    """``FOREIGN KEY (`col`) REFERENCES `table`(`col`)``."""
    return (
        f"FOREIGN KEY ({quote_identifier(field_name)}) "
        f"REFERENCES {quote_identifier(ref.table)}({quote_identifier(ref.column)})"
    )


def enum_clause(values: tuple[str, ...]) -> str:
    """``ENUM('a', 'b')`` with escaped literal values."""
    return "ENUM(" + ", ".join(quote_string(v) for v in values) + ")"


def expected_type(field: FieldDescriptor) -> str:
    """Native type (without length) a field compiles to.

    Raises:
        UnsupportedTypeError: If the type is unmapped and no enum values are set.
    """
    if field.enum_values:
        return "ENUM"
    native = TYPE_CATALOG.native_type(field.type) if isinstance(field.type, FieldType) else None
    if native is None:
        raise UnsupportedTypeError(f"unsupported type {_type_name(field)}")
    return native


def _type_name(field: FieldDescriptor) -> str:
    if field.type is None:
        return "(none)"
    return getattr(field.type, "value", field.type)


def compile_column(
    field_name: str,
    field: FieldDescriptor,
    *,
    unique: bool | None = None,
    primary_key: bool | None = None,
) -> str:
    """Render the column clause for one field.

    Args:
        field_name: Column name.
        field: Declared field.
        unique: Override for emitting ``UNIQUE`` (defaults to ``field.unique``).
            The diff engine passes ``False`` when the live column already
            carries a unique index.
        primary_key: Override for emitting ``PRIMARY KEY`` (defaults to
            ``field.primary_key``).  NOT NULL still follows the declaration.

    Returns:
        Clause such as ``\\`id\\` INT(255) NOT NULL AUTO_INCREMENT PRIMARY KEY``.

    Raises:
        ConflictingConstraintError: If the field is both primary key and unique.
        UnsupportedTypeError: If the type is unmapped and no enum values are set.
    """
    if field.primary_key and field.unique:
        raise ConflictingConstraintError(
            f"Field '{field_name}' cannot be both PRIMARY KEY and UNIQUE.",
            field=field_name,
        )

    if field.enum_values:
        col_def = enum_clause(field.enum_values)
    else:
        try:
            native = expected_type(field)
        except UnsupportedTypeError as e:
            raise UnsupportedTypeError(
                f"Field {field_name} has unsupported type {_type_name(field)}.",
                field=field_name,
            ) from e
        col_def = native
        if TYPE_CATALOG.is_sized(native):
            length = field.length if field.length and field.length > 0 else DEFAULT_LENGTH
            col_def += f"({length})"

    if field.not_null:
        col_def += " NOT NULL"
    if field.has_default:
        if field.default is None:
            col_def += " DEFAULT NULL"
        else:
            col_def += f" DEFAULT {quote_string(default_literal(field.default))}"
    if field.unique if unique is None else unique:
        col_def += " UNIQUE"
    if field.auto_increment:
        col_def += " AUTO_INCREMENT"
    if field.primary_key if primary_key is None else primary_key:
        col_def += " PRIMARY KEY"
    if field.customize:
        col_def += f" {field.customize}"

    return f"{quote_identifier(field_name)} {col_def}"


def generate_create_table_statement(schema: TableSchema) -> str:
    """Render ``CREATE TABLE IF NOT EXISTS`` for a declared table.

    Foreign keys become table-level ``FOREIGN KEY ... REFERENCES`` clauses,
    so referenced tables must exist first (see ``resolve_order``).

    Example:
        >>> sql = generate_create_table_statement(schema)
        >>> sql.startswith("CREATE TABLE IF NOT EXISTS `users` (")
        True
    """
    columns = [compile_column(name, field) for name, field in schema.fields.items()]
    for name, field in schema.fields.items():
        if field.foreign_key is not None:
            columns.append(foreign_key_clause(name, field.foreign_key))
    return (
        f"CREATE TABLE IF NOT EXISTS {quote_identifier(schema.name)} "
        f"({', '.join(columns)}) ENGINE=InnoDB"
    )
