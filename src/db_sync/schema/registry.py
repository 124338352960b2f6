"""Registry of table declarations for one synchronization pass.

Replaces a process-wide pending list: the caller owns a ``SchemaRegistry``,
registers declarations into it, and hands it to the orchestrator, which
drains it when the pass starts.

Usage:
    from db_sync.schema.registry import SchemaRegistry

    registry = SchemaRegistry()
    registry.register_schema("roles", {
        "id": {"type": "Number", "primary_key": True, "auto_increment": True},
        "name": {"type": "String", "length": 50, "required": True},
    })
    registry.register_schema("users", {
        "id": {"type": "Number", "primary_key": True, "auto_increment": True},
        "roleId": {"type": "Number", "foreign_key": "roles(id)"},
    })
"""

from collections.abc import Iterator, Mapping
from typing import Any

from db_sync.errors import ConfigurationError, ReservedTableNameError
from db_sync.schema.compiler import compile_column
from db_sync.schema.models import FieldDescriptor, TableSchema

RESERVED_KEYWORDS = frozenset({
    "ADD", "ALL", "ALTER", "AND", "AS", "ASC", "BETWEEN", "BY", "CASE", "CHECK",
    "COLUMN", "CONSTRAINT", "CREATE", "CURRENT_DATE", "CURRENT_TIME",
    "CURRENT_TIMESTAMP", "DEFAULT", "DELETE", "DESC", "DISTINCT", "DROP", "ELSE",
    "END", "ESCAPE", "EXCEPT", "EXISTS", "FOR", "FOREIGN", "FROM", "FULL",
    "GROUP", "HAVING", "IN", "INNER", "INSERT", "INTERSECT", "INTO", "IS", "JOIN",
    "LEFT", "LIKE", "LIMIT", "NOT", "NULL", "ON", "OR", "ORDER", "OUTER",
    "PRIMARY", "REFERENCES", "RIGHT", "SELECT", "SET", "SOME", "TABLE", "THEN",
    "UNION", "UNIQUE", "UPDATE", "VALUES", "WHEN", "WHERE",
})


def is_reserved_keyword(name: str) -> bool:
    """True if *name* is a reserved SQL keyword (case-insensitive).

    Example:
        >>> is_reserved_keyword("select")
        True
        >>> is_reserved_keyword("users")
        False
    """
    return name.upper() in RESERVED_KEYWORDS


class SchemaRegistry:
    """Ordered collection of table declarations.

    Registration order is the tie-break for dependency ordering, so it is
    preserved.  Every column is compiled at registration time: conflicting
    or unsupported declarations fail here, before any database call.
    """

    def __init__(self) -> None:
        self._schemas: dict[str, TableSchema] = {}

    def register_schema(self, name: str, fields: Mapping[str, Any]) -> TableSchema:
        """Normalize and register the declaration for table *name*.

        Args:
            name: Table name.
            fields: Mapping of field name to declaration.  A declaration is
                a ``FieldDescriptor``, a dict of descriptor attributes, or a
                bare type (``"String"``, ``FieldType.TEXT``, ``int``...).

        Returns:
            The immutable ``TableSchema`` handle.

        Raises:
            ReservedTableNameError: If *name* is a reserved SQL keyword.
            ConfigurationError: If the table is already registered, has no
                fields, or a field cannot be compiled.
        """
        if is_reserved_keyword(name):
            raise ReservedTableNameError(
                f"Invalid table name '{name}': reserved SQL keyword", table=name
            )
        if name in self._schemas:
            raise ConfigurationError(f"Table '{name}' is already registered", table=name)
        if not fields:
            raise ConfigurationError(f"Table '{name}' declares no fields", table=name)

        descriptors: dict[str, FieldDescriptor] = {}
        for field_name, declaration in fields.items():
            try:
                descriptor = FieldDescriptor.from_declaration(declaration)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid declaration for {name}.{field_name}: {e}",
                    table=name,
                    field=field_name,
                ) from e
            try:
                compile_column(field_name, descriptor)
            except ConfigurationError as e:
                e.table = name
                raise
            descriptors[field_name] = descriptor

        schema = TableSchema(name=name, fields=descriptors)
        self._schemas[name] = schema
        return schema

    def get(self, name: str) -> TableSchema | None:
        return self._schemas.get(name)

    @property
    def schemas(self) -> list[TableSchema]:
        """Registered schemas in registration order."""
        return list(self._schemas.values())

    @property
    def table_names(self) -> list[str]:
        return list(self._schemas)

    def drain(self) -> list[TableSchema]:
        """Remove and return every registered schema."""
        schemas = self.schemas
        self._schemas.clear()
        return schemas

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[TableSchema]:
        return iter(self.schemas)

    def __len__(self) -> int:
        return len(self._schemas)
