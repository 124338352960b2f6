"""Pydantic models for declared and introspected table structure.

This module contains schema-domain models:
- Declaration models: ForeignKeyRef, FieldDescriptor, TableSchema
- Introspection models: LiveForeignKey, LiveColumn

Declarations are normalized once, when they are registered: bare types,
Python types and ``{"type": ...}`` dicts all become a ``FieldDescriptor``.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from db_sync.schema.types import PYTHON_TYPES, FieldType


# ============================================================================
# Declaration Models
# ============================================================================


class ForeignKeyRef(BaseModel):
    """Reference from a column to ``table(column)``.

    Example:
        >>> ForeignKeyRef.parse("roles(id)")
        ForeignKeyRef(table='roles', column='id')
    """

    model_config = ConfigDict(frozen=True)

    table: str
    column: str = "id"

    @classmethod
    def parse(cls, value: Any) -> "ForeignKeyRef":
        """Accept ``"roles(id)"``, ``"roles"``, ``("roles", "id")`` or a dict."""
        if isinstance(value, ForeignKeyRef):
            return value
        if isinstance(value, dict):
            return cls(**value)
        if isinstance(value, (tuple, list)):
            return cls(table=value[0], column=value[1])
        if isinstance(value, str):
            table, _, rest = value.partition("(")
            column = rest.rstrip(") ").strip()
            return cls(table=table.strip(), column=column or "id")
        raise ValueError(f"Invalid foreign key reference: {value!r}")


def _normalize_type(value: Any) -> Any:
    """Resolve a declared type to a FieldType where possible.

    Unknown names are kept as plain strings so the column compiler can
    report them as unsupported with the field name attached.
    """
    if value is None or isinstance(value, FieldType):
        return value
    if isinstance(value, type):
        if value in PYTHON_TYPES:
            return PYTHON_TYPES[value]
        value = value.__name__
    if isinstance(value, str):
        for member in FieldType:
            if member.value.lower() == value.lower():
                return member
        return value
    raise ValueError(f"Invalid field type: {value!r}")


class FieldDescriptor(BaseModel):
    """One column's declared intent.

    ``has_default`` distinguishes an explicit ``default=None`` (renders
    ``DEFAULT NULL``) from no default at all (no DEFAULT clause, never
    compared against the live column).

    Example:
        >>> field = FieldDescriptor(type="String", length=50, required=True)
        >>> field.type
        <FieldType.STRING: 'String'>
        >>> field.has_default
        False
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: FieldType | str | None = None
    length: int | None = None
    required: bool = False
    default: Any = None
    has_default: bool = False
    unique: bool = False
    auto_increment: bool = False
    primary_key: bool = False
    foreign_key: ForeignKeyRef | None = Field(
        default=None, validation_alias=AliasChoices("foreign_key", "foreignKey")
    )
    enum_values: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("enum_values", "enum")
    )
    old_name: str | None = Field(
        default=None, validation_alias=AliasChoices("old_name", "oldName")
    )
    customize: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _track_default(cls, data: Any) -> Any:
        if isinstance(data, dict) and "has_default" not in data:
            data = {**data, "has_default": "default" in data}
        return data

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        return _normalize_type(value)

    @field_validator("foreign_key", mode="before")
    @classmethod
    def _coerce_foreign_key(cls, value: Any) -> Any:
        return None if value is None else ForeignKeyRef.parse(value)

    @property
    def not_null(self) -> bool:
        """NOT NULL is implied by ``required`` or ``primary_key``."""
        return self.required or self.primary_key

    @classmethod
    def from_declaration(cls, declaration: Any) -> "FieldDescriptor":
        """Normalize the shorthand forms of a field declaration.

        Example:
            >>> FieldDescriptor.from_declaration(str).type
            <FieldType.STRING: 'String'>
            >>> FieldDescriptor.from_declaration({"type": int, "required": True}).required
            True
        """
        if isinstance(declaration, FieldDescriptor):
            return declaration
        if isinstance(declaration, dict):
            return cls.model_validate(declaration)
        return cls(type=declaration)


class TableSchema(BaseModel):
    """Ordered field declarations bound to one table name."""

    model_config = ConfigDict(frozen=True)

    name: str
    fields: dict[str, FieldDescriptor] = Field(default_factory=dict)

    @property
    def field_names(self) -> list[str]:
        return list(self.fields)

    @property
    def referenced_tables(self) -> list[str]:
        """Tables referenced by foreign keys, in field order, without duplicates."""
        tables: list[str] = []
        for field in self.fields.values():
            if field.foreign_key and field.foreign_key.table not in tables:
                tables.append(field.foreign_key.table)
        return tables


# ============================================================================
# Introspection Models
# ============================================================================


class LiveForeignKey(BaseModel):
    """A foreign-key constraint found on a live column."""

    name: str
    table: str
    column: str
    references: ForeignKeyRef


class LiveColumn(BaseModel):
    """Snapshot of one existing column, read fresh on every pass.

    Example:
        >>> col = LiveColumn(name="id", native_type="int")
        >>> col.nullable
        True
    """

    name: str
    native_type: str
    nullable: bool = True
    default: str | None = None
    unique: bool = False
    unique_indexes: list[str] = Field(default_factory=list)
    primary_key: bool = False
    foreign_key: LiveForeignKey | None = None

    @property
    def references(self) -> ForeignKeyRef | None:
        """Target of the column's foreign key, if it has one."""
        return self.foreign_key.references if self.foreign_key else None
