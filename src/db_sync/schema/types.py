"""Abstract field types and their MySQL column types.

Pure lookup tables -- no I/O, no state.
"""

import datetime
from enum import Enum


class FieldType(str, Enum):
    """Abstract field types accepted in schema declarations."""

    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"
    OBJECT = "Object"
    ARRAY = "Array"
    FLOAT = "Float"
    TEXT = "Text"
    DATETIME = "DateTime"
    TIMESTAMP = "Timestamp"


# Python types accepted as shorthand for an abstract type.
# bool must precede int: bool is a subclass of int.
PYTHON_TYPES: dict[type, FieldType] = {
    bool: FieldType.BOOLEAN,
    str: FieldType.STRING,
    int: FieldType.NUMBER,
    float: FieldType.FLOAT,
    dict: FieldType.OBJECT,
    list: FieldType.ARRAY,
    datetime.datetime: FieldType.DATETIME,
    datetime.date: FieldType.DATE,
}


class TypeCatalog:
    """Maps abstract field types to native column types.

    Example:
        >>> TYPE_CATALOG.native_type(FieldType.STRING)
        'VARCHAR'
        >>> TYPE_CATALOG.matches("BOOLEAN", "tinyint(1)")
        True
    """

    NATIVE_TYPES: dict[FieldType, str] = {
        FieldType.STRING: "VARCHAR",
        FieldType.NUMBER: "INT",
        FieldType.BOOLEAN: "BOOLEAN",
        FieldType.DATE: "DATETIME",
        FieldType.OBJECT: "JSON",
        FieldType.ARRAY: "VARCHAR",
        FieldType.FLOAT: "FLOAT",
        FieldType.TEXT: "TEXT",
        FieldType.DATETIME: "DATETIME",
        FieldType.TIMESTAMP: "TIMESTAMP",
    }

    # Native types that take a (length) qualifier
    SIZED_TYPES = frozenset({"VARCHAR", "INT"})

    # Names the server reports for a type it stores under another name
    SYNONYMS: dict[str, frozenset[str]] = {
        "BOOLEAN": frozenset({"BOOLEAN", "BOOL", "TINYINT"}),
        "INT": frozenset({"INT", "INTEGER"}),
        "JSON": frozenset({"JSON", "LONGTEXT"}),
    }

    def native_type(self, field_type: FieldType | None) -> str | None:
        """Return the native type for *field_type*, or None if unmapped."""
        if field_type is None:
            return None
        return self.NATIVE_TYPES.get(field_type)

    def is_sized(self, native_type: str) -> bool:
        return native_type.upper() in self.SIZED_TYPES

    def matches(self, expected: str, live_type: str) -> bool:
        """Compare an expected native type with an introspected column type.

        Case-insensitive; the live type's length/precision suffix and any
        trailing attributes (``unsigned``) are ignored.
        """
        expected = expected.upper()
        base = base_type(live_type)
        return base in self.SYNONYMS.get(expected, frozenset({expected}))


def base_type(native_type: str) -> str:
    """Strip length and attributes: ``"varchar(50)"`` -> ``"VARCHAR"``."""
    return native_type.split("(")[0].split()[0].upper() if native_type.strip() else ""


TYPE_CATALOG = TypeCatalog()
