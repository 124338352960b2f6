"""MySQL schema introspection via SHOW statements.

This module queries the live database to extract structure:
- Table names (``SHOW TABLES``)
- Columns with type, nullability and default (``SHOW COLUMNS``)
- Unique and primary key membership (``SHOW INDEX``)
- Foreign-key constraints (``information_schema.KEY_COLUMN_USAGE``)

Results are never cached: every call reads the current state, since
structure changes between (and during) synchronization passes.
"""

from collections import defaultdict

from db_sync.adapters.base import DatabaseClient
from db_sync.schema.compiler import quote_identifier
from db_sync.schema.models import ForeignKeyRef, LiveColumn, LiveForeignKey

PRIMARY_INDEX = "PRIMARY"

FOREIGN_KEYS_QUERY = (
    "SELECT CONSTRAINT_NAME AS constraint_name, TABLE_NAME AS table_name, "
    "COLUMN_NAME AS column_name, REFERENCED_TABLE_NAME AS referenced_table, "
    "REFERENCED_COLUMN_NAME AS referenced_column "
    "FROM information_schema.KEY_COLUMN_USAGE "
    "WHERE TABLE_SCHEMA = DATABASE() AND REFERENCED_TABLE_NAME IS NOT NULL"
)


class SchemaIntrospector:
    """Introspects MySQL table structure through a ``DatabaseClient``.

    Usage:
        introspector = SchemaIntrospector(adapter)
        tables = await introspector.get_tables()
        columns = await introspector.get_columns("users")
    """

    def __init__(self, client: DatabaseClient):
        self._client = client

    async def get_tables(self) -> list[str]:
        """Get all base table names in the current database."""
        rows = await self._client.fetch("SHOW FULL TABLES WHERE Table_type = 'BASE TABLE'")
        # First column is Tables_in_<database>, its name varies
        return [next(iter(row.values())) for row in rows]

    async def get_columns(self, table: str) -> list[LiveColumn]:
        """Get columns for a table, in ordinal order, with index and foreign-key membership."""
        rows = await self._client.fetch(f"SHOW COLUMNS FROM {quote_identifier(table)}")
        unique_indexes, primary = await self._get_index_membership(table)
        foreign_keys = {fk.column: fk for fk in await self.get_foreign_keys(table)}

        columns = []
        for row in rows:
            name = row["Field"]
            native_type = row["Type"]
            if isinstance(native_type, bytes):
                native_type = native_type.decode()
            columns.append(
                LiveColumn(
                    name=name,
                    native_type=native_type,
                    nullable=(row["Null"] == "YES"),
                    default=None if row["Default"] is None else str(row["Default"]),
                    unique=bool(unique_indexes.get(name)),
                    unique_indexes=unique_indexes.get(name, []),
                    primary_key=name in primary,
                    foreign_key=foreign_keys.get(name),
                )
            )
        return columns

    async def get_foreign_keys(self, table: str | None = None) -> list[LiveForeignKey]:
        """Single-column foreign keys of *table*, or of every table when None.

        Composite constraints are skipped, like composite unique indexes.
        """
        if table is None:
            rows = await self._client.fetch(FOREIGN_KEYS_QUERY)
        else:
            rows = await self._client.fetch(
                FOREIGN_KEYS_QUERY + " AND TABLE_NAME = :table", {"table": table}
            )

        grouped: dict[tuple[str, str], list[dict]] = defaultdict(list)
        for row in rows:
            grouped[(row["table_name"], row["constraint_name"])].append(row)

        return [
            LiveForeignKey(
                name=name,
                table=table_name,
                column=parts[0]["column_name"],
                references=ForeignKeyRef(
                    table=parts[0]["referenced_table"], column=parts[0]["referenced_column"]
                ),
            )
            for (table_name, name), parts in grouped.items()
            if len(parts) == 1
        ]

    async def get_references(self) -> dict[str, list[str]]:
        """Map each table to the tables its foreign keys point to.

        Composite constraints count here: they block a drop all the same.
        """
        references: dict[str, list[str]] = defaultdict(list)
        for row in await self._client.fetch(FOREIGN_KEYS_QUERY):
            if row["referenced_table"] not in references[row["table_name"]]:
                references[row["table_name"]].append(row["referenced_table"])
        return dict(references)

    async def is_unique(self, table: str, column: str) -> bool:
        """True if *column* has a single-column, non-primary unique index."""
        unique_indexes, _ = await self._get_index_membership(table)
        return bool(unique_indexes.get(column))

    async def is_primary_key(self, table: str, column: str) -> bool:
        """True if *column* is part of the table's primary key."""
        _, primary = await self._get_index_membership(table)
        return column in primary

    async def _get_index_membership(
        self, table: str
    ) -> tuple[dict[str, list[str]], set[str]]:
        """Map columns to their single-column unique indexes, and collect PK columns.

        Composite unique indexes are not attributed to any single column:
        a per-column ``unique`` flag cannot express them.
        """
        rows = await self._client.fetch(f"SHOW INDEX FROM {quote_identifier(table)}")

        index_columns: dict[str, list[str]] = defaultdict(list)
        index_unique: dict[str, bool] = {}
        for row in rows:
            key_name = row["Key_name"]
            index_columns[key_name].append(row["Column_name"])
            index_unique[key_name] = int(row["Non_unique"]) == 0

        primary = set(index_columns.get(PRIMARY_INDEX, []))
        unique_indexes: dict[str, list[str]] = defaultdict(list)
        for key_name, columns in index_columns.items():
            if key_name == PRIMARY_INDEX or not index_unique[key_name]:
                continue
            if len(columns) == 1:
                unique_indexes[columns[0]].append(key_name)

        return dict(unique_indexes), primary
