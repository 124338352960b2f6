"""Row-level access to a declared table.

``Model`` binds a ``TableSchema`` to a ``DatabaseClient`` and exposes the
everyday CRUD calls.  Column names in *where*, *data* and *attributes* are
checked against the declaration, so a typo fails before any SQL is sent.

Usage:
    from db_sync.model import Model

    users = Model(registry.get("users"), adapter)
    await users.save({"name": "Alice", "role_id": 1})
    admins = await users.find_all(where={"role_id": 1}, order_by=[("name", "ASC")])
    total = await users.count()
    await users.update_one(admins[0], {"name": "Alicia"})
"""

import logging
from typing import Any

from db_sync.adapters.base import DatabaseClient
from db_sync.errors import ConfigurationError
from db_sync.schema.compiler import quote_identifier
from db_sync.schema.models import TableSchema

logger = logging.getLogger(__name__)

_DIRECTIONS = ("ASC", "DESC")


class Model:
    """CRUD operations for one declared table.

    Args:
        schema: Declaration of the table (from ``SchemaRegistry``).
        client: Database adapter implementing ``DatabaseClient`` Protocol.
    """

    def __init__(self, schema: TableSchema, client: DatabaseClient):
        self.schema = schema
        self._client = client

    @property
    def name(self) -> str:
        return self.schema.name

    async def save(self, data: dict[str, Any]) -> dict:
        """Insert one row and return it (``id`` filled from AUTO_INCREMENT)."""
        self._check_columns(data)
        return await self._client.insert(self.name, data)

    async def find_all(
        self,
        attributes: list[str] | None = None,
        where: dict[str, Any] | None = None,
        order_by: list[tuple[str, str]] | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Select rows.

        Args:
            attributes: Columns to return (all when None).
            where: Equality filters; None matches ``IS NULL`` and a list
                matches ``IN``.
            order_by: ``[(column, "ASC" | "DESC"), ...]``.
            limit: Maximum number of rows.

        Example:
            rows = await users.find_all(["id", "name"], order_by=[("id", "DESC")], limit=10)
        """
        return await self._client.select(
            self.name,
            self._columns(attributes),
            filters=self._check_columns(where),
            order_by=self._order_clause(order_by),
            limit=limit,
        )

    async def find_one(
        self, where: dict[str, Any], attributes: list[str] | None = None
    ) -> dict | None:
        """First row matching *where*, or None."""
        rows = await self._client.select(
            self.name,
            self._columns(attributes),
            filters=self._check_columns(where),
            limit=1,
        )
        return rows[0] if rows else None

    async def count(self, where: dict[str, Any] | None = None) -> int:
        rows = await self._client.select(
            self.name, "COUNT(*) AS `count`", filters=self._check_columns(where)
        )
        return int(rows[0]["count"]) if rows else 0

    async def update(self, data: dict[str, Any], where: dict[str, Any]) -> int:
        """Update matching rows; returns the number of rows matched.

        Raises:
            ValueError: If *where* is empty (refusing to update every row).
        """
        if not where:
            raise ValueError(f"update() on '{self.name}' requires a where clause")
        self._check_columns(data)
        return await self._client.update(self.name, data, self._check_columns(where))

    async def delete(self, where: dict[str, Any]) -> int:
        """Delete matching rows; returns the number deleted.

        Raises:
            ValueError: If *where* is empty (refusing to delete every row).
        """
        if not where:
            raise ValueError(f"delete() on '{self.name}' requires a where clause")
        return await self._client.delete(self.name, self._check_columns(where))

    async def update_one(self, row: dict[str, Any], data: dict[str, Any]) -> int:
        """Update the row *row* was read from.

        The row is located by its primary-key columns when *row* carries
        them, otherwise by every value in *row*.
        """
        return await self.update(data, self._row_key(row))

    async def delete_one(self, row: dict[str, Any]) -> int:
        """Delete the row *row* was read from, located like ``update_one``."""
        return await self.delete(self._row_key(row))

    async def generate_uuid(self, column: str = "uuid") -> str | None:
        """Server-generated ``UUID()`` not yet stored in *column*.

        Returns:
            The new value, or None if a row already holds it.
        """
        self._require_declared([column])
        rows = await self._client.fetch("SELECT UUID() AS `uuid`")
        value = str(rows[0]["uuid"])
        if await self.count({column: value}):
            logger.warning(f"UUID {value} already used in {self.name}.{column}")
            return None
        return value

    async def drop_table(self) -> None:
        logger.info(f"Dropping table '{self.name}'")
        await self._client.execute(f"DROP TABLE IF EXISTS {quote_identifier(self.name)}")

    async def custom_request(self, sql: str, params: dict | None = None) -> list[dict]:
        """Run an arbitrary query and return its rows."""
        return await self._client.fetch(sql, params)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_columns(self, values: dict[str, Any] | None) -> dict[str, Any] | None:
        if values:
            self._require_declared(values.keys())
        return values

    def _row_key(self, row: dict[str, Any]) -> dict[str, Any]:
        keys = [name for name, field in self.schema.fields.items() if field.primary_key]
        if keys and all(key in row for key in keys):
            return {key: row[key] for key in keys}
        return dict(row)

    def _require_declared(self, columns) -> None:
        unknown = [col for col in columns if col not in self.schema.fields]
        if unknown:
            raise ConfigurationError(
                f"Unknown column(s) {', '.join(unknown)} for table '{self.name}'",
                table=self.name,
                field=unknown[0],
            )

    def _columns(self, attributes: list[str] | None) -> str:
        if not attributes:
            return "*"
        self._require_declared(attributes)
        return ", ".join(quote_identifier(col) for col in attributes)

    def _order_clause(self, order_by: list[tuple[str, str]] | None) -> str | None:
        if not order_by:
            return None
        self._require_declared(col for col, _ in order_by)
        parts = []
        for column, direction in order_by:
            direction = direction.upper()
            if direction not in _DIRECTIONS:
                raise ValueError(f"Invalid sort direction '{direction}' (expected ASC or DESC)")
            parts.append(f"{quote_identifier(column)} {direction}")
        return ", ".join(parts)
