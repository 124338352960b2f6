"""The ``DatabaseClient`` protocol.

Everything that talks to MySQL goes through an object of this shape, so
tests can hand the sync core an in-memory fake instead of a live server.
Every I/O method is a coroutine.

Usage:
    from db_sync.adapters.base import DatabaseClient

    async def add_age(client: DatabaseClient) -> None:
        await client.execute("ALTER TABLE `users` ADD COLUMN `age` INT(255)")
        for row in await client.fetch("SHOW COLUMNS FROM `users`"):
            print(row["Field"], row["Type"])
"""

from typing import Any, Protocol


class DatabaseClient(Protocol):
    """Async MySQL access used by the sync core and by ``Model``.

    Schema synchronization needs only ``execute``, ``fetch`` and
    ``escape_literal``; ``select``/``insert``/``update``/``delete`` serve
    ``db_sync.model.Model``.
    """

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Rows of *table* matching every entry of *filters*.

        ``columns`` is a raw column list such as ``"id, name"`` or ``"*"``.
        A ``None`` filter value matches NULL and a list value matches any
        of its items.
        """
        ...

    async def insert(self, table: str, data: dict) -> dict:
        """Insert one row; the returned dict includes the generated ``id``."""
        ...

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> int:
        """Set *data* on matching rows; returns the matched row count."""
        ...

    async def delete(self, table: str, filters: dict[str, Any]) -> int:
        """Remove matching rows; returns how many were removed."""
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Run a statement that returns no rows, typically DDL.

        Without *params* the text is passed to the driver as is, so literal
        content such as a replayed backup is never parsed for placeholders.
        """
        ...

    async def fetch(self, sql: str, params: dict | None = None) -> list[dict]:
        """Run a query (``SHOW ...``, ``SELECT ...``); values come back unconverted."""
        ...

    def escape_literal(self, value: Any) -> str:
        """*value* as MySQL literal text, ``NULL`` for None."""
        ...

    async def close(self) -> None:
        """Release pooled connections."""
        ...
