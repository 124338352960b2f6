"""Foreign-key dependency ordering for declared tables.

Pure logic -- no I/O.  Produces the forward creation order (referenced
tables before the tables that reference them) and its reverse, the order
in which tables can be dropped.

Usage:
    from db_sync.schema.dependencies import resolve_order

    order = resolve_order(registry.schemas)
    # ['roles', 'users']
"""

from collections.abc import Iterable, Mapping

from db_sync.errors import CyclicDependencyError
from db_sync.schema.models import TableSchema


def build_dependency_graph(schemas: Iterable[TableSchema]) -> dict[str, list[str]]:
    """Build table -> referenced tables, restricted to declared tables.

    References to tables with no declaration are left out: they cannot be
    created here, so they impose no ordering.  Self-references are left out
    as well.

    Args:
        schemas: Declared schemas in registration order.

    Returns:
        Dict mapping each declared table to the declared tables it references,
        in field order.

    Example:
        >>> build_dependency_graph([users, roles])
        {'users': ['roles'], 'roles': []}
    """
    schemas = list(schemas)
    declared = {schema.name for schema in schemas}
    return {
        schema.name: [
            ref for ref in schema.referenced_tables
            if ref in declared and ref != schema.name
        ]
        for schema in schemas
    }


def resolve_order(schemas: Iterable[TableSchema]) -> list[str]:
    """Topologically sort declared tables by foreign-key references.

    Depth-first with three visitation states.  Tables with no ordering
    constraint between them keep registration order, so the result is
    stable across calls.

    Args:
        schemas: Declared schemas in registration order.

    Returns:
        Table names, referenced tables first.

    Raises:
        CyclicDependencyError: If references form a cycle; names a table on it.
    """
    return _topological_sort(build_dependency_graph(schemas))


def drop_order(tables: Iterable[str], references: Mapping[str, Iterable[str]]) -> list[str]:
    """Order *tables* so each is dropped before the tables it references.

    Args:
        tables: Tables to drop, in catalog order.
        references: Live foreign keys as table -> referenced tables; entries
            outside *tables* are ignored.

    Raises:
        CyclicDependencyError: If the tables reference each other in a cycle.

    Example:
        >>> drop_order(["authors", "books"], {"books": ["authors"]})
        ['books', 'authors']
    """
    tables = list(tables)
    included = set(tables)
    graph = {
        table: [ref for ref in references.get(table, ()) if ref in included and ref != table]
        for table in reversed(tables)
    }
    return _topological_sort(graph)[::-1]


def _topological_sort(graph: dict[str, list[str]]) -> list[str]:
    sorted_tables: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()  # For cycle detection

    def visit(table: str) -> None:
        if table in visited:
            return
        if table in visiting:
            raise CyclicDependencyError(table)
        visiting.add(table)
        for dep in graph[table]:
            visit(dep)
        visiting.discard(table)
        visited.add(table)
        sorted_tables.append(table)

    for table in graph:
        visit(table)

    return sorted_tables
