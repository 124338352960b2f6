"""Shared fixtures: an in-memory MySQL stand-in.

``FakeMySQL`` implements the parts of ``DatabaseClient`` the sync engine
uses (``execute``, ``fetch``, ``escape_literal``, ``close``).  It applies
the DDL this package emits to an in-memory catalog and answers the
``SHOW`` statements the introspector issues, so whole synchronization
passes can run without a server.  Types are reported back the way MySQL 8
does (``int``, ``varchar(20)``, ``tinyint(1)``, ``enum('a','b')``).
"""

import datetime
import json
import re

import pytest

from db_sync.backup.store import BackupStore
from db_sync.prompts import FixedAnswer

_CREATE = re.compile(r"^CREATE TABLE IF NOT EXISTS `(?P<table>[^`]+)` \((?P<body>.*)\) ENGINE=InnoDB$", re.S)
_ALTER = re.compile(
    r"^ALTER TABLE `(?P<table>[^`]+)` "
    r"(?P<op>ADD COLUMN|ADD FOREIGN KEY|DROP FOREIGN KEY|MODIFY COLUMN|CHANGE COLUMN|DROP COLUMN"
    r"|DROP INDEX|DROP PRIMARY KEY)\s*(?P<rest>.*)$",
    re.S,
)
_DROP_TABLE = re.compile(r"^DROP TABLE IF EXISTS `(?P<table>[^`]+)`$")
_INSERT = re.compile(r"^INSERT INTO `(?P<table>[^`]+)` \((?P<columns>[^)]*)\) VALUES (?P<values>.*?);?\s*$", re.S)
_IDENT = re.compile(r"^`((?:[^`]|``)+)`\s*(.*)$", re.S)
_FOREIGN_KEY = re.compile(r"^FOREIGN KEY \(`([^`]+)`\) REFERENCES `([^`]+)`\(`([^`]+)`\)$")
_REFERENCES = re.compile(r"^\(`([^`]+)`\) REFERENCES `([^`]+)`\(`([^`]+)`\)$")

_DISPLAY = {
    "BOOLEAN": "tinyint(1)",
    "BOOL": "tinyint(1)",
    "INT": "int",
    "INTEGER": "int",
}


class FakeDatabaseError(Exception):
    """Raised where MySQL would reject a statement."""


def _split_top_level(text: str) -> list[str]:
    """Split on commas outside quotes and parentheses."""
    parts: list[str] = []
    buf: list[str] = []
    depth = 0
    quote = None
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            buf.append(ch)
            if ch == "\\" and quote == "'" and i + 1 < len(text):
                buf.append(text[i + 1])
                i += 1
            elif ch == quote:
                if i + 1 < len(text) and text[i + 1] == quote:
                    buf.append(text[i + 1])
                    i += 1
                else:
                    quote = None
        elif ch in ("'", "`"):
            quote = ch
            buf.append(ch)
        elif ch == "(":
            depth += 1
            buf.append(ch)
        elif ch == ")":
            depth -= 1
            buf.append(ch)
        elif ch == "," and depth == 0:
            parts.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)
        i += 1
    if "".join(buf).strip():
        parts.append("".join(buf).strip())
    return parts


_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "0": "\0", "Z": "\x1a"}


def _unquote(literal: str) -> str:
    inner = literal[1:-1]
    out: list[str] = []
    i = 0
    while i < len(inner):
        ch = inner[i]
        if ch == "\\" and i + 1 < len(inner):
            out.append(_ESCAPES.get(inner[i + 1], inner[i + 1]))
            i += 2
        elif ch == "'" and i + 1 < len(inner) and inner[i + 1] == "'":
            out.append("'")
            i += 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _parse_value(token: str):
    if token.upper() == "NULL":
        return None
    if token.startswith("'"):
        return _unquote(token)
    try:
        return int(token)
    except ValueError:
        return float(token)


def _matching_paren(text: str, start: int) -> int:
    depth = 0
    quote = False
    i = start
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "'" and i + 1 < len(text) and text[i + 1] == "'":
                i += 1
            elif ch == "'":
                quote = False
        elif ch == "'":
            quote = True
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise FakeDatabaseError(f"unbalanced parentheses in {text!r}")


def _stored_default(col_type: str, value: str) -> str:
    """Default text as MySQL reports it back for *col_type*."""
    base = col_type.split("(")[0]
    try:
        if base in ("float", "double", "decimal"):
            number = float(value)
            return str(int(number)) if number.is_integer() else repr(number)
        if base in ("int", "integer", "tinyint"):
            return str(int(float(value)))
        if base in ("datetime", "timestamp"):
            return datetime.datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        pass
    return value


_FLAGS = [
    ("not_null", re.compile(r"\s*NOT NULL")),
    ("default_null", re.compile(r"\s*DEFAULT NULL")),
    ("default", re.compile(r"\s*DEFAULT ('(?:[^'\\]|''|\\.)*')")),
    ("unique", re.compile(r"\s*UNIQUE")),
    ("auto_increment", re.compile(r"\s*AUTO_INCREMENT")),
    ("primary_key", re.compile(r"\s*PRIMARY KEY")),
]


def parse_column_definition(definition: str) -> dict:
    """Parse a compiled column clause into a catalog entry."""
    match = _IDENT.match(definition.strip())
    if match is None:
        raise FakeDatabaseError(f"bad column definition {definition!r}")
    name = match.group(1).replace("``", "`")
    rest = match.group(2)

    if rest.upper().startswith("ENUM("):
        end = _matching_paren(rest, 4)
        values = [_unquote(v) for v in _split_top_level(rest[5:end])]
        col_type = "enum(" + ",".join("'" + v.replace("'", "''") + "'" for v in values) + ")"
        rest = rest[end + 1:]
    else:
        type_match = re.match(r"(\w+)(?:\((\d+)\))?", rest)
        base, length = type_match.group(1).upper(), type_match.group(2)
        if base in _DISPLAY:
            col_type = _DISPLAY[base]
        elif length:
            col_type = f"{base.lower()}({length})"
        else:
            col_type = base.lower()
        rest = rest[type_match.end():]

    column = {
        "name": name,
        "type": col_type,
        "not_null": False,
        "has_default": False,
        "default": None,
        "unique": False,
        "auto_increment": False,
        "primary_key": False,
    }
    while rest.strip():
        for flag, pattern in _FLAGS:
            flag_match = pattern.match(rest)
            if flag_match:
                if flag == "default":
                    column["has_default"] = True
                    column["default"] = _stored_default(col_type, _unquote(flag_match.group(1)))
                elif flag == "default_null":
                    column["has_default"] = True
                else:
                    column[flag] = True
                rest = rest[flag_match.end():]
                break
        else:
            column["extra"] = rest.strip()
            break
    if column["primary_key"]:
        column["not_null"] = True
    return column


class FakeMySQL:
    """In-memory MySQL catalog driven by the DDL text it receives.

    Attributes:
        tables: ``{name: {"columns": [...], "indexes": [...], "rows": [...],
            "foreign_keys": [...]}}``.  Foreign keys get MySQL-style names
            (``books_ibfk_1``) and block dropping the table they reference.
        executed: Every statement passed to ``execute``, in order.
        fail_on: Substrings; a statement containing one raises
            ``FakeDatabaseError``.
    """

    def __init__(self, database: str = "app"):
        self.database = database
        self.tables: dict[str, dict] = {}
        self.executed: list[str] = []
        self.fail_on: list[str] = []
        self.closed = False
        self._constraints = 0

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def columns(self, table: str) -> list[str]:
        return [col["name"] for col in self.tables[table]["columns"]]

    def column(self, table: str, name: str) -> dict:
        return next(col for col in self.tables[table]["columns"] if col["name"] == name)

    def rows(self, table: str) -> list[dict]:
        return self.tables[table]["rows"]

    def index_names(self, table: str) -> list[str]:
        return [index["name"] for index in self.tables[table]["indexes"]]

    def foreign_keys(self, table: str) -> list[tuple[str, str, str]]:
        """``(column, referenced table, referenced column)`` per constraint."""
        return [(fk["column"], fk["ref_table"], fk["ref_column"]) for fk in self.tables[table]["foreign_keys"]]

    def ddl(self) -> list[str]:
        """Executed statements other than INSERTs."""
        return [sql for sql in self.executed if not sql.startswith("INSERT")]

    # ------------------------------------------------------------------
    # DatabaseClient
    # ------------------------------------------------------------------

    async def execute(self, sql: str, params: dict | None = None) -> None:
        self.executed.append(sql)
        for needle in self.fail_on:
            if needle in sql:
                raise FakeDatabaseError(f"injected failure on {needle!r}")

        if match := _CREATE.match(sql):
            self._create(match.group("table"), match.group("body"))
        elif match := _ALTER.match(sql):
            self._alter(match.group("table"), match.group("op"), match.group("rest"))
        elif match := _DROP_TABLE.match(sql):
            self._drop_table(match.group("table"))
        elif match := _INSERT.match(sql):
            self._insert(match.group("table"), match.group("columns"), match.group("values"))
        else:
            raise FakeDatabaseError(f"unsupported statement: {sql}")

    async def fetch(self, sql: str, params: dict | None = None) -> list[dict]:
        if sql.startswith("SHOW FULL TABLES"):
            return [
                {f"Tables_in_{self.database}": name, "Table_type": "BASE TABLE"}
                for name in sorted(self.tables)
            ]
        if match := re.match(r"^SHOW COLUMNS FROM `([^`]+)`$", sql):
            return [self._show_column(col) for col in self._table(match.group(1))["columns"]]
        if match := re.match(r"^SHOW INDEX FROM `([^`]+)`$", sql):
            return [
                {"Key_name": index["name"], "Column_name": column, "Non_unique": 0 if index["unique"] else 1}
                for index in self._table(match.group(1))["indexes"]
                for column in index["columns"]
            ]
        if sql.startswith("SELECT CONSTRAINT_NAME"):
            wanted = (params or {}).get("table")
            return [
                {
                    "constraint_name": fk["name"],
                    "table_name": name,
                    "column_name": fk["column"],
                    "referenced_table": fk["ref_table"],
                    "referenced_column": fk["ref_column"],
                }
                for name, table in sorted(self.tables.items())
                if wanted in (None, name)
                for fk in table["foreign_keys"]
            ]
        if match := re.match(r"^SELECT \* FROM `([^`]+)`$", sql):
            return [dict(row) for row in self._table(match.group(1))["rows"]]
        raise FakeDatabaseError(f"unsupported query: {sql}")

    def escape_literal(self, value) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return str(int(value))
        if isinstance(value, (int, float)):
            return repr(value)
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        text = str(value).replace("\\", "\\\\").replace("'", "\\'")
        return f"'{text}'"

    async def close(self) -> None:
        self.closed = True

    # ------------------------------------------------------------------
    # Catalog changes
    # ------------------------------------------------------------------

    def _table(self, name: str) -> dict:
        if name not in self.tables:
            raise FakeDatabaseError(f"Table '{self.database}.{name}' doesn't exist")
        return self.tables[name]

    def _create(self, name: str, body: str) -> None:
        if name in self.tables:
            return
        table = {"columns": [], "indexes": [], "rows": [], "foreign_keys": []}
        for part in _split_top_level(body):
            if fk := _FOREIGN_KEY.match(part):
                ref_table = fk.group(2)
                if ref_table != name and ref_table not in self.tables:
                    raise FakeDatabaseError(f"Failed to open the referenced table '{ref_table}'")
                self._add_foreign_key(name, table, fk.group(1), ref_table, fk.group(3))
                continue
            column = parse_column_definition(part)
            table["columns"].append(column)
            self._add_indexes(table, column)
        self.tables[name] = table

    def _add_foreign_key(self, name: str, table: dict, column: str, ref_table: str, ref_column: str) -> None:
        self._constraints += 1
        table["foreign_keys"].append({
            "name": f"{name}_ibfk_{self._constraints}",
            "column": column,
            "ref_table": ref_table,
            "ref_column": ref_column,
        })

    def _referencing(self, name: str) -> list[str]:
        """Other tables holding a foreign key into *name*."""
        return [
            other for other, table in self.tables.items()
            if other != name and any(fk["ref_table"] == name for fk in table["foreign_keys"])
        ]

    def _drop_table(self, name: str) -> None:
        if name not in self.tables:
            return
        if children := self._referencing(name):
            raise FakeDatabaseError(
                f"Cannot drop table '{name}' referenced by a foreign key constraint "
                f"on table '{children[0]}'"
            )
        del self.tables[name]

    def _add_indexes(self, table: dict, column: dict) -> None:
        if column["primary_key"]:
            if any(index["name"] == "PRIMARY" for index in table["indexes"]):
                raise FakeDatabaseError("Multiple primary key defined")
            table["indexes"].append({"name": "PRIMARY", "columns": [column["name"]], "unique": True})
        if column["unique"]:
            existing = {index["name"] for index in table["indexes"]}
            index_name, n = column["name"], 2
            while index_name in existing:
                index_name, n = f"{column['name']}_{n}", n + 1
            table["indexes"].append({"name": index_name, "columns": [column["name"]], "unique": True})

    def _alter(self, name: str, op: str, rest: str) -> None:
        table = self._table(name)
        positions = {col["name"]: i for i, col in enumerate(table["columns"])}

        if op == "ADD COLUMN":
            column = parse_column_definition(rest)
            if column["name"] in positions:
                raise FakeDatabaseError(f"Duplicate column name '{column['name']}'")
            table["columns"].append(column)
            self._add_indexes(table, column)
            for row in table["rows"]:
                row[column["name"]] = column["default"]

        elif op == "ADD FOREIGN KEY":
            fk = _REFERENCES.match(rest)
            if fk is None:
                raise FakeDatabaseError(f"bad foreign key clause {rest!r}")
            if fk.group(1) not in positions:
                raise FakeDatabaseError(f"Key column '{fk.group(1)}' doesn't exist in table")
            self._table(fk.group(2))
            self._add_foreign_key(name, table, fk.group(1), fk.group(2), fk.group(3))

        elif op == "DROP FOREIGN KEY":
            constraint = _IDENT.match(rest).group(1)
            if constraint not in {fk["name"] for fk in table["foreign_keys"]}:
                raise FakeDatabaseError(f"Can't DROP '{constraint}'; check that column/key exists")
            table["foreign_keys"] = [fk for fk in table["foreign_keys"] if fk["name"] != constraint]

        elif op == "MODIFY COLUMN":
            column = parse_column_definition(rest)
            if column["name"] not in positions:
                raise FakeDatabaseError(f"Unknown column '{column['name']}'")
            self._replace_column(table, positions[column["name"]], column)

        elif op == "CHANGE COLUMN":
            ident = _IDENT.match(rest)
            old_name = ident.group(1).replace("``", "`")
            column = parse_column_definition(ident.group(2))
            if old_name not in positions:
                raise FakeDatabaseError(f"Unknown column '{old_name}'")
            if column["name"] != old_name and column["name"] in positions:
                raise FakeDatabaseError(f"Duplicate column name '{column['name']}'")
            for index in table["indexes"]:
                index["columns"] = [column["name"] if c == old_name else c for c in index["columns"]]
            for fk in table["foreign_keys"]:
                if fk["column"] == old_name:
                    fk["column"] = column["name"]
            for row in table["rows"]:
                row[column["name"]] = row.pop(old_name)
            self._replace_column(table, positions[old_name], column)

        elif op == "DROP COLUMN":
            column_name = _IDENT.match(rest).group(1)
            if column_name not in positions:
                raise FakeDatabaseError(f"Can't DROP '{column_name}'; check that column/key exists")
            if any(fk["column"] == column_name for fk in table["foreign_keys"]):
                raise FakeDatabaseError(f"Cannot drop column '{column_name}': needed in a foreign key constraint")
            del table["columns"][positions[column_name]]
            for index in table["indexes"]:
                index["columns"] = [c for c in index["columns"] if c != column_name]
            table["indexes"] = [index for index in table["indexes"] if index["columns"]]
            for row in table["rows"]:
                row.pop(column_name, None)

        elif op == "DROP INDEX":
            index_name = _IDENT.match(rest).group(1)
            if index_name not in {index["name"] for index in table["indexes"]}:
                raise FakeDatabaseError(f"Can't DROP '{index_name}'; check that column/key exists")
            table["indexes"] = [index for index in table["indexes"] if index["name"] != index_name]

        elif op == "DROP PRIMARY KEY":
            primary = next((index for index in table["indexes"] if index["name"] == "PRIMARY"), None)
            if primary is None:
                raise FakeDatabaseError("Can't DROP 'PRIMARY'; check that column/key exists")
            for col in table["columns"]:
                if col["name"] in primary["columns"] and col["auto_increment"]:
                    raise FakeDatabaseError(
                        "Incorrect table definition; there can be only one auto column "
                        "and it must be defined as a key"
                    )
            table["indexes"].remove(primary)

    def _replace_column(self, table: dict, position: int, column: dict) -> None:
        """Swap a column definition in place; existing indexes are kept."""
        has_primary = any(
            index["name"] == "PRIMARY" and column["name"] in index["columns"]
            for index in table["indexes"]
        )
        table["columns"][position] = column
        if column["primary_key"] and has_primary:
            raise FakeDatabaseError("Multiple primary key defined")
        self._add_indexes(table, column)
        if has_primary:
            column["not_null"] = True

    def _insert(self, name: str, columns: str, values: str) -> None:
        table = self._table(name)
        names = [part.strip().strip("`") for part in columns.split(",")]
        for group in _split_top_level(values):
            tokens = _split_top_level(group.strip()[1:-1])
            row = {col["name"]: col["default"] for col in table["columns"]}
            row.update(zip(names, (_parse_value(token) for token in tokens)))
            table["rows"].append(row)

    @staticmethod
    def _show_column(column: dict) -> dict:
        return {
            "Field": column["name"],
            "Type": column["type"],
            "Null": "NO" if column["not_null"] else "YES",
            "Key": "",
            "Default": column["default"],
            "Extra": "auto_increment" if column["auto_increment"] else "",
        }


@pytest.fixture
def fake_db():
    """Empty in-memory MySQL."""
    return FakeMySQL()


@pytest.fixture
def backup_store(tmp_path):
    """BackupStore rooted in a per-test temporary directory."""
    return BackupStore(tmp_path / "backups")


@pytest.fixture
def decline():
    """DecisionProvider that answers no to everything."""
    return FixedAnswer(False)
