"""SQLite storage for table rows.

``SQLiteStore`` owns one database file. All access goes through a scoped
``Session`` opened by ``connect()`` or ``transaction()``; the underlying
connection is closed on every exit path. Errors from ``sqlite3`` are wrapped
in ``StorageError`` with the operation and identifiers involved.
"""

from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator, Sequence

from tagged_tables.errors import StorageError
from tagged_tables.logging import get_logger
from tagged_tables.types import StorageType

logger = get_logger(__name__)


def quote_identifier(name: str) -> str:
    """Quote a table or column name for use in SQL text."""
    return '"' + name.replace('"', '""') + '"'


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def regexp(pattern: Any, value: Any) -> int:
    """SQLite ``REGEXP`` implementation: ``value REGEXP pattern``.

    Malformed patterns and NULL values match nothing.
    """
    if pattern is None or value is None:
        return 0
    try:
        compiled = _compile_pattern(pattern)
    except (re.error, TypeError):
        return 0
    return 1 if compiled.search(str(value)) else 0


class Session:
    """Storage operations bound to one open connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Sequence[Any] = (), action: str = "execute") -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, tuple(params))
        except (sqlite3.Error, OverflowError) as e:
            raise StorageError(f"Failed to {action}: {e}") from e

    # --- DDL ---

    def create_table(self, table: str, column_specs: Sequence[tuple[str, str]]) -> None:
        """Create a table from (column name, SQL column definition) pairs."""
        columns = ", ".join(f"{quote_identifier(name)} {spec}" for name, spec in column_specs)
        self.execute(
            f"CREATE TABLE {quote_identifier(table)} ({columns})",
            action=f"create table '{table}'",
        )

    def drop_table(self, table: str) -> None:
        self.execute(f"DROP TABLE {quote_identifier(table)}", action=f"drop table '{table}'")

    def rename_table(self, old: str, new: str) -> None:
        self.execute(
            f"ALTER TABLE {quote_identifier(old)} RENAME TO {quote_identifier(new)}",
            action=f"rename table '{old}' to '{new}'",
        )

    def add_column(self, table: str, column: str, storage_type: StorageType) -> None:
        self.execute(
            f"ALTER TABLE {quote_identifier(table)} "
            f"ADD COLUMN {quote_identifier(column)} {storage_type.value}",
            action=f"add column '{column}' to table '{table}'",
        )

    def drop_column(self, table: str, column: str) -> None:
        self.execute(
            f"ALTER TABLE {quote_identifier(table)} DROP COLUMN {quote_identifier(column)}",
            action=f"drop column '{column}' from table '{table}'",
        )

    def rename_column(self, table: str, old: str, new: str) -> None:
        self.execute(
            f"ALTER TABLE {quote_identifier(table)} "
            f"RENAME COLUMN {quote_identifier(old)} TO {quote_identifier(new)}",
            action=f"rename column '{old}' to '{new}' in table '{table}'",
        )

    # --- Introspection ---

    def table_names(self) -> list[str]:
        cursor = self.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name",
            action="list tables",
        )
        return [row["name"] for row in cursor.fetchall()]

    def table_exists(self, table: str) -> bool:
        cursor = self.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
            action=f"look up table '{table}'",
        )
        return cursor.fetchone() is not None

    def table_columns(self, table: str) -> list[str]:
        """Return physical column names as reported by ``PRAGMA table_info``."""
        cursor = self.execute(
            f"PRAGMA table_info({quote_identifier(table)})",
            action=f"inspect table '{table}'",
        )
        return [row["name"] for row in cursor.fetchall()]

    # --- Rows ---

    def query(
        self,
        table: str,
        where: str = "1",
        params: Sequence[Any] = (),
        order: str = "",
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        sql = f"SELECT * FROM {quote_identifier(table)} WHERE {where}"
        bound = list(params)
        if order:
            sql += f" {order}"
        if limit is not None or offset:
            sql += " LIMIT ? OFFSET ?"
            bound += [limit if limit is not None else -1, offset or 0]
        cursor = self.execute(sql, bound, action=f"query table '{table}'")
        return [dict(row) for row in cursor.fetchall()]

    def count(self, table: str, where: str = "1", params: Sequence[Any] = ()) -> int:
        cursor = self.execute(
            f"SELECT COUNT(*) AS n FROM {quote_identifier(table)} WHERE {where}",
            params,
            action=f"count rows in table '{table}'",
        )
        return int(cursor.fetchone()["n"])

    def insert(self, table: str, values: dict[str, Any]) -> int:
        names = ", ".join(quote_identifier(name) for name in values)
        placeholders = ", ".join("?" for _ in values)
        cursor = self.execute(
            f"INSERT INTO {quote_identifier(table)} ({names}) VALUES ({placeholders})",
            list(values.values()),
            action=f"insert into table '{table}'",
        )
        return int(cursor.lastrowid)

    def update(self, table: str, row_id: int, values: dict[str, Any]) -> int:
        assignments = ", ".join(f"{quote_identifier(name)} = ?" for name in values)
        cursor = self.execute(
            f"UPDATE {quote_identifier(table)} SET {assignments} WHERE \"id\" = ?",
            [*values.values(), row_id],
            action=f"update row {row_id} in table '{table}'",
        )
        return cursor.rowcount

    def delete(self, table: str, row_id: int) -> int:
        cursor = self.execute(
            f"DELETE FROM {quote_identifier(table)} WHERE \"id\" = ?",
            (row_id,),
            action=f"delete row {row_id} from table '{table}'",
        )
        return cursor.rowcount


class SQLiteStore:
    """Physical storage for one database file."""

    SUFFIX = ".sqlite"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @classmethod
    def for_database(cls, data_dir: Path, db_id: str) -> SQLiteStore:
        return cls(Path(data_dir) / f"{db_id}{cls.SUFFIX}")

    def exists(self) -> bool:
        return self.path.exists()

    @contextmanager
    def connect(self) -> Iterator[Session]:
        """Open a connection in autocommit mode with ``regexp`` registered."""
        try:
            conn = sqlite3.connect(str(self.path), isolation_level=None)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database file '{self.path}': {e}") from e
        conn.row_factory = sqlite3.Row
        conn.create_function("regexp", 2, regexp, deterministic=True)
        try:
            yield Session(conn)
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a connection and run the block inside one transaction.

        DDL is transactional in SQLite, so a block that raises leaves the
        physical schema untouched.
        """
        with self.connect() as session:
            session.execute("BEGIN IMMEDIATE", action="begin transaction")
            try:
                yield session
            except BaseException:
                if session.conn.in_transaction:
                    session.conn.execute("ROLLBACK")
                raise
            session.execute("COMMIT", action="commit transaction")

    def copy_to(self, destination: Path) -> None:
        """Write a consistent snapshot of the database to ``destination``."""
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as session:
            target = None
            try:
                target = sqlite3.connect(str(destination))
                session.conn.backup(target)
            except sqlite3.Error as e:
                raise StorageError(f"Failed to copy '{self.path}' to '{destination}': {e}") from e
            finally:
                if target is not None:
                    target.close()
