"""Row access: validated writes and compiled searches over one table."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tagged_tables.errors import NotFoundError, ValidationError
from tagged_tables.logging import get_logger
from tagged_tables.names import normalize_name
from tagged_tables.schema import SchemaEngine
from tagged_tables.search import CompiledFilter, compile_order, compile_search
from tagged_tables.types import ColumnDefinition, TableDefinition, now_ms
from tagged_tables.validation import validate

logger = get_logger(__name__)

# Keys a caller can never write through create_row / update_row
_SKIPPED_KEYS = frozenset({"id", "date_modified", "hidden"})

_VISIBLE_ONLY = CompiledFilter('"hidden" = ?', [0])


@dataclass
class SearchOptions:
    """Parameters of a row search."""

    query: str | None = None
    sort: str | None = None
    descending: bool = False
    random: bool = False
    limit: int | None = None
    offset: int = 0
    include_hidden: bool = False


@dataclass
class SearchResult:
    """One page of matching rows.

    Attributes:
        rows: The rows on this page.
        total: Rows in the table, visibility filter applied.
        filtered: Rows matching the search, before pagination.
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    filtered: int = 0


class RowManager:
    """Reads and writes rows of the tables managed by a ``SchemaEngine``."""

    def __init__(self, schema: SchemaEngine) -> None:
        self.schema = schema

    def create_row(self, db_id: str, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Validate ``data`` and insert it as a new row.

        Unknown columns are skipped with a warning. ``title`` is required.
        New rows are always visible; ``date_created`` may be supplied.
        """
        name, definition = self._table(db_id, table)
        incoming = _normalize_keys(data, _SKIPPED_KEYS)
        _require_title(incoming, required=True)

        now = now_ms()
        values: dict[str, Any] = {"date_created": now, "date_modified": now, "hidden": 0}
        for key, value in incoming.items():
            column = definition.columns.get(key)
            if column is None:
                logger.warning("Ignoring unknown column '%s' for table '%s'", key, name)
                continue
            values[key] = _validated(column, value)

        store = self.schema.store_for(db_id)
        with store.transaction() as session:
            row_id = session.insert(name, values)
            rows = session.query(name, '"id" = ?', [row_id])
        return rows[0]

    def get_row(self, db_id: str, table: str, row_id: int) -> dict[str, Any]:
        name, _ = self._table(db_id, table)
        with self.schema.store_for(db_id).connect() as session:
            rows = session.query(name, '"id" = ?', [row_id])
        if not rows:
            raise NotFoundError(f"Row {row_id} not found in table '{name}'", identifier=str(row_id))
        return rows[0]

    def update_row(self, db_id: str, table: str, row_id: int, data: dict[str, Any]) -> dict[str, Any]:
        """Validate and apply a partial update.

        ``id``, ``date_modified`` and ``hidden`` are skipped; use
        ``set_row_visibility`` for the latter.

        Raises:
            ValidationError: If a key names no column or a value is invalid.
            NotFoundError: If the row does not exist.
        """
        name, definition = self._table(db_id, table)
        incoming = _normalize_keys(data, _SKIPPED_KEYS)
        _require_title(incoming, required=False)

        values: dict[str, Any] = {}
        for key, value in incoming.items():
            column = definition.columns.get(key)
            if column is None:
                raise ValidationError(
                    f"Column '{key}' does not exist in table '{name}'", identifier=key
                )
            values[key] = _validated(column, value)
        values["date_modified"] = now_ms()

        return self._write(db_id, name, row_id, values)

    def set_row_visibility(self, db_id: str, table: str, row_id: int, hidden: bool | int) -> dict[str, Any]:
        if hidden not in (0, 1):
            raise ValidationError(f"Row visibility must be 0 or 1, got {hidden!r}")
        name, _ = self._table(db_id, table)
        return self._write(db_id, name, row_id, {"hidden": int(hidden), "date_modified": now_ms()})

    def delete_row(self, db_id: str, table: str, row_id: int) -> None:
        name, _ = self._table(db_id, table)
        with self.schema.store_for(db_id).transaction() as session:
            if session.delete(name, row_id) == 0:
                raise NotFoundError(
                    f"Row {row_id} not found in table '{name}'", identifier=str(row_id)
                )

    def search_rows(self, db_id: str, table: str, options: SearchOptions | None = None) -> SearchResult:
        """Run a search and return one page of rows with match counts.

        Raises:
            ValidationError: For an unknown sort field or negative limit/offset.
        """
        options = options or SearchOptions()
        for label, value in (("limit", options.limit), ("offset", options.offset)):
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
                raise ValidationError(f"{label} must be a non-negative integer, got {value!r}")

        name, definition = self._table(db_id, table)
        columns = definition.ordered_columns()
        order = compile_order(options.sort, columns, options.descending, options.random)

        visibility = CompiledFilter() if options.include_hidden else _VISIBLE_ONLY
        matched = visibility.and_(compile_search(options.query, columns))

        with self.schema.store_for(db_id).connect() as session:
            total = session.count(name, visibility.where, visibility.params)
            filtered = session.count(name, matched.where, matched.params)
            rows = session.query(
                name, matched.where, matched.params, order, options.limit, options.offset
            )
        return SearchResult(rows=rows, total=total, filtered=filtered)

    def _table(self, db_id: str, table: str) -> tuple[str, TableDefinition]:
        name = normalize_name(table)
        return name, self.schema.get_table(db_id, name)

    def _write(self, db_id: str, table: str, row_id: int, values: dict[str, Any]) -> dict[str, Any]:
        with self.schema.store_for(db_id).transaction() as session:
            if session.update(table, row_id, values) == 0:
                raise NotFoundError(
                    f"Row {row_id} not found in table '{table}'", identifier=str(row_id)
                )
            return session.query(table, '"id" = ?', [row_id])[0]


def _normalize_keys(data: dict[str, Any], skipped: frozenset[str]) -> dict[str, Any]:
    out = {}
    for key, value in data.items():
        name = normalize_name(key)
        if name not in skipped:
            out[name] = value
    return out


def _require_title(values: dict[str, Any], required: bool) -> None:
    if "title" not in values:
        if required:
            raise ValidationError("Title is required", identifier="title")
        return
    title = values["title"]
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title is required and cannot be blank", identifier="title")


def _validated(column: ColumnDefinition, value: Any) -> Any:
    # None clears a value; title was checked separately
    if value is None:
        return None
    return validate(column, value)
