"""Schema metadata engine: tables and typed column definitions.

Column definitions live in the metadata store and are kept consistent with
the physical SQLite tables. Structural operations run their DDL inside a
SQLite transaction and write metadata (compare-and-swap on the version read
at the start) before committing, so a failed metadata write leaves the
physical schema untouched. If the commit itself fails after metadata was
written, the previous metadata is restored; if that also fails an
``InconsistentStateError`` is raised.

Column indices of a table always form a permutation of ``0..N-1``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, TypeVar

from tagged_tables.errors import (
    ConflictError,
    InconsistentStateError,
    NotFoundError,
    ProtectedColumnError,
    ValidationError,
)
from tagged_tables.logging import get_logger
from tagged_tables.metadata import JsonMetadataStore, MetadataStore
from tagged_tables.names import normalize_name
from tagged_tables.storage import Session, SQLiteStore
from tagged_tables.types import (
    PROTECTED_COLUMN_NAMES,
    ColumnDefinition,
    ColumnType,
    DatabaseMetadata,
    TableDefinition,
    TagDefinition,
    parse_column_type,
    protected_column_definitions,
)
from tagged_tables.validation import compile_rule

logger = get_logger(__name__)

T = TypeVar("T")

# Physical definitions for the protected columns of every table
PROTECTED_COLUMN_SPECS: tuple[tuple[str, str], ...] = (
    ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
    ("title", "TEXT NOT NULL"),
    ("content", "TEXT"),
    ("date_created", "INTEGER"),
    ("date_modified", "INTEGER"),
    ("hidden", "INTEGER NOT NULL DEFAULT 0"),
)


class SchemaEngine:
    """Creates, mutates and reorders tables and columns of a database."""

    def __init__(self, data_dir: Path, metadata: MetadataStore | None = None) -> None:
        """Initialize the engine.

        Args:
            data_dir: Directory holding the database files.
            metadata: Metadata store; defaults to JSON files in ``data_dir``.
        """
        self.data_dir = Path(data_dir)
        self.metadata = metadata if metadata is not None else JsonMetadataStore(self.data_dir)

    def store_for(self, db_id: str) -> SQLiteStore:
        """Return the physical store of a database.

        Raises:
            NotFoundError: If the database file does not exist.
        """
        store = SQLiteStore.for_database(self.data_dir, db_id)
        if not store.exists():
            raise NotFoundError(f"Database '{db_id}' not found", identifier=db_id)
        return store

    # --- Tables ---

    def list_tables(self, db_id: str) -> dict[str, TableDefinition]:
        return dict(sorted(self.metadata.read(db_id).tables.items()))

    def get_table(self, db_id: str, table: str) -> TableDefinition:
        return self.metadata.read(db_id).get_table(normalize_name(table))

    def create_table(self, db_id: str, table: str) -> TableDefinition:
        """Create a table holding only the protected columns."""
        name = _identifier(table, "Table")
        if name.startswith("sqlite_"):
            raise ValidationError(f"Table name '{name}' is reserved", identifier=name)

        def mutate(meta: DatabaseMetadata, session: Session) -> TableDefinition:
            if name in meta.tables or session.table_exists(name):
                raise ConflictError(
                    f"Table '{name}' already exists in database '{db_id}'", identifier=name
                )
            session.create_table(name, PROTECTED_COLUMN_SPECS)
            meta.tables[name] = TableDefinition(columns=protected_column_definitions())
            return meta.tables[name]

        result = self._apply_structural(db_id, f"create table '{name}'", mutate)
        logger.info("Created table '%s' in database '%s'", name, db_id)
        return result

    def rename_table(self, db_id: str, old: str, new: str) -> None:
        old_name = normalize_name(old)
        new_name = _identifier(new, "Table")

        def mutate(meta: DatabaseMetadata, session: Session) -> None:
            table = meta.get_table(old_name)
            if new_name in meta.tables or session.table_exists(new_name):
                raise ConflictError(
                    f"Table '{new_name}' already exists in database '{db_id}'",
                    identifier=new_name,
                )
            session.rename_table(old_name, new_name)
            del meta.tables[old_name]
            meta.tables[new_name] = table

        self._apply_structural(db_id, f"rename table '{old_name}'", mutate)
        logger.info("Renamed table '%s' to '%s' in database '%s'", old_name, new_name, db_id)

    def set_table_visibility(self, db_id: str, table: str, hidden: bool) -> None:
        name = normalize_name(table)

        def mutate(meta: DatabaseMetadata) -> None:
            meta.get_table(name).hidden = hidden

        self._apply_metadata(db_id, mutate)

    def delete_table(self, db_id: str, table: str) -> None:
        name = normalize_name(table)

        def mutate(meta: DatabaseMetadata, session: Session) -> None:
            meta.get_table(name)
            if session.table_exists(name):
                session.drop_table(name)
            del meta.tables[name]

        self._apply_structural(db_id, f"delete table '{name}'", mutate)
        logger.info("Deleted table '%s' from database '%s'", name, db_id)

    def check_table(self, db_id: str, table: str) -> list[str]:
        """Compare metadata with the physical table and describe any mismatch."""
        name = normalize_name(table)
        definition = self.get_table(db_id, name)
        with self.store_for(db_id).connect() as session:
            if not session.table_exists(name):
                return [f"table '{name}' is missing from storage"]
            physical = set(session.table_columns(name))
        problems = [
            f"column '{col}' is missing from storage"
            for col in sorted(definition.columns)
            if col not in physical
        ]
        problems += [
            f"column '{col}' has no metadata"
            for col in sorted(physical - set(definition.columns))
        ]
        indices = sorted(c.index for c in definition.columns.values())
        if indices != list(range(len(indices))):
            problems.append(f"column indices {indices} are not contiguous")
        return problems

    # --- Columns ---

    def list_columns(self, db_id: str, table: str) -> list[ColumnDefinition]:
        """Return a table's columns ordered by index."""
        return self.get_table(db_id, table).ordered_columns()

    def get_column(self, db_id: str, table: str, column: str) -> ColumnDefinition:
        table_name = normalize_name(table)
        return self.get_table(db_id, table_name).get_column(normalize_name(column), table_name)

    def create_column(
        self,
        db_id: str,
        table: str,
        column: str,
        column_type: str | ColumnType,
        hidden: bool = False,
        index: int | None = None,
    ) -> ColumnDefinition:
        """Add a typed column.

        Without an explicit index the column is appended. With one, columns
        at or above that index move up by one.
        """
        table_name = normalize_name(table)
        name = _identifier(column, "Column")
        resolved_type = parse_column_type(column_type)

        def mutate(meta: DatabaseMetadata, session: Session) -> ColumnDefinition:
            definition = meta.get_table(table_name)
            if name in definition.columns:
                raise ConflictError(
                    f"Column '{name}' already exists in table '{table_name}'", identifier=name
                )
            count = len(definition.columns)
            position = count if index is None else index
            if not 0 <= position <= count:
                raise ValidationError(
                    f"Column index {position} is out of range 0..{count}", identifier=name
                )
            displaced = [c for c in definition.columns.values() if c.index >= position]
            _ensure_not_displacing(displaced)

            session.add_column(table_name, name, resolved_type.storage_type)

            for other in displaced:
                other.index += 1
            definition.columns[name] = ColumnDefinition(
                name=name, type=resolved_type, index=position, hidden=hidden
            )
            return definition.columns[name]

        result = self._apply_structural(db_id, f"create column '{name}'", mutate)
        logger.info(
            "Created %s column '%s' at index %d in %s.%s",
            resolved_type.value, name, result.index, db_id, table_name,
        )
        return result

    def rename_or_retype_column(
        self,
        db_id: str,
        table: str,
        column: str,
        new_name: str | None = None,
        new_type: str | ColumnType | None = None,
    ) -> ColumnDefinition:
        """Rename and/or retype a column; rename is applied first.

        Retyping drops and re-adds the physical column, so existing values in
        it are lost. Tags and rules reset; index and visibility are kept.
        """
        table_name = normalize_name(table)
        old_name = normalize_name(column)
        target_name = _identifier(new_name, "Column") if new_name is not None else None
        target_type = parse_column_type(new_type) if new_type is not None else None
        if target_name is None and target_type is None:
            raise ValidationError(
                f"Nothing to change for column '{old_name}': give a new name or type",
                identifier=old_name,
            )
        _ensure_unprotected(old_name, "renamed or retyped")

        def mutate(meta: DatabaseMetadata, session: Session) -> ColumnDefinition:
            definition = meta.get_table(table_name)
            col = definition.get_column(old_name, table_name)
            current = old_name

            if target_name is not None and target_name != old_name:
                if target_name in definition.columns:
                    raise ConflictError(
                        f"Column '{target_name}' already exists in table '{table_name}'",
                        identifier=target_name,
                    )
                session.rename_column(table_name, old_name, target_name)
                del definition.columns[old_name]
                col.name = target_name
                definition.columns[target_name] = col
                current = target_name

            if target_type is not None and target_type != col.type:
                session.drop_column(table_name, current)
                session.add_column(table_name, current, target_type.storage_type)
                logger.warning(
                    "Retyped column '%s' in %s.%s from %s to %s; existing values were discarded",
                    current, db_id, table_name, col.type.value, target_type.value,
                )
                col.type = target_type
                col.reset_extras()
            return col

        return self._apply_structural(db_id, f"alter column '{old_name}'", mutate)

    def set_column_visibility(
        self, db_id: str, table: str, column: str, hidden: bool
    ) -> ColumnDefinition:
        table_name = normalize_name(table)
        name = normalize_name(column)

        def mutate(meta: DatabaseMetadata) -> ColumnDefinition:
            col = meta.get_table(table_name).get_column(name, table_name)
            col.hidden = hidden
            return col

        return self._apply_metadata(db_id, mutate)

    def swap_column_index(
        self, db_id: str, table: str, column: str, target_index: int
    ) -> ColumnDefinition:
        """Trade index values with whichever column holds ``target_index``."""
        table_name = normalize_name(table)
        name = normalize_name(column)
        _ensure_unprotected(name, "moved")

        def mutate(meta: DatabaseMetadata) -> ColumnDefinition:
            definition = meta.get_table(table_name)
            col = definition.get_column(name, table_name)
            other = definition.column_at(target_index)
            if other is None:
                raise NotFoundError(
                    f"No column at index {target_index} in table '{table_name}'",
                    identifier=str(target_index),
                )
            _ensure_unprotected(other.name, "moved")
            col.index, other.index = other.index, col.index
            return col

        return self._apply_metadata(db_id, mutate)

    def move_column_index(
        self, db_id: str, table: str, column: str, new_index: int
    ) -> ColumnDefinition:
        """Move a column to ``new_index``, shifting the columns in between."""
        table_name = normalize_name(table)
        name = normalize_name(column)
        _ensure_unprotected(name, "moved")

        current = self.get_column(db_id, table_name, name)
        if current.index == new_index:
            return current

        def mutate(meta: DatabaseMetadata) -> ColumnDefinition:
            definition = meta.get_table(table_name)
            col = definition.get_column(name, table_name)
            count = len(definition.columns)
            if not 0 <= new_index < count:
                raise ValidationError(
                    f"Column index {new_index} is out of range 0..{count - 1}", identifier=name
                )
            old_index = col.index
            if new_index > old_index:
                shifted = [c for c in definition.columns.values() if old_index < c.index <= new_index]
                step = -1
            else:
                shifted = [c for c in definition.columns.values() if new_index <= c.index < old_index]
                step = 1
            _ensure_not_displacing(shifted)
            for other in shifted:
                other.index += step
            col.index = new_index
            return col

        return self._apply_metadata(db_id, mutate)

    def delete_column(self, db_id: str, table: str, column: str) -> None:
        """Drop a column and close the gap it leaves in the index order."""
        table_name = normalize_name(table)
        name = normalize_name(column)
        _ensure_unprotected(name, "deleted")

        def mutate(meta: DatabaseMetadata, session: Session) -> None:
            definition = meta.get_table(table_name)
            col = definition.get_column(name, table_name)
            session.drop_column(table_name, name)
            del definition.columns[name]
            for other in definition.columns.values():
                if other.index > col.index:
                    other.index -= 1

        self._apply_structural(db_id, f"delete column '{name}'", mutate)
        logger.info("Deleted column '%s' from %s.%s", name, db_id, table_name)

    # --- Tags and rules ---

    def register_tag(
        self, db_id: str, table: str, column: str, tag: str, description: str = ""
    ) -> ColumnDefinition:
        table_name = normalize_name(table)
        name = normalize_name(column)
        tag_name = _identifier(tag, "Tag")
        _ensure_unprotected(name, "given tags")

        def mutate(meta: DatabaseMetadata) -> ColumnDefinition:
            col = _tag_column(meta.get_table(table_name), name, table_name)
            if col.has_tag(tag_name):
                raise ConflictError(
                    f"Tag '{tag_name}' is already registered in column '{name}'",
                    identifier=tag_name,
                )
            col.tags.append(TagDefinition(name=tag_name, description=description))
            return col

        return self._apply_metadata(db_id, mutate)

    def unregister_tag(self, db_id: str, table: str, column: str, tag: str) -> ColumnDefinition:
        """Remove a tag from a vocabulary. Rows already holding it keep it."""
        table_name = normalize_name(table)
        name = normalize_name(column)
        tag_name = normalize_name(tag)
        _ensure_unprotected(name, "given tags")

        current = _tag_column(self.get_table(db_id, table_name), name, table_name)
        if not current.has_tag(tag_name):
            return current

        def mutate(meta: DatabaseMetadata) -> ColumnDefinition:
            col = _tag_column(meta.get_table(table_name), name, table_name)
            col.tags = [t for t in col.tags if t.name != tag_name]
            return col

        return self._apply_metadata(db_id, mutate)

    def update_custom_rule(self, db_id: str, table: str, column: str, rule: str) -> ColumnDefinition:
        table_name = normalize_name(table)
        name = normalize_name(column)
        _ensure_unprotected(name, "given a rule")

        def mutate(meta: DatabaseMetadata) -> ColumnDefinition:
            col = meta.get_table(table_name).get_column(name, table_name)
            if col.type != ColumnType.CUSTOM:
                raise ValidationError(
                    f"Column '{name}' is a {col.type.value} column; rules apply to custom columns",
                    identifier=name,
                )
            compile_rule(col, rule)
            col.rule = rule
            return col

        return self._apply_metadata(db_id, mutate)

    # --- Persistence ---

    def _apply_metadata(self, db_id: str, mutate: Callable[[DatabaseMetadata], T]) -> T:
        """Apply a metadata-only change and persist it."""
        original = self.metadata.read(db_id)
        updated = original.copy()
        result = mutate(updated)
        updated.touch()
        self.metadata.compare_and_swap(updated, original.version)
        return result

    def _apply_structural(
        self,
        db_id: str,
        action: str,
        mutate: Callable[[DatabaseMetadata, Session], T],
    ) -> T:
        """Apply a change touching both the physical table and metadata."""
        store = self.store_for(db_id)
        original = self.metadata.read(db_id)
        updated = original.copy()
        written = False
        try:
            with store.transaction() as session:
                result = mutate(updated, session)
                updated.touch()
                self.metadata.compare_and_swap(updated, original.version)
                written = True
        except Exception as e:
            if written:
                self._restore_metadata(original, updated, action, e)
            raise
        return result

    def _restore_metadata(
        self,
        original: DatabaseMetadata,
        updated: DatabaseMetadata,
        action: str,
        cause: Exception,
    ) -> None:
        """Undo a metadata write whose physical change failed to commit."""
        logger.warning(
            "Commit failed during %s on database '%s'; restoring metadata", action, original.id
        )
        try:
            self.metadata.compare_and_swap(original.copy(), updated.version)
        except Exception as restore_error:
            logger.error(
                "Metadata restore failed during %s on database '%s': %s",
                action, original.id, restore_error,
            )
            raise InconsistentStateError(
                f"Database '{original.id}' is inconsistent after failed {action}: "
                f"storage rejected the change ({cause}) and metadata could not be "
                f"restored ({restore_error})",
                identifier=original.id,
            ) from restore_error


def _identifier(raw: Any, what: str) -> str:
    """Normalize a user-supplied name, rejecting empty results."""
    if not isinstance(raw, str):
        raise ValidationError(f"{what} name must be a string, got {raw!r}")
    name = normalize_name(raw)
    if not name:
        raise ValidationError(f"{what} name cannot be blank", identifier=raw)
    return name


def _ensure_unprotected(name: str, action: str) -> None:
    if name in PROTECTED_COLUMN_NAMES:
        raise ProtectedColumnError(
            f"Column '{name}' is protected and cannot be {action}", identifier=name
        )


def _ensure_not_displacing(columns: list[ColumnDefinition]) -> None:
    for col in columns:
        if col.is_protected:
            raise ProtectedColumnError(
                f"Column '{col.name}' is protected and cannot be moved from index {col.index}",
                identifier=col.name,
            )


def _tag_column(definition: TableDefinition, name: str, table_name: str) -> ColumnDefinition:
    col = definition.get_column(name, table_name)
    if not col.type.is_tag:
        raise ValidationError(
            f"Column '{name}' is a {col.type.value} column; tags apply to tag columns",
            identifier=name,
        )
    return col
