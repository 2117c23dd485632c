"""Database lifecycle: create, list, rename and delete databases.

A database is a SQLite file plus its metadata record, both named by the
database id ``<sanitized display name>_<epoch ms>``.
"""

from __future__ import annotations

from pathlib import Path

from tagged_tables.errors import (
    ConflictError,
    InconsistentStateError,
    NotFoundError,
    ValidationError,
)
from tagged_tables.logging import get_logger
from tagged_tables.metadata import JsonMetadataStore, MetadataStore
from tagged_tables.names import sanitize_database_name
from tagged_tables.schema import SchemaEngine
from tagged_tables.storage import SQLiteStore
from tagged_tables.types import DatabaseMetadata, now_iso, now_ms

logger = get_logger(__name__)

DEFAULT_TABLE = "entries"


def make_database_id(display_name: str) -> str:
    return f"{sanitize_database_name(display_name)}_{now_ms()}"


class DatabaseManager:
    """Creates and manages the databases stored in one directory."""

    def __init__(self, data_dir: Path, metadata: MetadataStore | None = None) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.metadata = metadata if metadata is not None else JsonMetadataStore(self.data_dir)
        self.schema = SchemaEngine(self.data_dir, self.metadata)

    def create(self, display_name: str, description: str = "") -> DatabaseMetadata:
        """Create a database containing the default ``entries`` table."""
        if not isinstance(display_name, str) or not display_name.strip():
            raise ValidationError("Database name cannot be blank")

        db_id = make_database_id(display_name)
        store = SQLiteStore.for_database(self.data_dir, db_id)
        if store.exists() or self.metadata.exists(db_id):
            raise ConflictError(f"Database '{db_id}' already exists", identifier=db_id)

        stamp = now_iso()
        meta = DatabaseMetadata(
            id=db_id,
            display_name=display_name,
            created_at=stamp,
            modified_at=stamp,
            description=description,
        )

        # Opening a connection creates the file
        with store.connect():
            pass
        try:
            self.metadata.create(meta)
            self.schema.create_table(db_id, DEFAULT_TABLE)
        except Exception:
            self.metadata.delete(db_id)
            store.path.unlink(missing_ok=True)
            raise

        logger.info("Created database '%s' (%s)", db_id, display_name)
        return self.metadata.read(db_id)

    def list(self, include_hidden: bool = True) -> list[DatabaseMetadata]:
        """Return metadata for every database file in the data directory."""
        result = []
        for path in sorted(self.data_dir.glob(f"*{SQLiteStore.SUFFIX}")):
            meta = self.metadata.read(path.name[: -len(SQLiteStore.SUFFIX)])
            if include_hidden or not meta.hidden:
                result.append(meta)
        return result

    def get(self, db_id: str) -> DatabaseMetadata:
        self.schema.store_for(db_id)
        return self.metadata.read(db_id)

    def rename(self, db_id: str, display_name: str) -> DatabaseMetadata:
        """Give a database a new display name and the id derived from it.

        The file and metadata move together; if the metadata move fails the
        file is moved back.
        """
        if not isinstance(display_name, str) or not display_name.strip():
            raise ValidationError("Database name cannot be blank", identifier=db_id)

        old_store = self.schema.store_for(db_id)
        meta = self.metadata.read(db_id)
        new_id = make_database_id(display_name)
        new_store = SQLiteStore.for_database(self.data_dir, new_id)
        if new_store.exists() or self.metadata.exists(new_id):
            raise ConflictError(f"Database '{new_id}' already exists", identifier=new_id)

        old_store.path.rename(new_store.path)
        meta.id = new_id
        meta.display_name = display_name
        meta.touch()
        try:
            self.metadata.rename(db_id, meta)
        except Exception as e:
            try:
                new_store.path.rename(old_store.path)
            except OSError as restore_error:
                logger.error(
                    "Could not move '%s' back after failed rename: %s", new_store.path, restore_error
                )
                raise InconsistentStateError(
                    f"Database '{db_id}' is inconsistent after failed rename: metadata "
                    f"could not be moved ({e}) and the file could not be restored "
                    f"({restore_error})",
                    identifier=db_id,
                ) from restore_error
            logger.warning("Rename of database '%s' failed; file moved back", db_id)
            raise

        logger.info("Renamed database '%s' to '%s'", db_id, new_id)
        return meta

    def set_visibility(self, db_id: str, hidden: bool) -> DatabaseMetadata:
        self.schema.store_for(db_id)
        original = self.metadata.read(db_id)
        updated = original.copy()
        updated.hidden = bool(hidden)
        updated.touch()
        return self.metadata.compare_and_swap(updated, original.version)

    def delete(self, db_id: str) -> None:
        store = SQLiteStore.for_database(self.data_dir, db_id)
        if not store.exists() and not self.metadata.exists(db_id):
            raise NotFoundError(f"Database '{db_id}' not found", identifier=db_id)
        store.path.unlink(missing_ok=True)
        self.metadata.delete(db_id)
        logger.info("Deleted database '%s'", db_id)
