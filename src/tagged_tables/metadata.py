"""Persistent schema metadata.

Metadata is the single source of truth for column type, index, visibility,
tag vocabulary and custom rule. It is kept behind the ``MetadataStore``
interface so that the concurrency discipline is a property of the store:
``JsonMetadataStore`` keeps one JSON file per database, serializes writers
within a process, and detects lost updates through a version number checked
by ``compare_and_swap``. It does not lock across processes; two processes
writing the same database race on a last-writer-wins basis, and the loser
of a version check sees a ``ConflictError``.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from tagged_tables.errors import ConflictError, InvariantError, NotFoundError
from tagged_tables.logging import get_logger
from tagged_tables.types import (
    COLUMN_TYPE_NAMES,
    ColumnDefinition,
    ColumnType,
    DatabaseMetadata,
    TableDefinition,
    TagDefinition,
)

logger = get_logger(__name__)


class MetadataStore(ABC):
    """Read / write / compare-and-swap access to database metadata."""

    @abstractmethod
    def exists(self, db_id: str) -> bool:
        """Return whether metadata for the database exists."""

    @abstractmethod
    def read(self, db_id: str) -> DatabaseMetadata:
        """Load metadata for a database.

        Raises:
            NotFoundError: If no metadata is stored for the database.
        """

    @abstractmethod
    def create(self, metadata: DatabaseMetadata) -> DatabaseMetadata:
        """Store metadata for a new database.

        Raises:
            ConflictError: If metadata for the id already exists.
        """

    @abstractmethod
    def compare_and_swap(
        self, metadata: DatabaseMetadata, expected_version: int
    ) -> DatabaseMetadata:
        """Replace stored metadata if its version still equals ``expected_version``.

        On success ``metadata.version`` is advanced and returned.

        Raises:
            ConflictError: If another writer changed the metadata first.
        """

    @abstractmethod
    def rename(self, old_id: str, metadata: DatabaseMetadata) -> DatabaseMetadata:
        """Move metadata stored under ``old_id`` to ``metadata.id``."""

    @abstractmethod
    def delete(self, db_id: str) -> None:
        """Remove metadata for a database. Missing metadata is ignored."""

    @abstractmethod
    def list_ids(self) -> list[str]:
        """Return the ids of all databases with stored metadata."""

    def write(self, metadata: DatabaseMetadata) -> DatabaseMetadata:
        """Unconditionally replace stored metadata."""
        current = self.read(metadata.id)
        return self.compare_and_swap(metadata, current.version)


class JsonMetadataStore(MetadataStore):
    """Stores each database's metadata as ``<id>.meta.json`` in a directory."""

    SUFFIX = ".meta.json"

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def path_for(self, db_id: str) -> Path:
        return self.directory / f"{db_id}{self.SUFFIX}"

    def exists(self, db_id: str) -> bool:
        return self.path_for(db_id).exists()

    def read(self, db_id: str) -> DatabaseMetadata:
        path = self.path_for(db_id)
        if not path.exists():
            raise NotFoundError(f"Metadata for database '{db_id}' not found", identifier=db_id)
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return deserialize_metadata(data)

    def create(self, metadata: DatabaseMetadata) -> DatabaseMetadata:
        with self._lock:
            if self.exists(metadata.id):
                raise ConflictError(
                    f"Metadata for database '{metadata.id}' already exists",
                    identifier=metadata.id,
                )
            metadata.version = 1
            self._write_file(self.path_for(metadata.id), metadata)
        return metadata

    def compare_and_swap(
        self, metadata: DatabaseMetadata, expected_version: int
    ) -> DatabaseMetadata:
        with self._lock:
            current = self.read(metadata.id)
            if current.version != expected_version:
                raise ConflictError(
                    f"Metadata for database '{metadata.id}' was modified concurrently "
                    f"(expected version {expected_version}, found {current.version})",
                    identifier=metadata.id,
                )
            metadata.version = expected_version + 1
            self._write_file(self.path_for(metadata.id), metadata)
        return metadata

    def rename(self, old_id: str, metadata: DatabaseMetadata) -> DatabaseMetadata:
        with self._lock:
            if not self.exists(old_id):
                raise NotFoundError(f"Metadata for database '{old_id}' not found", identifier=old_id)
            if self.exists(metadata.id):
                raise ConflictError(
                    f"Metadata for database '{metadata.id}' already exists",
                    identifier=metadata.id,
                )
            metadata.version += 1
            self._write_file(self.path_for(metadata.id), metadata)
            self.path_for(old_id).unlink()
        return metadata

    def delete(self, db_id: str) -> None:
        with self._lock:
            path = self.path_for(db_id)
            if path.exists():
                path.unlink()

    def list_ids(self) -> list[str]:
        return sorted(
            p.name[: -len(self.SUFFIX)] for p in self.directory.glob(f"*{self.SUFFIX}")
        )

    def _write_file(self, path: Path, metadata: DatabaseMetadata) -> None:
        """Write via a temporary file so readers never see a partial document."""
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(serialize_metadata(metadata), f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Wrote metadata %s (version %d)", path.name, metadata.version)


def serialize_metadata(metadata: DatabaseMetadata) -> dict[str, Any]:
    """Serialize database metadata to a JSON-compatible dict."""
    return {
        "id": metadata.id,
        "displayName": metadata.display_name,
        "createdAt": metadata.created_at,
        "modifiedAt": metadata.modified_at,
        "description": metadata.description,
        "tags": list(metadata.tags),
        "hidden": metadata.hidden,
        "version": metadata.version,
        "tables": {
            name: _serialize_table(table) for name, table in metadata.tables.items()
        },
    }


def _serialize_table(table: TableDefinition) -> dict[str, Any]:
    return {
        "hidden": table.hidden,
        "columns": {
            name: _serialize_column(column) for name, column in table.columns.items()
        },
    }


def _serialize_column(column: ColumnDefinition) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "type": column.type.value,
        "hidden": column.hidden,
        "index": column.index,
    }
    if column.type.is_tag:
        entry["tags"] = [{"name": t.name, "description": t.description} for t in column.tags]
    elif column.type == ColumnType.CUSTOM:
        entry["rule"] = column.rule
    return entry


def deserialize_metadata(data: dict[str, Any]) -> DatabaseMetadata:
    """Rebuild database metadata from its JSON form.

    Raises:
        InvariantError: If a stored column type is not part of the catalog.
    """
    tables = {
        name: _deserialize_table(name, spec) for name, spec in data.get("tables", {}).items()
    }
    return DatabaseMetadata(
        id=data["id"],
        display_name=data.get("displayName", data["id"]),
        created_at=data.get("createdAt", ""),
        modified_at=data.get("modifiedAt", ""),
        description=data.get("description", ""),
        tags=list(data.get("tags", [])),
        hidden=bool(data.get("hidden", False)),
        version=int(data.get("version", 0)),
        tables=tables,
    )


def _deserialize_table(table_name: str, spec: dict[str, Any]) -> TableDefinition:
    columns = {}
    for position, (name, col_spec) in enumerate(spec.get("columns", {}).items()):
        type_name = col_spec.get("type")
        column_type = COLUMN_TYPE_NAMES.get(type_name)
        if column_type is None:
            raise InvariantError(
                f"Column '{name}' in table '{table_name}' has unknown stored type '{type_name}'",
                identifier=name,
            )
        columns[name] = ColumnDefinition(
            name=name,
            type=column_type,
            index=int(col_spec.get("index", position)),
            hidden=bool(col_spec.get("hidden", False)),
            tags=[
                TagDefinition(name=t["name"], description=t.get("description", ""))
                for t in col_spec.get("tags", [])
            ],
            rule=col_spec.get("rule", ""),
        )
    return TableDefinition(hidden=bool(spec.get("hidden", False)), columns=columns)
