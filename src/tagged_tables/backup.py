"""Snapshots of databases kept in a separate backup directory.

A backup is a consistent copy of the SQLite file (taken with the SQLite
online backup API) plus a copy of the metadata record whose id is rewritten
to the backup name. Restoring copies both back under a new database id.
"""

from __future__ import annotations

import re
from pathlib import Path

from tagged_tables.errors import ConflictError, NotFoundError
from tagged_tables.logging import get_logger
from tagged_tables.metadata import JsonMetadataStore, MetadataStore
from tagged_tables.storage import SQLiteStore
from tagged_tables.types import now_ms

logger = get_logger(__name__)

BACKUP_PREFIX = "backup_"
RESTORED_PREFIX = "restored_"

_COPY_PREFIX = re.compile(r"^(?:backup_|restored_)")


def backup_name_for(db_id: str, timestamp: int) -> str:
    """Derive ``backup_<base>_<timestamp>`` from a database id.

    ``<base>`` is the id with any backup/restore prefix removed, cut at the
    first underscore.
    """
    base = _COPY_PREFIX.sub("", db_id).split("_")[0]
    return f"{BACKUP_PREFIX}{base}_{timestamp}"


def restored_id_for(backup_name: str) -> str:
    if backup_name.startswith(BACKUP_PREFIX):
        backup_name = backup_name[len(BACKUP_PREFIX):]
    return f"{RESTORED_PREFIX}{backup_name}"


class BackupManager:
    """Creates, lists, restores and deletes database backups."""

    def __init__(
        self,
        data_dir: Path,
        backup_dir: Path,
        metadata: MetadataStore | None = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.backup_dir = Path(backup_dir)
        self.metadata = metadata if metadata is not None else JsonMetadataStore(self.data_dir)
        self.backups = JsonMetadataStore(self.backup_dir)

    def create(self, db_id: str) -> str:
        """Back up a database and return the backup name."""
        source = SQLiteStore.for_database(self.data_dir, db_id)
        if not source.exists():
            raise NotFoundError(f"Database '{db_id}' not found", identifier=db_id)
        meta = self.metadata.read(db_id)

        name = backup_name_for(db_id, now_ms())
        target = SQLiteStore.for_database(self.backup_dir, name)
        if target.exists():
            raise ConflictError(f"Backup '{name}' already exists", identifier=name)

        source.copy_to(target.path)
        meta.id = name
        meta.touch()
        try:
            self.backups.create(meta)
        except Exception:
            target.path.unlink(missing_ok=True)
            raise
        logger.info("Backed up database '%s' as '%s'", db_id, name)
        return name

    def list(self) -> list[str]:
        """Return the names of all backups, oldest name first."""
        suffix = SQLiteStore.SUFFIX
        return sorted(p.name[: -len(suffix)] for p in self.backup_dir.glob(f"*{suffix}"))

    def restore(self, name: str) -> str:
        """Restore a backup as a new database and return its id."""
        source = self._backup_store(name)
        new_id = restored_id_for(name)
        target = SQLiteStore.for_database(self.data_dir, new_id)
        if target.exists() or self.metadata.exists(new_id):
            raise ConflictError(f"Database '{new_id}' already exists", identifier=new_id)

        meta = self.backups.read(name)
        meta.id = new_id
        meta.touch()

        source.copy_to(target.path)
        try:
            self.metadata.create(meta)
        except Exception:
            target.path.unlink(missing_ok=True)
            raise
        logger.info("Restored backup '%s' as database '%s'", name, new_id)
        return new_id

    def delete(self, name: str) -> None:
        store = self._backup_store(name)
        store.path.unlink()
        self.backups.delete(name)
        logger.info("Deleted backup '%s'", name)

    def _backup_store(self, name: str) -> SQLiteStore:
        store = SQLiteStore.for_database(self.backup_dir, name)
        if not store.exists():
            raise NotFoundError(f"Backup '{name}' not found", identifier=name)
        return store
