"""Tests for database lifecycle management."""

import pytest

from tagged_tables.databases import DatabaseManager
from tagged_tables.errors import ConflictError, InconsistentStateError, NotFoundError, ValidationError
from tagged_tables.metadata import JsonMetadataStore
from tagged_tables.rows import RowManager
from tagged_tables.storage import SQLiteStore


class TestDatabaseManager:
    """Tests for DatabaseManager."""

    def test_create(self, tmp_path):
        """Test creating a database writes the file, metadata and entries table."""
        manager = DatabaseManager(tmp_path)
        meta = manager.create("My Notes", description="scratch pad")
        assert meta.id.startswith("my_notes_")
        assert meta.display_name == "My Notes"
        assert meta.description == "scratch pad"
        assert meta.version >= 1
        assert (tmp_path / f"{meta.id}.sqlite").exists()
        assert (tmp_path / f"{meta.id}.meta.json").exists()
        assert list(manager.schema.list_tables(meta.id)) == ["entries"]

    def test_create_blank_name(self, tmp_path):
        """Test blank display names are rejected."""
        with pytest.raises(ValidationError):
            DatabaseManager(tmp_path).create("  ")

    def test_list_and_get(self, tmp_path):
        """Test listing and fetching databases."""
        manager = DatabaseManager(tmp_path)
        first = manager.create("Alpha")
        second = manager.create("Beta")
        assert {m.id for m in manager.list()} == {first.id, second.id}
        assert manager.get(first.id).display_name == "Alpha"

    def test_get_missing(self, tmp_path):
        """Test fetching an unknown database is NotFound."""
        with pytest.raises(NotFoundError):
            DatabaseManager(tmp_path).get("ghost_1")

    def test_visibility(self, tmp_path):
        """Test hidden databases are skipped unless requested."""
        manager = DatabaseManager(tmp_path)
        meta = manager.create("Alpha")
        manager.set_visibility(meta.id, True)
        assert manager.list(include_hidden=False) == []
        assert [m.id for m in manager.list()] == [meta.id]

    def test_rename(self, tmp_path):
        """Test renaming moves the file and metadata together."""
        manager = DatabaseManager(tmp_path)
        meta = manager.create("Alpha")
        RowManager(manager.schema).create_row(meta.id, "entries", {"title": "kept"})

        renamed = manager.rename(meta.id, "Gamma Ray")
        assert renamed.id.startswith("gamma_ray_")
        assert renamed.display_name == "Gamma Ray"
        assert not (tmp_path / f"{meta.id}.sqlite").exists()
        assert not (tmp_path / f"{meta.id}.meta.json").exists()
        assert RowManager(manager.schema).get_row(renamed.id, "entries", 1)["title"] == "kept"

    def test_rename_rolls_back_file(self, tmp_path):
        """Test a failed metadata move puts the file back."""

        class BrokenRename(JsonMetadataStore):
            def rename(self, old_id, metadata):
                raise ConflictError("taken", identifier=metadata.id)

        manager = DatabaseManager(tmp_path, BrokenRename(tmp_path))
        meta = manager.create("Alpha")
        with pytest.raises(ConflictError):
            manager.rename(meta.id, "Beta")
        assert (tmp_path / f"{meta.id}.sqlite").exists()
        assert [m.id for m in manager.list()] == [meta.id]

    def test_rename_unrecoverable(self, tmp_path, monkeypatch):
        """Test a rename that cannot be undone reports inconsistency."""

        class BrokenRename(JsonMetadataStore):
            def rename(self, old_id, metadata):
                # Block the way back
                SQLiteStore.for_database(tmp_path, old_id).path.mkdir()
                (SQLiteStore.for_database(tmp_path, old_id).path / "x").touch()
                raise ConflictError("taken", identifier=metadata.id)

        manager = DatabaseManager(tmp_path, BrokenRename(tmp_path))
        meta = manager.create("Alpha")
        with pytest.raises(InconsistentStateError):
            manager.rename(meta.id, "Beta")

    def test_delete(self, tmp_path):
        """Test deleting removes the file and metadata."""
        manager = DatabaseManager(tmp_path)
        meta = manager.create("Alpha")
        manager.delete(meta.id)
        assert manager.list() == []
        with pytest.raises(NotFoundError):
            manager.delete(meta.id)
