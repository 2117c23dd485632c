"""Tests for the SQLite storage layer."""

import pytest

from tagged_tables.errors import StorageError
from tagged_tables.schema import PROTECTED_COLUMN_SPECS
from tagged_tables.storage import SQLiteStore, quote_identifier, regexp


@pytest.fixture
def store(tmp_path):
    """Create a store holding one table of protected columns."""
    store = SQLiteStore(tmp_path / "test.sqlite")
    with store.transaction() as session:
        session.create_table("items", PROTECTED_COLUMN_SPECS)
    return store


class TestRegexp:
    """Tests for the REGEXP implementation."""

    def test_match(self):
        """Test a matching pattern returns 1."""
        assert regexp("^ab", "abc") == 1
        assert regexp("z", "abc") == 0

    def test_non_text_value(self):
        """Test numeric values are matched as text."""
        assert regexp(r"^\d+$", 42) == 1

    def test_null_and_malformed(self):
        """Test NULL values and malformed patterns match nothing."""
        assert regexp("a", None) == 0
        assert regexp(None, "a") == 0
        assert regexp("([", "([") == 0


class TestSession:
    """Tests for Session operations."""

    def test_quote_identifier(self):
        """Test embedded quotes are doubled."""
        assert quote_identifier('we"ird') == '"we""ird"'

    def test_insert_query_count(self, store):
        """Test inserting rows and reading them back with paging."""
        with store.transaction() as session:
            for n in range(5):
                session.insert("items", {"title": f"item {n}", "hidden": n % 2})
        with store.connect() as session:
            assert session.count("items") == 5
            assert session.count("items", '"hidden" = ?', [0]) == 3
            page = session.query("items", order='ORDER BY "id" DESC', limit=2, offset=1)
            assert [row["title"] for row in page] == ["item 3", "item 2"]
            rest = session.query("items", order='ORDER BY "id"', offset=3)
            assert [row["title"] for row in rest] == ["item 3", "item 4"]

    def test_regexp_registered(self, store):
        """Test REGEXP is usable in queries."""
        with store.transaction() as session:
            session.insert("items", {"title": "alpha"})
            session.insert("items", {"title": "beta"})
        with store.connect() as session:
            rows = session.query("items", '"title" REGEXP ?', ["^b"])
        assert [row["title"] for row in rows] == ["beta"]

    def test_update_and_delete(self, store):
        """Test rowcounts from update and delete."""
        with store.transaction() as session:
            row_id = session.insert("items", {"title": "x"})
            assert session.update("items", row_id, {"title": "y"}) == 1
            assert session.update("items", 999, {"title": "y"}) == 0
            assert session.delete("items", row_id) == 1

    def test_transaction_rolls_back(self, store):
        """Test an exception inside a transaction undoes DDL and rows."""
        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.insert("items", {"title": "x"})
                session.create_table("other", [("id", "INTEGER")])
                raise RuntimeError("boom")
        with store.connect() as session:
            assert session.count("items") == 0
            assert session.table_names() == ["items"]

    def test_errors_are_wrapped(self, store):
        """Test sqlite errors surface as StorageError with context."""
        with pytest.raises(StorageError) as exc_info:
            with store.connect() as session:
                session.drop_column("items", "nope")
        assert "nope" in str(exc_info.value)

    def test_unbindable_integer_is_wrapped(self, store):
        """Test an integer SQLite cannot bind surfaces as StorageError."""
        with pytest.raises(StorageError) as exc_info:
            with store.connect() as session:
                session.count("items", '"date_created" > ?', [2**70])
        assert isinstance(exc_info.value.__cause__, OverflowError)

    def test_copy_to(self, store, tmp_path):
        """Test copying produces an independent, readable database."""
        with store.transaction() as session:
            session.insert("items", {"title": "kept"})
        copy = SQLiteStore(tmp_path / "copies" / "copy.sqlite")
        store.copy_to(copy.path)
        with copy.connect() as session:
            assert [row["title"] for row in session.query("items")] == ["kept"]
