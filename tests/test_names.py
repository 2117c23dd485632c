"""Tests for identifier normalization."""

from tagged_tables.names import MAX_DATABASE_ID_LENGTH, normalize_name, sanitize_database_name


class TestNormalizeName:
    """Tests for normalize_name."""

    def test_trims_and_lowercases(self):
        """Test surrounding whitespace is removed and case folded."""
        assert normalize_name("  Title  ") == "title"

    def test_internal_whitespace_becomes_underscore(self):
        """Test each whitespace run collapses to one underscore."""
        assert normalize_name("Due   Date") == "due_date"
        assert normalize_name("a\tb\nc") == "a_b_c"

    def test_idempotent(self):
        """Test normalizing twice gives the same result."""
        for raw in ["My Column", "  spaced  out  ", "already_done", "MiXeD\tCase"]:
            once = normalize_name(raw)
            assert normalize_name(once) == once

    def test_blank(self):
        """Test a whitespace-only name normalizes to empty."""
        assert normalize_name("   ") == ""


class TestSanitizeDatabaseName:
    """Tests for sanitize_database_name."""

    def test_replaces_non_alphanumerics(self):
        """Test punctuation and spaces become single underscores."""
        assert sanitize_database_name("My Notes") == "my_notes"
        assert sanitize_database_name("Books & Films!!") == "books_films_"

    def test_truncates(self):
        """Test long names are cut to the maximum id length."""
        result = sanitize_database_name("x" * 100)
        assert len(result) == MAX_DATABASE_ID_LENGTH
