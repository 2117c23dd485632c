"""Tests for compiling search strings into SQL filters."""

import pytest

from tagged_tables.errors import ValidationError
from tagged_tables.search import (
    CompiledFilter,
    compile_order,
    compile_search,
    day_bounds,
    fallback_filter,
    resolve_field,
)
from tagged_tables.types import ColumnDefinition, ColumnType, protected_column_definitions


def columns():
    cols = list(protected_column_definitions().values())
    cols.append(ColumnDefinition(name="count", type=ColumnType.INTEGER, index=6))
    cols.append(ColumnDefinition(name="done", type=ColumnType.BOOLEAN, index=7))
    cols.append(ColumnDefinition(name="status", type=ColumnType.MULTI_TAG, index=8))
    cols.append(ColumnDefinition(name="due", type=ColumnType.DATE, index=9))
    cols.append(ColumnDefinition(name="code", type=ColumnType.CUSTOM, index=10))
    cols.append(ColumnDefinition(name="i2", type=ColumnType.STRING, index=11))
    return cols


class TestResolveField:
    """Tests for field resolution."""

    def test_by_name_case_insensitive(self):
        """Test column names match regardless of case."""
        assert resolve_field("COUNT", columns()).name == "count"

    def test_by_index(self):
        """Test i<index> references."""
        assert resolve_field("i6", columns()).name == "count"
        assert resolve_field("I1", columns()).name == "title"

    def test_name_wins_over_index(self):
        """Test a column literally named i2 beats the column at index 2."""
        assert resolve_field("i2", columns()).name == "i2"

    def test_unresolved(self):
        """Test unknown references resolve to nothing."""
        assert resolve_field("missing", columns()) is None
        assert resolve_field("i99", columns()) is None


class TestCompileSearch:
    """Tests for compile_search."""

    def test_empty_is_always_true(self):
        """Test empty and blank queries match everything."""
        assert compile_search("", columns()) == CompiledFilter("1", [])
        assert compile_search("   ", columns()) == CompiledFilter("1", [])
        assert compile_search(None, columns()) == CompiledFilter("1", [])

    def test_bare_term_searches_title(self):
        """Test bare terms are substring matches on the title."""
        result = compile_search("apple", columns())
        assert result.where == "\"title\" LIKE ? ESCAPE '\\'"
        assert result.params == ["%apple%"]

    def test_like_wildcards_escaped(self):
        """Test % and _ in a term match literally."""
        result = compile_search("50%_off", columns())
        assert result.params == ["%50\\%\\_off%"]

    def test_numeric_comparison(self):
        """Test comparison operators on numeric columns."""
        result = compile_search("count:>=5", columns())
        assert result.where == '"count" >= ?'
        assert result.params == [5]

    def test_numeric_equality(self):
        """Test a plain number on a numeric column is equality."""
        result = compile_search("count:2.5", columns())
        assert result.where == '"count" = ?'
        assert result.params == [2.5]

    def test_numeric_beyond_64_bits_binds_real(self):
        """Test integers outside the 64-bit range are bound as floats."""
        result = compile_search("count:>99999999999999999999", columns())
        assert result.where == '"count" > ?'
        assert result.params == [1e20]
        assert isinstance(result.params[0], float)
        assert compile_search("count:9223372036854775807", columns()).params == [2**63 - 1]

    def test_numeric_column_non_number_is_substring(self):
        """Test non-numeric text against a numeric column falls back to LIKE."""
        result = compile_search("count:abc", columns())
        assert "LIKE" in result.where
        assert result.params == ["%abc%"]

    def test_boolean_words(self):
        """Test true/false map to 1/0 on boolean columns."""
        assert compile_search("done:true", columns()).params == [1]
        assert compile_search("done:FALSE", columns()).params == [0]
        assert compile_search("done:true", columns()).where == '"done" = ?'

    def test_positional_field(self):
        """Test i<index> resolves to the column at that index."""
        result = compile_search("i6:>3", columns())
        assert result.where == '"count" > ?'
        assert result.params == [3]

    def test_unresolved_field_searches_title(self):
        """Test an unknown field degrades to a title search."""
        result = compile_search("nosuch:thing", columns())
        assert result.where.startswith('"title" LIKE')
        assert result.params == ["%thing%"]

    def test_tag_column_substring(self):
        """Test tag columns use substring matching."""
        result = compile_search("status:urgent", columns())
        assert result.where.startswith('"status" LIKE')
        assert result.params == ["%urgent%"]

    def test_custom_column_substring(self):
        """Test custom columns use substring matching even for numbers."""
        result = compile_search("code:42", columns())
        assert result.where.startswith('"code" LIKE')
        assert result.params == ["%42%"]

    def test_regex(self):
        """Test regex values compile to REGEXP."""
        result = compile_search("status:/^urg/", columns())
        assert result.where == '"status" REGEXP ?'
        assert result.params == ["^urg"]

    def test_boolean_structure(self):
        """Test AND, OR and NOT compose in SQL with params in order."""
        result = compile_search("apple OR !count:1", columns())
        assert result.where == "(\"title\" LIKE ? ESCAPE '\\' OR (NOT \"count\" = ?))"
        assert result.params == ["%apple%", 1]

    def test_malformed_query_falls_back(self):
        """Test syntax errors degrade to per-token title matches."""
        result = compile_search("(apple pear", columns())
        assert result == fallback_filter("(apple pear")
        assert result.params == ["%(apple%", "%pear%"]
        assert result.where.count("LIKE") == 2
        assert " AND " in result.where


class TestDateSearch:
    """Tests for date column lowering."""

    def test_exact_day(self):
        """Test a calendar date matches the whole local day."""
        start, end = day_bounds(2024, 3, 15)
        result = compile_search("due:2024-03-15", columns())
        assert result.where == '"due" BETWEEN ? AND ?'
        assert result.params == [start, end]
        assert end - start == 86_399_999

    @pytest.mark.parametrize(
        "op,bound",
        [(">", 1), (">=", 0), ("<", 0), ("<=", 1)],
    )
    def test_comparisons(self, op, bound):
        """Test each operator compares against the right end of the day."""
        bounds = day_bounds(2024, 3, 15)
        result = compile_search(f"due:{op}2024/03/15", columns())
        assert result.where == f'"due" {op} ?'
        assert result.params == [bounds[bound]]

    def test_epoch_number(self):
        """Test plain numbers compare against the stored epoch value."""
        result = compile_search("due:>1700000000000", columns())
        assert result.where == '"due" > ?'
        assert result.params == [1700000000000]

    def test_impossible_date(self):
        """Test a non-existent date is treated as text."""
        result = compile_search("due:2024-02-30", columns())
        assert "LIKE" in result.where


class TestCompiledFilter:
    """Tests for combining filters."""

    def test_and_skips_always_true(self):
        """Test combining with an always-true filter keeps the other side."""
        f = CompiledFilter('"x" = ?', [1])
        assert CompiledFilter().and_(f) == f
        assert f.and_(CompiledFilter()) == f

    def test_and_combines(self):
        """Test two real filters are parenthesized and params concatenated."""
        a = CompiledFilter('"x" = ?', [1])
        b = CompiledFilter('"y" = ?', [2])
        assert a.and_(b) == CompiledFilter('("x" = ?) AND ("y" = ?)', [1, 2])


class TestCompileOrder:
    """Tests for ORDER BY clauses."""

    def test_default(self):
        """Test the default order is by id ascending."""
        assert compile_order(None, columns()) == 'ORDER BY "id" ASC'

    def test_named_descending(self):
        """Test sorting by a column name, descending."""
        assert compile_order("Count", columns(), descending=True) == 'ORDER BY "count" DESC'

    def test_positional(self):
        """Test sorting by i<index>."""
        assert compile_order("i1", columns()) == 'ORDER BY "title" ASC'

    def test_random(self):
        """Test random ordering wins over a sort field."""
        assert compile_order("count", columns(), random=True) == "ORDER BY RANDOM()"

    def test_unknown_field(self):
        """Test unknown sort fields are validation errors."""
        with pytest.raises(ValidationError):
            compile_order("nope", columns())
