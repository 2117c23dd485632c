"""Tests for value validation."""

import json
import math

import pytest

from tagged_tables.errors import InvariantError, ValidationError
from tagged_tables.types import ColumnDefinition, ColumnType, TagDefinition
from tagged_tables.validation import process_tag_value, validate


def column(column_type, **kwargs):
    return ColumnDefinition(name="col", type=column_type, index=6, **kwargs)


def tag_column(column_type=ColumnType.MULTI_TAG, tags=("red", "blue", "green")):
    return column(column_type, tags=[TagDefinition(name=t) for t in tags])


class TestScalarTypes:
    """Tests for the scalar column types."""

    def test_string(self):
        """Test strings pass and other values fail."""
        assert validate(column(ColumnType.STRING), "hello") == "hello"
        assert validate(column(ColumnType.RICH_TEXT), "<b>x</b>") == "<b>x</b>"
        with pytest.raises(ValidationError):
            validate(column(ColumnType.STRING), 5)

    def test_boolean(self):
        """Test booleans accept only 0 and 1."""
        col = column(ColumnType.BOOLEAN)
        assert validate(col, 0) == 0
        assert validate(col, 1) == 1
        assert validate(col, True) == 1
        for bad in [2, -1, "1", None, 0.5]:
            with pytest.raises(ValidationError):
                validate(col, bad)

    def test_integer(self):
        """Test integers reject fractions and booleans."""
        col = column(ColumnType.INTEGER)
        assert validate(col, 42) == 42
        assert validate(col, 3.0) == 3
        for bad in [3.5, "3", True]:
            with pytest.raises(ValidationError):
                validate(col, bad)

    def test_float(self):
        """Test floats must be finite numbers."""
        col = column(ColumnType.FLOAT)
        assert validate(col, 2.5) == 2.5
        assert validate(col, 2) == 2
        for bad in [math.nan, math.inf, "2.5"]:
            with pytest.raises(ValidationError):
                validate(col, bad)

    def test_date(self):
        """Test dates are positive epoch milliseconds."""
        col = column(ColumnType.DATE)
        assert validate(col, 1_700_000_000_000) == 1_700_000_000_000
        for bad in [0, -5, "2024-01-01", 1.5]:
            with pytest.raises(ValidationError):
                validate(col, bad)

    @pytest.mark.parametrize(
        "column_type", [ColumnType.INTEGER, ColumnType.FLOAT, ColumnType.DATE]
    )
    def test_rejects_values_outside_64_bits(self, column_type):
        """Test integers SQLite cannot store are rejected by name."""
        col = column(column_type)
        assert validate(col, 2**63 - 1) == 2**63 - 1
        for bad in [2**63, 2**70]:
            with pytest.raises(ValidationError) as exc_info:
                validate(col, bad)
            assert exc_info.value.identifier == "col"

    def test_integer_lower_bound(self):
        """Test the smallest 64-bit integer is accepted and one below is not."""
        col = column(ColumnType.INTEGER)
        assert validate(col, -(2**63)) == -(2**63)
        with pytest.raises(ValidationError):
            validate(col, -(2**63) - 1)


class TestUnknownType:
    """Tests for columns carrying a type outside the catalog."""

    def test_raises_invariant_error(self):
        """Test an unrecognized column type is an invariant violation."""
        col = ColumnDefinition(name="odd", type=object(), index=6)
        with pytest.raises(InvariantError) as exc_info:
            validate(col, "x")
        assert exc_info.value.identifier == "odd"


class TestRatings:
    """Tests for rating and advanced_rating columns."""

    def test_rating_range(self):
        """Test ratings accept integers 0 to 5 only."""
        col = column(ColumnType.RATING)
        for good in range(6):
            assert validate(col, good) == good
        for bad in [6, -1, 2.5]:
            with pytest.raises(ValidationError):
                validate(col, bad)

    def test_advanced_rating_range(self):
        """Test advanced ratings accept numbers 0.0 to 10.0."""
        col = column(ColumnType.ADVANCED_RATING)
        assert validate(col, 7.5) == 7.5
        assert validate(col, 10) == 10
        for bad in [10.01, -0.1, "5"]:
            with pytest.raises(ValidationError):
                validate(col, bad)


class TestTags:
    """Tests for tag processing."""

    def test_normalizes_sorts_and_dedupes(self):
        """Test tag input is canonicalized."""
        col = tag_column()
        assert process_tag_value(col, "blue RED") == "blue red"
        assert process_tag_value(col, "red red blue") == "blue red"
        assert process_tag_value(col, ["Green", "blue"]) == "blue green"

    def test_empty(self):
        """Test empty input yields an empty tag string."""
        assert process_tag_value(tag_column(), "   ") == ""
        assert process_tag_value(tag_column(), []) == ""

    def test_unregistered_tag(self):
        """Test tags outside the vocabulary are rejected by name."""
        with pytest.raises(ValidationError) as exc_info:
            validate(tag_column(), "red purple")
        assert exc_info.value.identifier == "purple"

    def test_single_tag_accepts_one(self):
        """Test single_tag columns hold at most one tag."""
        col = tag_column(ColumnType.SINGLE_TAG)
        assert validate(col, "Red") == "red"
        with pytest.raises(ValidationError):
            validate(col, "red blue")

    def test_rejects_other_shapes(self):
        """Test non-string, non-list input is rejected."""
        with pytest.raises(ValidationError):
            validate(tag_column(), 7)
        with pytest.raises(ValidationError):
            validate(tag_column(), ["red", 3])


class TestCustom:
    """Tests for custom rule columns."""

    def test_rule_match(self):
        """Test values must match the rule."""
        col = column(ColumnType.CUSTOM, rule=r"^[A-Z]{3}-\d+$")
        assert validate(col, "ABC-12") == "ABC-12"
        with pytest.raises(ValidationError):
            validate(col, "abc-12")

    def test_no_rule(self):
        """Test any string passes when no rule is set."""
        assert validate(column(ColumnType.CUSTOM), "anything") == "anything"

    def test_invalid_rule(self):
        """Test a malformed stored rule is reported with the rule text."""
        col = column(ColumnType.CUSTOM, rule="([")
        with pytest.raises(ValidationError) as exc_info:
            validate(col, "x")
        assert exc_info.value.identifier == "(["


class TestLink:
    """Tests for link columns."""

    def test_valid(self):
        """Test a well-formed link passes unchanged."""
        value = json.dumps({"displayName": "Docs", "url": "https://example.com"})
        assert validate(column(ColumnType.LINK), value) == value

    @pytest.mark.parametrize(
        "value",
        [
            "not json",
            json.dumps([1, 2]),
            json.dumps({"displayName": "", "url": "x"}),
            json.dumps({"displayName": "Docs"}),
            json.dumps({"displayName": "Docs", "url": 5}),
            {"displayName": "Docs", "url": "x"},
        ],
    )
    def test_invalid(self, value):
        """Test malformed links are rejected."""
        with pytest.raises(ValidationError):
            validate(column(ColumnType.LINK), value)
