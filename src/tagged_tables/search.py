"""Compile search strings into parameterized SQL filters.

The compiler reads the column definitions handed to it per call and never
keeps or mutates them. Literals are always bound as parameters.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from tagged_tables.errors import InvariantError, ValidationError
from tagged_tables.logging import get_logger
from tagged_tables.parsing.search_parser import (
    BinaryQuery,
    FieldTerm,
    GroupQuery,
    NotQuery,
    QueryNode,
    SearchParser,
    Term,
)
from tagged_tables.storage import quote_identifier
from tagged_tables.types import INTEGER_MAX, INTEGER_MIN, ColumnDefinition, ColumnType

logger = get_logger(__name__)

ALWAYS_TRUE = "1"
TITLE_COLUMN = "title"

_POSITIONAL = re.compile(r"^i(\d+)$", re.IGNORECASE)
_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_COMPARISON = re.compile(r"^(>=|<=|>|<)\s*(.+)$")
_DATE = re.compile(r"^(?:(>=|<=|>|<)\s*)?(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")
_TRUE_WORDS = ("true", "1")
_FALSE_WORDS = ("false", "0")

_parser: SearchParser | None = None


@dataclass
class CompiledFilter:
    """A WHERE expression with positional placeholders and its bind values."""

    where: str = ALWAYS_TRUE
    params: list[Any] = field(default_factory=list)

    def and_(self, other: CompiledFilter) -> CompiledFilter:
        """Combine two filters with AND, skipping always-true sides."""
        if self.where == ALWAYS_TRUE:
            return CompiledFilter(other.where, list(other.params))
        if other.where == ALWAYS_TRUE:
            return CompiledFilter(self.where, list(self.params))
        return CompiledFilter(
            f"({self.where}) AND ({other.where})", [*self.params, *other.params]
        )


def resolve_field(reference: str, columns: Sequence[ColumnDefinition]) -> ColumnDefinition | None:
    """Find the column a field reference names.

    A reference is a case-insensitive column name or ``i<index>``. Names
    win over positional references.
    """
    if not reference:
        return None
    lowered = reference.lower()
    for column in columns:
        if column.name.lower() == lowered:
            return column
    m = _POSITIONAL.match(reference)
    if m:
        index = int(m.group(1))
        for column in columns:
            if column.index == index:
                return column
    return None


def compile_search(query: str | None, columns: Sequence[ColumnDefinition]) -> CompiledFilter:
    """Compile a search string into a filter. Never raises on malformed input."""
    if query is None or not query.strip():
        return CompiledFilter()

    try:
        tree = _get_parser().parse(query)
        lowering = _Lowering(columns)
        where = lowering.lower(tree)
    except (SyntaxError, RecursionError) as e:
        logger.debug("Falling back to title search for %r: %s", query, e)
        return fallback_filter(query)
    return CompiledFilter(where, lowering.params)


def fallback_filter(query: str) -> CompiledFilter:
    """Match every whitespace-separated token of ``query`` against the title."""
    params = []
    clauses = []
    for token in query.split():
        params.append(f"%{_escape_like(token)}%")
        clauses.append(_like_clause(quote_identifier(TITLE_COLUMN)))
    if not clauses:
        return CompiledFilter()
    return CompiledFilter(" AND ".join(clauses), params)


def compile_order(
    sort: str | None,
    columns: Sequence[ColumnDefinition],
    descending: bool = False,
    random: bool = False,
) -> str:
    """Build an ORDER BY clause.

    Raises:
        ValidationError: If ``sort`` does not name a column.
    """
    if random:
        return "ORDER BY RANDOM()"
    direction = "DESC" if descending else "ASC"
    if not sort:
        return f"ORDER BY {quote_identifier('id')} {direction}"
    column = resolve_field(sort, columns)
    if column is None:
        raise ValidationError(f"Cannot sort by unknown field '{sort}'", identifier=sort)
    return f"ORDER BY {quote_identifier(column.name)} {direction}"


def day_bounds(year: int, month: int, day: int) -> tuple[int, int]:
    """Return the first and last local-time millisecond of a calendar day.

    Raises:
        ValueError: If the date does not exist.
    """
    start = datetime(year, month, day)
    end = datetime(year, month, day, 23, 59, 59, 999000)
    return _epoch_ms(start), _epoch_ms(end)


class _Lowering:
    """Turns one parsed query into SQL text, collecting bind values."""

    def __init__(self, columns: Sequence[ColumnDefinition]) -> None:
        self.columns = columns
        self.params: list[Any] = []

    def lower(self, node: QueryNode) -> str:
        if isinstance(node, BinaryQuery):
            left = self.lower(node.left)
            right = self.lower(node.right)
            return f"({left} {node.operator.upper()} {right})"
        elif isinstance(node, NotQuery):
            return f"(NOT {self.lower(node.operand)})"
        elif isinstance(node, GroupQuery):
            return self.lower(node.inner)
        elif isinstance(node, FieldTerm):
            column = resolve_field(node.field, self.columns)
            if column is None:
                return self.term(TITLE_COLUMN, ColumnType.STRING, node.text, node.regex)
            return self.term(column.name, column.type, node.text, node.regex)
        elif isinstance(node, Term):
            return self.term(TITLE_COLUMN, ColumnType.STRING, node.text, node.regex)
        raise InvariantError(f"Unhandled search node {node!r}")

    def term(self, name: str, column_type: ColumnType, text: str, regex: bool) -> str:
        col = quote_identifier(name)

        if regex:
            self.params.append(text)
            return f"{col} REGEXP ?"

        if column_type == ColumnType.BOOLEAN:
            flag = _coerce_boolean(text)
            if flag is not None:
                self.params.append(flag)
                return f"{col} = ?"

        if column_type == ColumnType.DATE:
            clause = self.date(col, text)
            if clause is not None:
                return clause

        if column_type.is_numeric or column_type == ColumnType.DATE:
            clause = self.numeric(col, text)
            if clause is not None:
                return clause

        self.params.append(f"%{_escape_like(text)}%")
        return _like_clause(col)

    def numeric(self, col: str, text: str) -> str | None:
        text = text.strip()
        m = _COMPARISON.match(text)
        if m:
            operand = m.group(2).strip()
            if not _NUMBER.match(operand):
                return None
            self.params.append(_to_number(operand))
            return f"{col} {m.group(1)} ?"
        if _NUMBER.match(text):
            self.params.append(_to_number(text))
            return f"{col} = ?"
        return None

    def date(self, col: str, text: str) -> str | None:
        m = _DATE.match(text.strip())
        if not m:
            return None
        op = m.group(1)
        try:
            start, end = day_bounds(int(m.group(2)), int(m.group(3)), int(m.group(4)))
        except ValueError:
            return None

        if op is None:
            self.params.extend([start, end])
            return f"{col} BETWEEN ? AND ?"
        # '>' excludes the whole day, '>=' includes it; likewise for '<' and '<='
        bound = {">": end, ">=": start, "<": start, "<=": end}[op]
        self.params.append(bound)
        return f"{col} {op} ?"


def _get_parser() -> SearchParser:
    global _parser
    if _parser is None:
        _parser = SearchParser()
    return _parser


def _coerce_boolean(text: str) -> int | None:
    lowered = text.strip().lower()
    if lowered in _TRUE_WORDS:
        return 1
    if lowered in _FALSE_WORDS:
        return 0
    return None


def _to_number(text: str) -> int | float:
    try:
        number = int(text)
    except ValueError:
        return float(text)
    # Integers SQLite cannot bind compare as REAL
    if not INTEGER_MIN <= number <= INTEGER_MAX:
        return float(text)
    return number


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _like_clause(col: str) -> str:
    return f"{col} LIKE ? ESCAPE '\\'"


def _epoch_ms(moment: datetime) -> int:
    return int(round(moment.timestamp() * 1000))
