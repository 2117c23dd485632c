"""Parsing module for the row search language."""

from tagged_tables.parsing.search_lexer import SearchLexer
from tagged_tables.parsing.search_parser import (
    BinaryQuery,
    FieldTerm,
    GroupQuery,
    NotQuery,
    QueryNode,
    SearchParser,
    Term,
)

__all__ = [
    "BinaryQuery",
    "FieldTerm",
    "GroupQuery",
    "NotQuery",
    "QueryNode",
    "SearchLexer",
    "SearchParser",
    "Term",
]
