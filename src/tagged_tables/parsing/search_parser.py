"""Parser for the row search language.

Grammar (highest precedence first)::

    NOT x, !x           negation
    x AND y, x && y     conjunction; adjacent clauses are also joined by AND
    x OR y, x || y      disjunction
    (x)                 grouping
    term, "phrase"      bare search against the title column
    field:term          search against a column (name or i<index>)
    /pattern/           regular expression, bare or as a field value
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

import ply.yacc as yacc

from tagged_tables.parsing.search_lexer import SearchLexer


@dataclass(frozen=True)
class Term:
    """A bare term searched against the title column."""

    text: str
    regex: bool = False


@dataclass(frozen=True)
class FieldTerm:
    """A ``field:term`` pair."""

    field: str
    text: str
    regex: bool = False


@dataclass(frozen=True)
class BinaryQuery:
    """Two sub-queries joined by ``and`` or ``or``."""

    operator: str
    left: QueryNode
    right: QueryNode


@dataclass(frozen=True)
class NotQuery:
    """Negation of a sub-query."""

    operand: QueryNode


@dataclass(frozen=True)
class GroupQuery:
    """A parenthesized sub-query."""

    inner: QueryNode


QueryNode = Union[Term, FieldTerm, BinaryQuery, NotQuery, GroupQuery]


class SearchParser:
    """Parser for search strings."""

    tokens = SearchLexer.tokens

    # Adjacent clauses bind like AND
    precedence = (
        ("left", "OR"),
        ("left", "AND", "IMPLICIT_AND", "FIELD", "TERM", "PHRASE", "REGEX", "LPAREN"),
        ("right", "NOT", "BANG"),
    )

    def __init__(self) -> None:
        self.lexer = SearchLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_query(self, p: yacc.YaccProduction) -> None:
        """query : expression"""
        p[0] = p[1]

    def p_expression_and(self, p: yacc.YaccProduction) -> None:
        """expression : expression AND expression"""
        p[0] = BinaryQuery(operator="and", left=p[1], right=p[3])

    def p_expression_or(self, p: yacc.YaccProduction) -> None:
        """expression : expression OR expression"""
        p[0] = BinaryQuery(operator="or", left=p[1], right=p[3])

    def p_expression_implicit_and(self, p: yacc.YaccProduction) -> None:
        """expression : expression expression %prec IMPLICIT_AND"""
        p[0] = BinaryQuery(operator="and", left=p[1], right=p[2])

    def p_expression_not(self, p: yacc.YaccProduction) -> None:
        """expression : NOT expression
                      | BANG expression"""
        p[0] = NotQuery(operand=p[2])

    def p_expression_group(self, p: yacc.YaccProduction) -> None:
        """expression : LPAREN expression RPAREN"""
        p[0] = GroupQuery(inner=p[2])

    def p_expression_field(self, p: yacc.YaccProduction) -> None:
        """expression : FIELD value"""
        text, regex = p[2]
        p[0] = FieldTerm(field=p[1], text=text, regex=regex)

    def p_expression_term(self, p: yacc.YaccProduction) -> None:
        """expression : value"""
        text, regex = p[1]
        p[0] = Term(text=text, regex=regex)

    def p_value_text(self, p: yacc.YaccProduction) -> None:
        """value : TERM
                 | PHRASE"""
        p[0] = (p[1], False)

    def p_value_regex(self, p: yacc.YaccProduction) -> None:
        """value : REGEX"""
        p[0] = (p[1], True)

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="query", **kwargs)

    def parse(self, data: str) -> QueryNode:
        """Parse a search string.

        Raises:
            SyntaxError: If the string is not valid in the search language.
        """
        if self.parser is None:
            self.build(debug=False, write_tables=False, errorlog=yacc.NullLogger())

        # A previous failed parse may have left the lexer in the value state
        self.lexer.lexer.begin("INITIAL")
        return self.parser.parse(data, lexer=self.lexer.lexer)
