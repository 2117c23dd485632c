"""Lexer for the row search language."""

import ply.lex as lex


class SearchLexer:
    """Lexer for tokenizing search strings like ``status:done AND !draft``."""

    # Reserved words, matched case-insensitively when they stand alone
    reserved = {
        "and": "AND",
        "or": "OR",
        "not": "NOT",
    }

    tokens = [
        "FIELD",
        "TERM",
        "PHRASE",
        "REGEX",
        "LPAREN",
        "RPAREN",
        "BANG",
    ] + list(reserved.values())

    # After FIELD the lexer reads exactly one value, which may contain colons
    states = (("value", "exclusive"),)

    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_BANG = r"!"

    t_ignore = " \t\r\n"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore

    def t_AND_SYMBOL(self, t: lex.LexToken) -> lex.LexToken:
        r"&&"
        t.type = "AND"
        return t

    def t_OR_SYMBOL(self, t: lex.LexToken) -> lex.LexToken:
        r"\|\|"
        t.type = "OR"
        return t

    def t_REGEX(self, t: lex.LexToken) -> lex.LexToken:
        r"/(?:[^/\\]|\\.)+/"
        t.value = t.value[1:-1]
        return t

    def t_PHRASE(self, t: lex.LexToken) -> lex.LexToken:
        r'"(?:[^"\\]|\\.)*"'
        t.value = _unquote(t.value)
        return t

    def t_FIELD(self, t: lex.LexToken) -> lex.LexToken:
        r'[^\s()"!&|:][^\s()":]*:'
        t.value = t.value[:-1]
        t.lexer.begin("value")
        return t

    def t_TERM(self, t: lex.LexToken) -> lex.LexToken:
        r'[^\s()"!&|:][^\s()"]*'
        t.type = self.reserved.get(t.value.lower(), "TERM")
        return t

    def t_error(self, t: lex.LexToken) -> None:
        raise SyntaxError(f"Illegal character '{t.value[0]}' at position {t.lexpos}")

    # --- Exclusive value state tokens ---

    t_value_ignore = " \t"

    def t_value_REGEX(self, t: lex.LexToken) -> lex.LexToken:
        r"/(?:[^/\\]|\\.)+/"
        t.value = t.value[1:-1]
        t.lexer.begin("INITIAL")
        return t

    def t_value_PHRASE(self, t: lex.LexToken) -> lex.LexToken:
        r'"(?:[^"\\]|\\.)*"'
        t.value = _unquote(t.value)
        t.lexer.begin("INITIAL")
        return t

    def t_value_TERM(self, t: lex.LexToken) -> lex.LexToken:
        r'[^\s()"]+'
        t.lexer.begin("INITIAL")
        return t

    def t_value_error(self, t: lex.LexToken) -> None:
        t.lexer.begin("INITIAL")
        raise SyntaxError(f"Expected a value after field, got '{t.value[0]}' at position {t.lexpos}")

    # --- Lexer methods ---

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize, starting from the initial state."""
        self.lexer.begin("INITIAL")
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens


def _unquote(text: str) -> str:
    """Strip quotes from a phrase and resolve backslash escapes."""
    body = text[1:-1]
    out = []
    escaped = False
    for ch in body:
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        else:
            out.append(ch)
    return "".join(out)
