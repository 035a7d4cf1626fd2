"""Lossless SQL tokenizer.

``tokenize`` never fails: every character of the input lands in exactly one
token, so ``"".join(t.text for t in tokenize(s)) == s`` holds for any ``s``.
``start``/``end`` are ``str`` indices into the input and ``byte_start``/``byte_end``
the matching UTF-8 byte offsets; both ranges are half-open and partition
the input. Editor-facing offsets are bytes; ``char_to_byte`` and
``byte_to_char`` convert between the two.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TokenKind(str, Enum):
    KEYWORD = "Keyword"
    IDENTIFIER = "Identifier"
    QUOTED_IDENTIFIER = "QuotedIdentifier"
    STRING = "String"
    NUMBER = "Number"
    PUNCT = "Punct"
    WHITESPACE = "Whitespace"
    COMMENT = "Comment"
    OPERATOR = "Operator"


KEYWORDS = frozenset(
    {
        "SELECT", "FROM", "WHERE", "JOIN", "INNER", "LEFT", "RIGHT", "FULL",
        "CROSS", "OUTER", "ON", "USING", "AS", "AND", "OR", "NOT", "IN",
        "EXISTS", "BETWEEN", "LIKE", "IS", "NULL", "ORDER", "GROUP", "BY",
        "HAVING", "LIMIT", "OFFSET", "INSERT", "INTO", "VALUES", "UPDATE",
        "SET", "DELETE", "CREATE", "ALTER", "DROP", "TRUNCATE", "TABLE",
        "INDEX", "VIEW", "UNION", "INTERSECT", "EXCEPT", "ALL", "DISTINCT",
        "CASE", "WHEN", "THEN", "ELSE", "END", "WITH", "RECURSIVE", "ASC",
        "DESC", "PRIMARY", "FOREIGN", "KEY", "REFERENCES", "UNIQUE", "CHECK",
        "DEFAULT", "TRUE", "FALSE",
    }
)

_TWO_CHAR_OPERATORS = frozenset({"<=", ">=", "<>", "!=", "||", "&&", "::", "->"})
_OPERATOR_CHARS = frozenset("=<>+-*/%!&|^~")
_PUNCT_CHARS = frozenset(".,;()")
_QUOTE_CLOSERS = {'"': '"', "`": "`", "[": "]"}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    start: int
    end: int
    byte_start: int = 0
    byte_end: int = 0

    @property
    def keyword(self) -> str | None:
        return self.text.upper() if self.kind is TokenKind.KEYWORD else None

    def is_keyword(self, *names: str) -> bool:
        return self.kind is TokenKind.KEYWORD and self.text.upper() in names

    def is_punct(self, ch: str) -> bool:
        return self.kind is TokenKind.PUNCT and self.text == ch

    @property
    def is_trivia(self) -> bool:
        return self.kind in (TokenKind.WHITESPACE, TokenKind.COMMENT)

    @property
    def is_identifier(self) -> bool:
        return self.kind in (TokenKind.IDENTIFIER, TokenKind.QUOTED_IDENTIFIER)

    def identifier_text(self) -> str:
        """Identifier name with surrounding quotes removed and escapes undone."""
        if self.kind is not TokenKind.QUOTED_IDENTIFIER or len(self.text) < 2:
            return self.text
        opener = self.text[0]
        closer = _QUOTE_CLOSERS.get(opener, opener)
        body = self.text[1:-1] if self.text.endswith(closer) else self.text[1:]
        return body.replace(closer * 2, closer)


def _scan_quoted(text: str, pos: int, closer: str) -> int:
    """Return the end offset of a quoted run starting at ``pos`` (the opener)."""
    i = pos + 1
    n = len(text)
    while i < n:
        if text[i] == closer:
            if i + 1 < n and text[i + 1] == closer:
                i += 2
                continue
            return i + 1
        i += 1
    return n


def _scan_number(text: str, pos: int) -> int:
    n = len(text)
    i = pos
    while i < n and text[i].isdigit():
        i += 1
    if i < n and text[i] == "." and (i + 1 >= n or text[i + 1].isdigit() or i > pos):
        i += 1
        while i < n and text[i].isdigit():
            i += 1
    if i < n and text[i] in "eE":
        j = i + 1
        if j < n and text[j] in "+-":
            j += 1
        if j < n and text[j].isdigit():
            i = j
            while i < n and text[i].isdigit():
                i += 1
    return i


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_ident_part(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    n = len(text)
    i = 0
    byte_pos = 0
    while i < n:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < n else ""
        start = i

        if ch.isspace():
            while i < n and text[i].isspace():
                i += 1
            kind = TokenKind.WHITESPACE
        elif ch == "-" and nxt == "-":
            end = text.find("\n", i)
            i = n if end == -1 else end
            kind = TokenKind.COMMENT
        elif ch == "/" and nxt == "*":
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            kind = TokenKind.COMMENT
        elif ch == "'":
            i = _scan_quoted(text, i, "'")
            kind = TokenKind.STRING
        elif ch in _QUOTE_CLOSERS:
            i = _scan_quoted(text, i, _QUOTE_CLOSERS[ch])
            kind = TokenKind.QUOTED_IDENTIFIER
        elif ch.isdigit() or (ch == "." and nxt.isdigit()):
            i = _scan_number(text, i)
            kind = TokenKind.NUMBER
        elif _is_ident_start(ch) or (ch == "@" and (nxt == "@" or _is_ident_start(nxt))):
            i += 1
            while i < n and (text[i] == "@" and i == start + 1):
                i += 1
            while i < n and _is_ident_part(text[i]):
                i += 1
            word = text[start:i]
            kind = TokenKind.KEYWORD if word.upper() in KEYWORDS else TokenKind.IDENTIFIER
        elif ch in _PUNCT_CHARS:
            i += 1
            kind = TokenKind.PUNCT
        elif ch in _OPERATOR_CHARS or ch == ":":
            i += 2 if ch + nxt in _TWO_CHAR_OPERATORS else 1
            kind = TokenKind.OPERATOR
        else:
            i += 1
            kind = TokenKind.PUNCT
        piece = text[start:i]
        width = len(piece.encode("utf-8", "surrogatepass"))
        tokens.append(Token(kind, piece, start, i, byte_pos, byte_pos + width))
        byte_pos += width
    return tokens


def meaningful(tokens: list[Token]) -> list[Token]:
    return [t for t in tokens if not t.is_trivia]


def char_to_byte(text: str, offset: int) -> int:
    offset = max(0, min(offset, len(text)))
    return len(text[:offset].encode("utf-8", "surrogatepass"))


def byte_to_char(text: str, offset: int) -> int:
    """Map a UTF-8 byte offset to a ``str`` index, rounding down inside a character."""
    if offset <= 0:
        return 0
    prefix = text.encode("utf-8", "surrogatepass")[:offset]
    return len(prefix.decode("utf-8", "ignore"))
