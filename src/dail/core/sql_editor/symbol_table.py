from __future__ import annotations

from collections.abc import Iterator

from .tokenizer import Token, TokenKind, meaningful


_JOIN_QUALIFIERS = ("INNER", "LEFT", "RIGHT", "FULL", "CROSS", "NATURAL")

# Words that may follow a table reference without being its alias.
_NON_ALIAS_WORDS = frozenset(
    {
        "NATURAL", "LATERAL", "APPLY", "OUTER", "WINDOW", "PIVOT", "UNPIVOT",
        "TABLESAMPLE", "FOR", "USE", "FORCE", "IGNORE", "FETCH", "RETURNING",
        "STRAIGHT_JOIN", "QUALIFY", "START", "CONNECT", "MINUS",
    }
)


class SymbolTable:
    """Alias -> table map for FROM/JOIN clauses.

    Keys are lowercased for case-insensitive lookup; table names keep the
    case they were written in. A later binding of the same alias wins.
    """

    def __init__(self) -> None:
        self._aliases: dict[str, str] = {}

    def register_alias(self, alias: str, table: str) -> None:
        key = alias.lower()
        # Re-insert so iteration order follows the most recent binding.
        self._aliases.pop(key, None)
        self._aliases[key] = table

    def resolve(self, alias: str) -> str | None:
        return self._aliases.get(alias.lower())

    def is_alias(self, name: str) -> bool:
        return name.lower() in self._aliases

    def all_aliases(self) -> Iterator[tuple[str, str]]:
        return iter(self._aliases.items())

    def tables(self) -> list[str]:
        """Distinct table names (case-insensitive) in binding order."""
        seen: set[str] = set()
        out: list[str] = []
        for table in self._aliases.values():
            key = table.lower()
            if key not in seen:
                seen.add(key)
                out.append(table)
        return out

    def __len__(self) -> int:
        return len(self._aliases)

    @classmethod
    def build(cls, tokens: list[Token], offset: int | None = None) -> SymbolTable:
        """Bind the FROM/JOIN references of one query scope.

        With ``offset`` the scope is the innermost parenthesized subquery
        containing it; otherwise the outermost statement. Subqueries nested
        inside the scope are skipped.
        """
        table = cls()
        items = _scope_items(meaningful(tokens), offset)
        i = 0
        while i < len(items):
            token = items[i]
            if _opens_subquery(items, i):
                i = _skip_parens(items, i)
            elif token.is_keyword("FROM", "JOIN"):
                i = _parse_table_references(table, items, i + 1)
            elif _is_word(token, *_JOIN_QUALIFIERS):
                j = i + 1
                while j < len(items) and not items[j].is_keyword("JOIN"):
                    j += 1
                i = _parse_table_references(table, items, j + 1)
            else:
                i += 1
        return table


def _is_word(token: Token, *names: str) -> bool:
    return token.kind in (TokenKind.KEYWORD, TokenKind.IDENTIFIER) and token.text.upper() in names


def _opens_subquery(items: list[Token], i: int) -> bool:
    return (
        items[i].is_punct("(")
        and i + 1 < len(items)
        and items[i + 1].is_keyword("SELECT", "WITH")
    )


def _scope_items(items: list[Token], offset: int | None) -> list[Token]:
    if offset is None:
        return items
    open_parens: list[int] = []
    for i, token in enumerate(items):
        if token.start >= offset:
            break
        if token.is_punct("("):
            open_parens.append(i)
        elif token.is_punct(")") and open_parens:
            open_parens.pop()
    for start in reversed(open_parens):
        if _opens_subquery(items, start):
            end = _skip_parens(items, start)
            if items[end - 1].is_punct(")") and end - 1 > start:
                return items[start + 1 : end - 1]
            return items[start + 1 :]
    return items


def _skip_parens(items: list[Token], i: int) -> int:
    depth = 0
    while i < len(items):
        if items[i].is_punct("("):
            depth += 1
        elif items[i].is_punct(")"):
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return i


def _parse_table_references(table: SymbolTable, items: list[Token], i: int) -> int:
    while i < len(items):
        if items[i].is_punct("("):
            i = _skip_parens(items, i)
            if i < len(items) and items[i].is_keyword("AS"):
                i += 1
            if i < len(items) and items[i].is_identifier:
                alias = items[i].identifier_text()
                table.register_alias(alias, alias)
                i += 1
        elif items[i].is_identifier:
            name = items[i].identifier_text()
            i += 1
            # schema.table (or db.schema.table): the last part names the table
            while (
                i + 1 < len(items)
                and items[i].is_punct(".")
                and items[i + 1].is_identifier
            ):
                name = items[i + 1].identifier_text()
                i += 2
            i = _parse_alias(table, items, i, name)
        else:
            break
        if i < len(items) and items[i].is_punct(","):
            i += 1
            continue
        break
    return i


def _parse_alias(table: SymbolTable, items: list[Token], i: int, name: str) -> int:
    has_as = i < len(items) and items[i].is_keyword("AS")
    if has_as:
        i += 1
    if i < len(items) and _is_alias_token(items[i], has_as):
        table.register_alias(items[i].identifier_text(), name)
        return i + 1
    table.register_alias(name, name)
    return i


def _is_alias_token(token: Token, has_as: bool) -> bool:
    if not token.is_identifier:
        return False
    if has_as or token.kind is TokenKind.QUOTED_IDENTIFIER:
        return True
    return token.text.upper() not in _NON_ALIAS_WORDS
