from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .symbol_table import SymbolTable
from .tokenizer import Token, meaningful


class ContextKind(str, Enum):
    START = "Start"
    SELECT_COLUMNS = "SelectColumns"
    TABLE_NAME = "TableName"
    CONDITION = "Condition"
    ORDER_BY = "OrderBy"
    SET_CLAUSE = "SetClause"
    VALUES = "Values"
    CREATE_TABLE = "CreateTable"
    FUNCTION_ARGS = "FunctionArgs"
    DOT_COLUMN = "DotColumn"


@dataclass(frozen=True)
class SqlContext:
    kind: ContextKind
    # Only set for DOT_COLUMN: the resolved table name.
    table: str | None = None

    @classmethod
    def dot_column(cls, table: str) -> SqlContext:
        return cls(ContextKind.DOT_COLUMN, table)

    def __str__(self) -> str:
        if self.kind is ContextKind.DOT_COLUMN:
            return f"DotColumn({self.table})"
        return self.kind.value


START = SqlContext(ContextKind.START)
SELECT_COLUMNS = SqlContext(ContextKind.SELECT_COLUMNS)
TABLE_NAME = SqlContext(ContextKind.TABLE_NAME)
CONDITION = SqlContext(ContextKind.CONDITION)
ORDER_BY = SqlContext(ContextKind.ORDER_BY)
SET_CLAUSE = SqlContext(ContextKind.SET_CLAUSE)
VALUES = SqlContext(ContextKind.VALUES)
CREATE_TABLE = SqlContext(ContextKind.CREATE_TABLE)
FUNCTION_ARGS = SqlContext(ContextKind.FUNCTION_ARGS)

_TABLE_SOURCE_KEYWORDS = ("FROM", "JOIN", "INNER", "LEFT", "RIGHT", "FULL", "CROSS")
_CLAUSE_AFTER_TABLES = ("WHERE", "ON", "GROUP", "ORDER", "HAVING", "LIMIT")
_CONDITION_KEYWORDS = ("WHERE", "AND", "OR", "ON", "HAVING")


def infer_context(tokens: list[Token], offset: int, symbols: SymbolTable) -> SqlContext:
    """Classify the editor position ``offset`` within ``tokens``."""
    dotted = _dot_prefix(tokens, offset)
    if dotted is not None:
        return SqlContext.dot_column(symbols.resolve(dotted) or dotted)

    before = [t for t in meaningful(tokens) if t.end <= offset]
    stmt_start = 0
    for idx, token in enumerate(before):
        if token.is_punct(";"):
            stmt_start = idx + 1
    return _infer_statement(before[stmt_start:])


def _dot_prefix(tokens: list[Token], offset: int) -> str | None:
    """Name written before the ``.`` the cursor is completing after, if any."""
    items = meaningful(tokens)
    dot_idx = None
    for idx, token in enumerate(items):
        if token.is_punct(".") and token.end <= offset:
            dot_idx = idx
    if dot_idx is None or dot_idx == 0:
        return None
    dot = items[dot_idx]
    if dot_idx + 1 < len(items):
        nxt = items[dot_idx + 1]
        if nxt.start >= dot.end and offset > nxt.end:
            return None
    owner = items[dot_idx - 1]
    if not owner.is_identifier:
        return None
    return owner.identifier_text()


def _infer_statement(stmt: list[Token]) -> SqlContext:
    if not stmt:
        return START

    open_paren = _innermost_open_paren(stmt)
    if open_paren is not None:
        inner = stmt[open_paren + 1 :]
        if inner and inner[0].is_keyword("SELECT", "WITH"):
            return _infer_statement(inner)
        return _context_in_parens(stmt, open_paren)

    keyword_positions = [idx for idx, t in enumerate(stmt) if t.keyword is not None]
    if not keyword_positions:
        return START
    for idx in reversed(keyword_positions):
        ctx = _context_from_keyword(stmt, idx)
        if ctx is not None:
            return ctx
    return SELECT_COLUMNS


def _innermost_open_paren(stmt: list[Token]) -> int | None:
    depth = 0
    for idx in range(len(stmt) - 1, -1, -1):
        if stmt[idx].is_punct(")"):
            depth += 1
        elif stmt[idx].is_punct("("):
            if depth == 0:
                return idx
            depth -= 1
    return None


def _context_in_parens(stmt: list[Token], paren_idx: int) -> SqlContext:
    if paren_idx > 0 and stmt[paren_idx - 1].is_keyword("VALUES"):
        return VALUES
    i = paren_idx - 1
    while i >= 0 and stmt[i].is_identifier:
        i -= 1
    if i > 0 and stmt[i].is_keyword("TABLE") and stmt[i - 1].is_keyword("CREATE"):
        return CREATE_TABLE
    return FUNCTION_ARGS


def _has_keyword(tokens: list[Token], names: tuple[str, ...]) -> bool:
    return any(t.is_keyword(*names) for t in tokens)


def _context_from_keyword(stmt: list[Token], idx: int) -> SqlContext | None:
    """Context implied by keyword ``stmt[idx]``; None when it says nothing."""
    keyword = stmt[idx].keyword
    after = stmt[idx + 1 :]
    prev = stmt[idx - 1] if idx > 0 else None

    if keyword in ("SELECT", "DISTINCT", "ALL"):
        if _has_keyword(after, ("FROM",)):
            return _later_context(after)
        return SELECT_COLUMNS
    if keyword in _TABLE_SOURCE_KEYWORDS:
        if _has_keyword(after, _CLAUSE_AFTER_TABLES):
            return _later_context(after)
        return TABLE_NAME
    if keyword == "INTO":
        return TABLE_NAME
    if keyword == "UPDATE":
        if _has_keyword(after, ("SET",)):
            return _later_context(after)
        return TABLE_NAME
    if keyword in _CONDITION_KEYWORDS:
        return CONDITION
    if keyword in ("ORDER", "GROUP"):
        return ORDER_BY if _has_keyword(after, ("BY",)) else START
    if keyword == "BY":
        if prev is not None and prev.is_keyword("ORDER", "GROUP"):
            return ORDER_BY
        return START
    if keyword == "SET":
        return SET_CLAUSE
    if keyword == "VALUES":
        return VALUES
    if keyword == "CREATE":
        return CREATE_TABLE if _has_keyword(after, ("TABLE",)) else START
    if keyword == "TABLE":
        if prev is not None and prev.is_keyword("CREATE"):
            return CREATE_TABLE
        return START
    return None


def _later_context(tokens: list[Token]) -> SqlContext:
    for token in reversed(tokens):
        keyword = token.keyword
        if keyword is None or keyword == "BY":
            continue
        if keyword in _CONDITION_KEYWORDS:
            return CONDITION
        if keyword in ("ORDER", "GROUP"):
            return ORDER_BY
        if keyword == "SET":
            return SET_CLAUSE
        if keyword in _TABLE_SOURCE_KEYWORDS:
            return TABLE_NAME
        if keyword == "SELECT":
            return SELECT_COLUMNS
    return START
