"""Ranked completion and hover for the SQL editor.

The pipeline is tokenize -> symbol table -> context -> items. Offsets in and
out are UTF-8 byte offsets into the text, matching ``Token.byte_start``. Scores are
"lower sorts first": every kind has a base score, contextually relevant kinds
get ``CONTEXT_BOOST`` off, and a prefix hit gets ``PREFIX_MATCH_BOOST`` off.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..logs import Logger, null_logger
from ..types import SqlCompletionInfo, SqlSchema
from .context_inferrer import ContextKind, SqlContext, infer_context
from .symbol_table import SymbolTable
from .tokenizer import byte_to_char, char_to_byte, tokenize


CONTEXT_BOOST = 2500
PREFIX_MATCH_BOOST = 200
MAX_ITEMS = 50

SQL_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("SELECT", "Query rows from table(s)"),
    ("INSERT", "Insert new rows"),
    ("UPDATE", "Update existing rows"),
    ("DELETE", "Delete rows"),
    ("CREATE", "Create database object"),
    ("ALTER", "Modify database object"),
    ("DROP", "Remove database object"),
    ("TRUNCATE", "Remove all rows from table"),
    ("FROM", "Specify source table(s)"),
    ("WHERE", "Filter rows with predicates"),
    ("JOIN", "Combine rows from tables"),
    ("INNER JOIN", "Inner join tables"),
    ("LEFT JOIN", "Left outer join"),
    ("RIGHT JOIN", "Right outer join"),
    ("FULL JOIN", "Full outer join"),
    ("CROSS JOIN", "Cross product of tables"),
    ("ON", "Join condition"),
    ("USING", "Join using common columns"),
    ("GROUP BY", "Group rows for aggregation"),
    ("HAVING", "Filter grouped rows"),
    ("ORDER BY", "Sort result set"),
    ("ASC", "Ascending order"),
    ("DESC", "Descending order"),
    ("LIMIT", "Limit number of rows"),
    ("OFFSET", "Skip rows"),
    ("VALUES", "Specify values for INSERT"),
    ("INTO", "Target table for INSERT"),
    ("SET", "Set column values for UPDATE"),
    ("AND", "Logical AND"),
    ("OR", "Logical OR"),
    ("NOT", "Logical NOT"),
    ("IN", "Value in list"),
    ("EXISTS", "Subquery returns rows"),
    ("BETWEEN", "Value in range"),
    ("LIKE", "Pattern matching"),
    ("IS NULL", "Check for NULL"),
    ("IS NOT NULL", "Check for non-NULL"),
    ("AS", "Alias"),
    ("DISTINCT", "Remove duplicates"),
    ("ALL", "Include all rows"),
    ("UNION", "Combine result sets"),
    ("UNION ALL", "Combine without dedup"),
    ("INTERSECT", "Common rows"),
    ("EXCEPT", "Difference of sets"),
    ("CASE", "Conditional expression"),
    ("WHEN", "Condition in CASE"),
    ("THEN", "Result in CASE"),
    ("ELSE", "Default in CASE"),
    ("END", "End CASE expression"),
    ("WITH", "Common table expression"),
    ("TABLE", "Table keyword"),
    ("INDEX", "Index keyword"),
    ("VIEW", "View keyword"),
    ("PRIMARY KEY", "Primary key constraint"),
    ("FOREIGN KEY", "Foreign key constraint"),
    ("REFERENCES", "Reference constraint"),
    ("UNIQUE", "Unique constraint"),
    ("CHECK", "Check constraint"),
    ("DEFAULT", "Default value"),
    ("NOT NULL", "Not null constraint"),
    ("NULL", "NULL value"),
    ("TRUE", "Boolean true"),
    ("FALSE", "Boolean false"),
)

SQL_FUNCTIONS: tuple[tuple[str, str], ...] = (
    ("COUNT(*)", "Count all rows"),
    ("COUNT(col)", "Count non-NULL values"),
    ("SUM(col)", "Sum of values"),
    ("AVG(col)", "Average value"),
    ("MIN(col)", "Minimum value"),
    ("MAX(col)", "Maximum value"),
    ("COALESCE(val1, val2, ...)", "First non-NULL value"),
    ("NULLIF(val1, val2)", "NULL if values equal"),
    ("CAST(expr AS type)", "Type conversion"),
    ("UPPER(str)", "Convert to uppercase"),
    ("LOWER(str)", "Convert to lowercase"),
    ("TRIM(str)", "Remove whitespace"),
    ("LENGTH(str)", "String length"),
    ("SUBSTRING(str, pos, len)", "Extract substring"),
    ("CONCAT(str1, str2)", "Concatenate strings"),
    ("REPLACE(str, from, to)", "Replace substring"),
    ("ABS(x)", "Absolute value"),
    ("ROUND(x, d)", "Round number"),
    ("FLOOR(x)", "Round down"),
    ("CEIL(x)", "Round up"),
    ("NOW()", "Current timestamp"),
    ("CURRENT_DATE", "Current date"),
    ("CURRENT_TIME", "Current time"),
)

DEFAULT_SNIPPETS: tuple[tuple[str, str, str], ...] = (
    ("sel*", "SELECT * FROM $1 WHERE $2", "Select all columns"),
    ("selc", "SELECT COUNT(*) FROM $1 WHERE $2", "Count rows"),
    ("ins", "INSERT INTO $1 ($2) VALUES ($3)", "Insert row"),
    ("upd", "UPDATE $1 SET $2 WHERE $3", "Update rows"),
    ("del", "DELETE FROM $1 WHERE $2", "Delete rows"),
)


class CompletionKind(str, Enum):
    KEYWORD = "Keyword"
    TABLE = "Table"
    COLUMN = "Column"
    FUNCTION = "Function"
    OPERATOR = "Operator"
    DATA_TYPE = "DataType"
    SNIPPET = "Snippet"

    @property
    def lsp_kind(self) -> int:
        return _LSP_KINDS[self]


# LSP CompletionItemKind numbers.
_LSP_KINDS = {
    CompletionKind.KEYWORD: 14,
    CompletionKind.TABLE: 22,
    CompletionKind.COLUMN: 5,
    CompletionKind.FUNCTION: 3,
    CompletionKind.OPERATOR: 24,
    CompletionKind.DATA_TYPE: 25,
    CompletionKind.SNIPPET: 15,
}

_BASE_SCORES = {
    CompletionKind.KEYWORD: 1000,
    CompletionKind.TABLE: 2000,
    CompletionKind.COLUMN: 3000,
    CompletionKind.SNIPPET: 4000,
    CompletionKind.OPERATOR: 4500,
    CompletionKind.FUNCTION: 5000,
    CompletionKind.DATA_TYPE: 3000,
}

_COLUMN_BOOST_CONTEXTS = {
    ContextKind.DOT_COLUMN,
    ContextKind.SELECT_COLUMNS,
    ContextKind.CONDITION,
    ContextKind.ORDER_BY,
    ContextKind.SET_CLAUSE,
    ContextKind.FUNCTION_ARGS,
}
_SCOPED_COLUMN_CONTEXTS = {
    ContextKind.SELECT_COLUMNS,
    ContextKind.CONDITION,
    ContextKind.ORDER_BY,
    ContextKind.SET_CLAUSE,
}


@dataclass(frozen=True)
class _Visibility:
    tables: bool = False
    columns: bool = False
    keywords: bool = False
    functions: bool = False
    types: bool = False


_VISIBILITY = {
    ContextKind.START: _Visibility(tables=True, columns=True, keywords=True),
    ContextKind.TABLE_NAME: _Visibility(tables=True),
    ContextKind.SELECT_COLUMNS: _Visibility(columns=True, keywords=True, functions=True),
    ContextKind.CONDITION: _Visibility(columns=True, keywords=True, functions=True),
    ContextKind.ORDER_BY: _Visibility(columns=True, keywords=True, functions=True),
    ContextKind.SET_CLAUSE: _Visibility(columns=True, keywords=True, functions=True),
    ContextKind.FUNCTION_ARGS: _Visibility(columns=True, functions=True),
    ContextKind.CREATE_TABLE: _Visibility(keywords=True, types=True),
    ContextKind.VALUES: _Visibility(functions=True),
}


def calculate_score(context: SqlContext, kind: CompletionKind, matches_prefix: bool) -> int:
    score = _BASE_SCORES[kind]
    if kind is CompletionKind.COLUMN and context.kind in _COLUMN_BOOST_CONTEXTS:
        score -= CONTEXT_BOOST
    elif kind is CompletionKind.TABLE and context.kind is ContextKind.TABLE_NAME:
        score -= CONTEXT_BOOST
    if matches_prefix:
        score -= PREFIX_MATCH_BOOST
    return score


def score_to_sort_text(score: int, label: str) -> str:
    clamped = max(0, min(99999, score))
    return f"{clamped:05d}_{label}"


@dataclass(frozen=True)
class CompletionItem:
    label: str
    kind: CompletionKind
    insert_text: str
    sort_text: str
    filter_text: str
    replace_start: int
    replace_end: int
    detail: str | None = None
    documentation: str = ""
    is_snippet: bool = False

    def to_lsp(self, text: str) -> dict[str, Any]:
        rng = {
            "start": _position(text, byte_to_char(text, self.replace_start)),
            "end": _position(text, byte_to_char(text, self.replace_end)),
        }
        payload: dict[str, Any] = {
            "label": self.label,
            "kind": self.kind.lsp_kind,
            "textEdit": {"newText": self.insert_text, "insert": rng, "replace": rng},
            "filterText": self.filter_text,
            "sortText": self.sort_text,
            "documentation": self.documentation,
            "insertTextFormat": 2 if self.is_snippet else 1,
        }
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload


def _position(text: str, offset: int) -> dict[str, int]:
    line = text.count("\n", 0, offset)
    line_start = text.rfind("\n", 0, offset) + 1
    return {"line": line, "character": offset - line_start}


def _is_word_char(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch == "_")


def word_start(text: str, offset: int) -> int:
    start = offset
    while start > 0 and _is_word_char(text[start - 1]):
        start -= 1
    return start


def word_at(text: str, offset: int) -> str:
    offset = max(0, min(offset, len(text)))
    start = word_start(text, offset)
    end = offset
    while end < len(text) and _is_word_char(text[end]):
        end += 1
    return text[start:end]


def _function_name(label: str) -> str:
    return label.split("(", 1)[0]


class _ItemBuilder:
    def __init__(self, context: SqlContext, word: str, start: int, end: int) -> None:
        self.context = context
        self.word = word
        self.start = start
        self.end = end
        self.items: list[CompletionItem] = []
        self._seen: set[tuple[CompletionKind, str]] = set()

    def matches(self, match_label: str) -> bool:
        return not self.word or match_label.upper().startswith(self.word)

    def add(
        self,
        kind: CompletionKind,
        label: str,
        doc: str = "",
        *,
        detail: str | None = None,
        insert_text: str | None = None,
        match_label: str | None = None,
        is_snippet: bool = False,
    ) -> None:
        match_label = label if match_label is None else match_label
        if not self.matches(match_label) or (kind, label) in self._seen:
            return
        self._seen.add((kind, label))
        prefix_hit = bool(self.word) and match_label.upper().startswith(self.word)
        score = calculate_score(self.context, kind, prefix_hit)
        self.items.append(
            CompletionItem(
                label=label,
                kind=kind,
                insert_text=label if insert_text is None else insert_text,
                sort_text=score_to_sort_text(score, label),
                filter_text=match_label[: len(self.word)] if prefix_hit else "",
                replace_start=self.start,
                replace_end=self.end,
                detail=detail,
                documentation=doc,
                is_snippet=is_snippet,
            )
        )


class SqlCompletionProvider:
    """Completion and hover over one dialect's dictionaries and a user schema."""

    def __init__(
        self,
        schema: SqlSchema | None = None,
        dialect_info: SqlCompletionInfo | None = None,
        max_items: int = MAX_ITEMS,
        logger: Logger | None = None,
    ) -> None:
        self.schema = schema or SqlSchema()
        self.dialect_info = dialect_info
        self.max_items = max_items
        self.logger = logger or null_logger

    @staticmethod
    def is_completion_trigger(new_text: str) -> bool:
        return not new_text.endswith(";")

    def context_at(self, text: str, offset: int) -> SqlContext:
        pos = byte_to_char(text, offset)
        tokens = tokenize(text)
        return infer_context(tokens, pos, SymbolTable.build(tokens, pos))

    def completions(self, text: str, offset: int) -> list[CompletionItem]:
        try:
            return self._completions(text, offset)
        except Exception as exc:  # completion never raises
            self.logger(f"completion failed at offset {offset}: {type(exc).__name__}: {exc}")
            return []

    def _completions(self, text: str, offset: int) -> list[CompletionItem]:
        offset = byte_to_char(text, offset)
        line_start = text.rfind("\n", 0, offset) + 1
        if "--" in text[line_start:offset]:
            return []

        start = word_start(text, offset)
        word = text[start:offset].upper()
        tokens = tokenize(text)
        symbols = SymbolTable.build(tokens, offset)
        context = infer_context(tokens, offset, symbols)
        builder = _ItemBuilder(context, word, char_to_byte(text, start), char_to_byte(text, offset))
        info = self.dialect_info

        if context.kind is ContextKind.DOT_COLUMN:
            table = context.table or ""
            for column, doc in self.schema.columns_for(table):
                builder.add(CompletionKind.COLUMN, column, doc, detail=f"{table}.column")
            return self._finish(builder)

        show = _VISIBILITY.get(context.kind, _Visibility())

        if show.tables:
            for table, doc in self.schema.tables:
                builder.add(CompletionKind.TABLE, table, doc, detail="Table")

        if show.columns:
            if context.kind in _SCOPED_COLUMN_CONTEXTS:
                for table in symbols.tables():
                    for column, doc in self.schema.columns_for(table):
                        builder.add(CompletionKind.COLUMN, column, doc, detail=f"{table}.column")
            else:
                for column, doc in self.schema.columns:
                    builder.add(CompletionKind.COLUMN, column, doc, detail="Column")

        if show.keywords:
            for keyword, doc in SQL_KEYWORDS:
                builder.add(CompletionKind.KEYWORD, keyword, doc)
            if info is not None:
                for keyword, doc in info.keywords:
                    builder.add(CompletionKind.KEYWORD, keyword, doc)
                for op, doc in info.operators:
                    builder.add(CompletionKind.OPERATOR, op, doc)

        if show.functions:
            functions = list(SQL_FUNCTIONS) + (list(info.functions) if info else [])
            for func, doc in functions:
                builder.add(CompletionKind.FUNCTION, func, doc, match_label=_function_name(func))

        if show.types and info is not None:
            for dtype, doc in info.data_types:
                builder.add(CompletionKind.DATA_TYPE, dtype, doc)

        if context.kind is ContextKind.START:
            snippets = list(DEFAULT_SNIPPETS) + (list(info.snippets) if info else [])
            for label, body, doc in snippets:
                builder.add(CompletionKind.SNIPPET, label, doc, insert_text=body, is_snippet=True)

        return self._finish(builder)

    def _finish(self, builder: _ItemBuilder) -> list[CompletionItem]:
        items = sorted(builder.items, key=lambda item: (item.sort_text, item.label))
        return items[: self.max_items]

    def hover(self, text: str, offset: int) -> str | None:
        try:
            return self._hover(text, offset)
        except Exception as exc:  # hover never raises
            self.logger(f"hover failed at offset {offset}: {type(exc).__name__}: {exc}")
            return None

    def _hover(self, text: str, offset: int) -> str | None:
        word = word_at(text, byte_to_char(text, offset)).upper()
        if not word:
            return None
        info = self.dialect_info or SqlCompletionInfo()
        sources = [
            (SQL_KEYWORDS, False),
            (SQL_FUNCTIONS, True),
            (info.keywords, False),
            (info.functions, True),
            (info.operators, False),
            (info.data_types, True),
        ]
        for entries, by_name in sources:
            for label, doc in entries:
                key = _function_name(label) if by_name else label
                if key.upper() == word:
                    return f"**{label}**\n\n{doc}"
        return None
