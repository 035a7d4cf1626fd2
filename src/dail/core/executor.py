"""Statement-level helpers shared by every connection.

Splitting, classification and result shaping are dialect-agnostic; the
connections only decide how a single statement reaches the driver.
"""

from __future__ import annotations

import asyncio
import re
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Union

import sqlparse

from .errors import CancelledError
from .sql_editor.tokenizer import TokenKind, tokenize


class CancelToken:
    """Cooperative cancellation signal passed through ``ExecOptions``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError()


_SCOPED_TOKEN: ContextVar[CancelToken | None] = ContextVar("dail_cancel_token", default=None)


@contextmanager
def cancel_scope(token: CancelToken | None) -> Iterator[None]:
    """Apply ``token`` to every statement run by the current task inside the block.

    Catalog and table-data helpers build their own ``ExecOptions``; the scope
    lets a façade call cancel them without threading a token through each one.
    """
    reset = _SCOPED_TOKEN.set(token)
    try:
        yield
    finally:
        _SCOPED_TOKEN.reset(reset)


def scoped_cancel_token() -> CancelToken | None:
    return _SCOPED_TOKEN.get()


@dataclass
class ExecOptions:
    stop_on_error: bool = True
    transactional: bool = False
    max_rows: int | None = 1000
    cancel_token: CancelToken | None = None

    @classmethod
    def from_settings(cls, settings: dict, cancel_token: CancelToken | None = None) -> ExecOptions:
        section = settings.get("exec", {})
        return cls(
            stop_on_error=bool(section.get("stop_on_error", True)),
            transactional=bool(section.get("transactional", False)),
            max_rows=section.get("max_rows", 1000),
            cancel_token=cancel_token,
        )


@dataclass
class QueryResult:
    sql: str
    columns: list[str]
    rows: list[list[str | None]]
    elapsed_ms: int
    table_name: str | None = None
    editable: bool = False
    truncated: bool = False

    @property
    def is_error(self) -> bool:
        return False


@dataclass
class ExecResult:
    sql: str
    rows_affected: int
    elapsed_ms: int
    message: str | None = None

    @property
    def is_error(self) -> bool:
        return False


@dataclass
class ErrorResult:
    sql: str
    message: str
    code: str | None = None
    state: str | None = None
    kind: str = "QueryFailed"

    @property
    def is_error(self) -> bool:
        return True


SqlResult = Union[QueryResult, ExecResult, ErrorResult]


@dataclass
class ScriptResult:
    results: list[SqlResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.is_error)


class StatementKind(str, Enum):
    QUERY = "Query"
    DML = "Dml"
    DDL = "Ddl"
    TRANSACTION = "Transaction"
    COMMAND = "Command"
    EXEC = "Exec"


_QUERY_PREFIXES = ("SELECT", "SHOW", "DESC", "DESCRIBE", "EXPLAIN", "WITH", "TABLE", "PRAGMA", "VALUES")
_DML_PREFIXES = ("INSERT", "UPDATE", "DELETE", "REPLACE", "MERGE")
_DDL_PREFIXES = ("CREATE", "ALTER", "DROP", "TRUNCATE", "RENAME", "COMMENT")
_TRANSACTION_PREFIXES = ("BEGIN", "COMMIT", "ROLLBACK", "START", "SAVEPOINT", "RELEASE")
_COMMAND_PREFIXES = ("USE", "SET")

_FIRST_WORD_RE = re.compile(r"^[\s(]*([A-Za-z_]+)")
_COMPLEX_SELECT_RE = re.compile(
    r"\b(JOIN|UNION|INTERSECT|EXCEPT|DISTINCT|HAVING)\b|\bGROUP\s+BY\b", re.IGNORECASE
)
_AGGREGATE_RE = re.compile(
    r"\b(COUNT|SUM|AVG|MAX|MIN|GROUP_CONCAT|STRING_AGG)\s*\(", re.IGNORECASE
)
_FROM_TABLE_RE = re.compile(r"\sFROM\s+(\S+)", re.IGNORECASE)


def strip_comments(sql: str) -> str:
    return sqlparse.format(sql, strip_comments=True).strip()


def first_keyword(sql: str) -> str:
    match = _FIRST_WORD_RE.match(strip_comments(sql))
    return match.group(1).upper() if match else ""


def split_statements(script: str) -> list[str]:
    """Split a script on top-level ``;`` into trimmed statements.

    Quotes, comments and BEGIN...END bodies are respected by sqlparse; empty
    and comment-only pieces are dropped and the terminator is removed.
    """
    statements: list[str] = []
    for raw in sqlparse.split(script):
        stmt = raw.strip()
        while stmt.endswith(";"):
            stmt = stmt[:-1].rstrip()
        if stmt and strip_comments(stmt):
            statements.append(stmt)
    return statements


_PLSQL_UNIT_RE = re.compile(
    r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:(?:NON)?EDITIONABLE\s+)?"
    r"(?:PROCEDURE|FUNCTION|TRIGGER|PACKAGE|TYPE\s+BODY)\b",
    re.IGNORECASE,
)


def is_plsql_block(sql: str) -> bool:
    """Anonymous PL/SQL blocks and stored program units, which keep their ``;``."""
    body = strip_comments(sql).lstrip("( \t\r\n")
    word = first_keyword(body)
    if word in ("BEGIN", "DECLARE"):
        return True
    return bool(_PLSQL_UNIT_RE.match(body))


_UNCOUNTED_END_TARGETS = ("IF", "LOOP", "WHILE", "FOR")
_SLASH_LINE_RE = re.compile(r"^[ \t]*/[ \t]*$", re.MULTILINE)


def _is_slash_line(script: str, start: int, end: int) -> bool:
    line_start = script.rfind("\n", 0, start) + 1
    line_end = script.find("\n", end)
    return script[line_start : len(script) if line_end == -1 else line_end].strip() == "/"


def _finish_piece(piece: str, block: bool) -> str | None:
    stmt = piece.strip()
    if block:
        if stmt and not stmt.endswith(";"):
            stmt += ";"
    else:
        while stmt.endswith(";"):
            stmt = stmt[:-1].rstrip()
    if not stmt or not strip_comments(stmt):
        return None
    return stmt


def split_plsql_script(script: str) -> list[str]:
    """Split an Oracle script; plain SQL drops its ``;``, PL/SQL blocks keep it.

    A block ends at the ``;`` after the ``END`` closing its outermost
    ``BEGIN`` (a package spec at its first ``END``). When the script uses
    SQL*Plus ``/`` lines, blocks run to the next ``/`` instead, which is the
    only reliable terminator for package bodies.
    """
    tokens = tokenize(script)
    statements: list[str] = []
    start = 0
    block: bool | None = None
    slash_mode = False
    depth = 0
    closed = False
    prev_word = ""

    def emit(end: int) -> None:
        nonlocal block, slash_mode, depth, closed, prev_word
        stmt = _finish_piece(script[start:end], bool(block))
        if stmt is not None:
            statements.append(stmt)
        block, slash_mode, depth, closed, prev_word = None, False, 0, False, ""

    for index, token in enumerate(tokens):
        if token.is_trivia:
            continue
        if token.kind is TokenKind.OPERATOR and token.text == "/" and _is_slash_line(
            script, token.start, token.end
        ):
            emit(token.start)
            start = token.end
            continue
        if block is None:
            block = is_plsql_block(script[token.start : token.start + 200])
            slash_mode = block and _SLASH_LINE_RE.search(script, token.start) is not None
        if token.is_punct(";"):
            if not block:
                emit(token.start)
                start = token.end
            elif closed and not slash_mode:
                emit(token.end)
                start = token.end
            continue
        if not block or token.kind not in (TokenKind.KEYWORD, TokenKind.IDENTIFIER):
            prev_word = ""
            continue
        word = token.text.upper()
        if word == "BEGIN" or (word == "CASE" and prev_word != "END"):
            depth += 1
        elif word == "END":
            nxt = next((t for t in tokens[index + 1 :] if not t.is_trivia), None)
            if nxt is None or nxt.text.upper() not in _UNCOUNTED_END_TARGETS:
                depth -= 1
                if depth <= 0:
                    closed = True
        prev_word = word
    emit(len(script))
    return statements


def is_query_statement(sql: str) -> bool:
    return first_keyword(sql) in _QUERY_PREFIXES


def classify_statement(sql: str) -> StatementKind:
    word = first_keyword(sql)
    if word in _QUERY_PREFIXES:
        return StatementKind.QUERY
    if word in _DML_PREFIXES:
        return StatementKind.DML
    if word in _DDL_PREFIXES:
        return StatementKind.DDL
    if word in _TRANSACTION_PREFIXES:
        return StatementKind.TRANSACTION
    if word in _COMMAND_PREFIXES:
        return StatementKind.COMMAND
    return StatementKind.EXEC


def analyze_select_editability(sql: str) -> tuple[bool, str | None]:
    """Whether a result set maps back onto exactly one table, and which one."""
    body = strip_comments(sql)
    if first_keyword(body) != "SELECT":
        return False, None
    if _COMPLEX_SELECT_RE.search(body) or _AGGREGATE_RE.search(body):
        return False, None
    match = _FROM_TABLE_RE.search(body)
    if match is None:
        return False, None
    table = match.group(1).rstrip(";").strip("`\"'[]")
    if not table or "(" in table or "," in table:
        return False, None
    if "." in table:
        table = table.rsplit(".", 1)[1].strip("`\"[]")
    return True, table


def format_exec_message(sql: str, rows_affected: int) -> str:
    word = first_keyword(sql)
    upper = strip_comments(sql).upper()
    if word == "INSERT":
        return f"Inserted {rows_affected} row(s)"
    if word == "UPDATE":
        return f"Updated {rows_affected} row(s)"
    if word == "DELETE":
        return f"Deleted {rows_affected} row(s)"
    if word == "REPLACE":
        return f"Replaced {rows_affected} row(s)"
    if word == "CREATE":
        return "Object created successfully"
    if word == "ALTER":
        return "Object altered successfully"
    if word == "DROP":
        return "Object dropped successfully"
    if word == "TRUNCATE":
        return "Table truncated successfully"
    if word == "RENAME":
        return "Object renamed successfully"
    if word == "USE":
        return "Database changed successfully"
    if word == "SET":
        return "Variable set successfully"
    if word == "BEGIN" or upper.startswith("START TRANSACTION"):
        return "Transaction started"
    if word == "COMMIT":
        return "Transaction committed"
    if word == "ROLLBACK":
        return "Transaction rolled back"
    return f"Query executed successfully, {rows_affected} row(s) affected"


def has_row_limit(sql: str) -> bool:
    upper = strip_comments(sql).upper()
    return bool(re.search(r"\bLIMIT\b|\bTOP\s*\(?\d|\bFETCH\s+(FIRST|NEXT)\b", upper))


def append_limit(sql: str, max_rows: int | None) -> str:
    """Add ``LIMIT max_rows`` to a plain SELECT that has no limit of its own."""
    if not max_rows or max_rows <= 0 or first_keyword(sql) not in ("SELECT", "WITH"):
        return sql
    if has_row_limit(sql):
        return sql
    return f"{sql.rstrip().rstrip(';')} LIMIT {int(max_rows)}"
