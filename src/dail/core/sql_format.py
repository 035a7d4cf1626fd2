from __future__ import annotations

import sqlparse


def format_sql(sql: str, indent_width: int = 2) -> str:
    """Pretty-print ``sql``: one clause per line, upper-case keywords."""
    if not sql.strip():
        return ""
    formatted = sqlparse.format(
        sql,
        reindent=True,
        keyword_case="upper",
        indent_width=indent_width,
        use_space_around_operators=True,
    )
    return formatted.strip()


def compress_sql(sql: str) -> str:
    """Collapse ``sql`` onto one line, dropping comments and redundant whitespace."""
    parts: list[str] = []
    pending_space = False
    for statement in sqlparse.parse(sql):
        for token in statement.flatten():
            if token.is_whitespace or token.ttype in sqlparse.tokens.Comment:
                pending_space = True
                continue
            if pending_space and parts:
                parts.append(" ")
            pending_space = False
            parts.append(token.value)
    return "".join(parts).strip()
