from __future__ import annotations

import pytest

from dail.core.sql_editor.context_inferrer import ContextKind, infer_context
from dail.core.sql_editor.symbol_table import SymbolTable
from dail.core.sql_editor.tokenizer import TokenKind, byte_to_char, char_to_byte, meaningful, tokenize


@pytest.mark.parametrize(
    "sql",
    [
        "",
        "   \n\t",
        "SELECT * FROM t;",
        "select 'it''s', \"we\"\"ird\", `x``y`, [a]]b] from t",
        "SELECT 1.5e10, .5, 42 /* block */ -- line",
        "SELECT 'unterminated",
        "/* never closed",
        "SELECT @@version, @local, $1, a::int, j->'k' FROM t WHERE a<>b AND c>=d",
        "INSERT INTO t VALUES (1, 'Ã©â')",
        "Â SELECTãx",
    ],
)
def test_tokenize_is_lossless(sql: str) -> None:
    tokens = tokenize(sql)
    assert "".join(t.text for t in tokens) == sql
    position = 0
    for token in tokens:
        assert token.start == position
        assert token.end == token.start + len(token.text)
        position = token.end


def test_token_byte_offsets_follow_utf8_width() -> None:
    sql = "SELECT 'é✓', naïve FROM t"
    tokens = tokenize(sql)
    encoded = sql.encode("utf-8")

    position = 0
    for token in tokens:
        assert token.byte_start == position
        assert encoded[token.byte_start : token.byte_end].decode("utf-8") == token.text
        position = token.byte_end
    assert position == len(encoded)

    cut = sql.index("FROM")
    assert char_to_byte(sql, cut) == len(sql[:cut].encode("utf-8"))
    assert byte_to_char(sql, char_to_byte(sql, cut)) == cut
    # inside the two-byte "é" rounds down to its start
    assert byte_to_char(sql, len("SELECT '".encode("utf-8")) + 1) == len("SELECT '")


def test_tokenize_kinds() -> None:
    tokens = meaningful(tokenize("SELECT name, 'x' FROM \"Order\" WHERE id >= 10;"))
    kinds = [(t.kind, t.text) for t in tokens]

    assert kinds == [
        (TokenKind.KEYWORD, "SELECT"),
        (TokenKind.IDENTIFIER, "name"),
        (TokenKind.PUNCT, ","),
        (TokenKind.STRING, "'x'"),
        (TokenKind.KEYWORD, "FROM"),
        (TokenKind.QUOTED_IDENTIFIER, '"Order"'),
        (TokenKind.KEYWORD, "WHERE"),
        (TokenKind.IDENTIFIER, "id"),
        (TokenKind.OPERATOR, ">="),
        (TokenKind.NUMBER, "10"),
        (TokenKind.PUNCT, ";"),
    ]


def test_quoted_identifier_text_undoes_escapes() -> None:
    quoted = [t for t in tokenize('"a""b" `c``d` [e]]f]') if t.kind is TokenKind.QUOTED_IDENTIFIER]
    assert [t.identifier_text() for t in quoted] == ['a"b', "c`d", "e]f"]


def test_keywords_are_case_insensitive() -> None:
    token = tokenize("select")[0]
    assert token.kind is TokenKind.KEYWORD
    assert token.keyword == "SELECT"
    assert token.is_keyword("SELECT", "FROM")


def test_symbol_table_resolves_aliases() -> None:
    sql = (
        "SELECT * FROM shop.users AS u, orders o "
        "LEFT OUTER JOIN items ON items.order_id = o.id "
        "JOIN (SELECT 1) sub ON 1 = 1"
    )
    symbols = SymbolTable.build(tokenize(sql))

    assert symbols.resolve("u") == "users"
    assert symbols.resolve("O") == "orders"
    assert symbols.resolve("items") == "items"
    assert symbols.resolve("sub") == "sub"
    assert symbols.resolve("missing") is None
    assert symbols.tables() == ["users", "orders", "items", "sub"]


def test_symbol_table_later_binding_wins() -> None:
    symbols = SymbolTable.build(tokenize("SELECT * FROM a x; SELECT * FROM b x"))
    assert symbols.resolve("x") == "b"
    assert len(symbols) == 1


def test_natural_join_is_not_an_alias() -> None:
    symbols = SymbolTable.build(tokenize("SELECT * FROM orders NATURAL JOIN customers c"))

    assert symbols.resolve("natural") is None
    assert symbols.resolve("orders") == "orders"
    assert symbols.resolve("c") == "customers"
    assert symbols.tables() == ["orders", "customers"]


def test_symbol_table_scopes_to_enclosing_subquery() -> None:
    sql = "SELECT * FROM users u WHERE u.id IN (SELECT o.user_id FROM orders o WHERE o.total > 1)"
    tokens = tokenize(sql)

    outer = SymbolTable.build(tokens)
    assert outer.tables() == ["users"]
    assert outer.resolve("o") is None

    inner = SymbolTable.build(tokens, sql.index("o.total"))
    assert inner.tables() == ["orders"]
    assert inner.resolve("u") is None

    after = SymbolTable.build(tokens, len(sql))
    assert after.tables() == ["users"]


def _context(sql: str, marker: str = "|"):
    offset = sql.index(marker)
    text = sql.replace(marker, "", 1)
    tokens = tokenize(text)
    return infer_context(tokens, offset, SymbolTable.build(tokens))


@pytest.mark.parametrize(
    ("sql", "kind"),
    [
        ("|", ContextKind.START),
        ("SELECT |", ContextKind.SELECT_COLUMNS),
        ("SELECT DISTINCT |", ContextKind.SELECT_COLUMNS),
        ("SELECT a FROM |", ContextKind.TABLE_NAME),
        ("SELECT a FROM t JOIN |", ContextKind.TABLE_NAME),
        ("SELECT a FROM t WHERE |", ContextKind.CONDITION),
        ("SELECT a FROM t WHERE x = 1 AND |", ContextKind.CONDITION),
        ("SELECT a FROM t ORDER BY |", ContextKind.ORDER_BY),
        ("SELECT a FROM t GROUP BY |", ContextKind.ORDER_BY),
        ("UPDATE |", ContextKind.TABLE_NAME),
        ("UPDATE t SET |", ContextKind.SET_CLAUSE),
        ("INSERT INTO |", ContextKind.TABLE_NAME),
        ("INSERT INTO t VALUES (|", ContextKind.VALUES),
        ("CREATE TABLE t (|", ContextKind.CREATE_TABLE),
        ("CREATE TABLE t (id |", ContextKind.CREATE_TABLE),
        ("SELECT COUNT(|", ContextKind.FUNCTION_ARGS),
        ("SELECT a FROM t WHERE a IN (SELECT |", ContextKind.SELECT_COLUMNS),
        ("SELECT 1; SELECT a FROM |", ContextKind.TABLE_NAME),
    ],
)
def test_infer_context(sql: str, kind: ContextKind) -> None:
    assert _context(sql).kind is kind


def test_dot_column_resolves_alias_or_keeps_name() -> None:
    ctx = _context("SELECT o.| FROM orders o")
    assert ctx.kind is ContextKind.DOT_COLUMN
    assert ctx.table == "orders"

    ctx = _context("SELECT * FROM t WHERE people.|")
    assert ctx.kind is ContextKind.DOT_COLUMN
    assert ctx.table == "people"


def test_dot_column_with_partial_word() -> None:
    ctx = _context("SELECT o.to| FROM orders o")
    assert ctx.kind is ContextKind.DOT_COLUMN
    assert ctx.table == "orders"


def test_dot_behind_cursor_is_not_dot_column() -> None:
    ctx = _context("SELECT o.total, | FROM orders o")
    assert ctx.kind is ContextKind.SELECT_COLUMNS
