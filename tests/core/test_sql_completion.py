from __future__ import annotations

import pytest

from dail.core.plugins import get_plugin
from dail.core.sql_editor import completion as completion_mod
from dail.core.sql_editor.completion import (
    CompletionKind,
    SqlCompletionProvider,
    calculate_score,
    score_to_sort_text,
)
from dail.core.sql_editor.context_inferrer import SELECT_COLUMNS, TABLE_NAME
from dail.core.types import DatabaseType, SqlSchema


@pytest.fixture()
def schema() -> SqlSchema:
    schema = SqlSchema()
    schema.add_table("users", ["id", "email", "created_at"])
    schema.add_table("orders", ["id", "user_id", "total"])
    schema.add_table("user_roles", ["user_id", "role"])
    return schema


def test_line_comment_yields_nothing(schema: SqlSchema) -> None:
    provider = SqlCompletionProvider(schema=schema)
    sql = "SELECT id FROM users -- pick us"
    start = sql.index("--")
    for offset in range(start + 2, len(sql) + 1):
        assert provider.completions(sql, offset) == []


def test_comment_on_previous_line_does_not_block(schema: SqlSchema) -> None:
    provider = SqlCompletionProvider(schema=schema)
    sql = "-- header\nSELECT * FROM "
    labels = [item.label for item in provider.completions(sql, len(sql))]
    assert "users" in labels


def test_table_context_offers_prefix_matched_tables(schema: SqlSchema) -> None:
    provider = SqlCompletionProvider(schema=schema)
    sql = "SELECT * FROM us"
    items = provider.completions(sql, len(sql))

    assert [item.label for item in items] == ["user_roles", "users"]
    assert all(item.kind is CompletionKind.TABLE for item in items)
    first = items[0]
    assert first.replace_start == len("SELECT * FROM ")
    assert first.replace_end == len(sql)
    assert first.filter_text == "us"


def test_result_list_is_capped() -> None:
    schema = SqlSchema()
    schema.add_table("wide", [f"col_{i:03d}" for i in range(200)])
    provider = SqlCompletionProvider(schema=schema)

    for sql in ("", "SELECT ", "SELECT * FROM wide WHERE ", "SELECT * FROM wide ORDER BY "):
        assert len(provider.completions(sql, len(sql))) <= 50


def test_max_items_is_configurable(schema: SqlSchema) -> None:
    provider = SqlCompletionProvider(schema=schema, max_items=5)
    assert len(provider.completions("", 0)) == 5


def test_sort_text_orders_equal_scores_by_label() -> None:
    assert score_to_sort_text(500, "b") > score_to_sort_text(500, "a")
    assert score_to_sort_text(-10, "x") == "00000_x"
    assert score_to_sort_text(10**6, "x") == "99999_x"
    assert calculate_score(SELECT_COLUMNS, CompletionKind.COLUMN, False) < calculate_score(
        SELECT_COLUMNS, CompletionKind.KEYWORD, False
    )
    assert calculate_score(TABLE_NAME, CompletionKind.TABLE, True) < calculate_score(
        TABLE_NAME, CompletionKind.TABLE, False
    )


def test_sorted_output_is_stable(schema: SqlSchema) -> None:
    provider = SqlCompletionProvider(schema=schema)
    sql = "SELECT  FROM users u JOIN orders o ON u.id = o.user_id"
    items = provider.completions(sql, len("SELECT "))
    keys = [(item.sort_text, item.label) for item in items]
    assert keys == sorted(keys)
    assert provider.completions(sql, len("SELECT ")) == items


def test_start_context_offers_snippets(schema: SqlSchema) -> None:
    provider = SqlCompletionProvider(schema=schema)
    items = provider.completions("sel", 3)
    snippets = {item.label: item for item in items if item.kind is CompletionKind.SNIPPET}

    assert set(snippets) == {"sel*", "selc"}
    assert snippets["sel*"].insert_text == "SELECT * FROM $1 WHERE $2"
    assert snippets["sel*"].is_snippet


def test_dialect_dictionaries_feed_completion() -> None:
    info = get_plugin(DatabaseType.POSTGRESQL).get_completion_info()
    provider = SqlCompletionProvider(dialect_info=info)

    create = "CREATE TABLE t (id "
    types = [i.label for i in provider.completions(create, len(create)) if i.kind is CompletionKind.DATA_TYPE]
    assert types

    sql = "SELECT COAL"
    functions = [i for i in provider.completions(sql, len(sql)) if i.kind is CompletionKind.FUNCTION]
    assert functions
    assert all(i.label.upper().startswith("COAL") for i in functions)


def test_to_lsp_shape(schema: SqlSchema) -> None:
    provider = SqlCompletionProvider(schema=schema)
    sql = "SELECT *\nFROM ord"
    item = provider.completions(sql, len(sql))[0]
    payload = item.to_lsp(sql)

    assert payload["label"] == "orders"
    assert payload["kind"] == 22
    edit = payload["textEdit"]
    assert edit["newText"] == "orders"
    assert edit["insert"] == edit["replace"]
    assert edit["insert"]["start"] == {"line": 1, "character": 5}
    assert edit["insert"]["end"] == {"line": 1, "character": 8}
    assert payload["insertTextFormat"] == 1


def test_hover_keywords_and_functions() -> None:
    provider = SqlCompletionProvider(dialect_info=get_plugin(DatabaseType.MYSQL).get_completion_info())

    assert provider.hover("SELECT COUNT(*) FROM t", 2) == "**SELECT**\n\nQuery rows from table(s)"
    assert provider.hover("SELECT COUNT(*) FROM t", 9).startswith("**COUNT(*)**")
    assert provider.hover("SELECT nothing_here", 10) is None
    assert provider.hover("", 0) is None


def test_completion_failures_are_logged_not_raised(monkeypatch) -> None:
    messages: list[str] = []

    def boom(text: str):
        raise RuntimeError("tokenizer exploded")

    monkeypatch.setattr(completion_mod, "tokenize", boom)
    provider = SqlCompletionProvider(logger=messages.append)

    assert provider.completions("SELECT ", 7) == []
    assert messages and "tokenizer exploded" in messages[0]


def test_offsets_are_utf8_bytes(schema: SqlSchema) -> None:
    provider = SqlCompletionProvider(schema=schema)
    sql = "SELECT 'é' AS x FROM us"
    end = len(sql.encode("utf-8"))
    items = provider.completions(sql, end)

    assert [item.label for item in items] == ["user_roles", "users"]
    first = items[0]
    assert first.replace_start == len("SELECT 'é' AS x FROM ".encode("utf-8"))
    assert first.replace_end == end
    edit = first.to_lsp(sql)["textEdit"]
    assert edit["insert"]["start"] == {"line": 0, "character": len("SELECT 'é' AS x FROM ")}
    assert edit["insert"]["end"] == {"line": 0, "character": len(sql)}

    hover = SqlCompletionProvider().hover("SELECT 'é', COUNT(*) FROM t", len("SELECT 'é', CO".encode("utf-8")))
    assert hover is not None and hover.startswith("**COUNT(*)**")


def test_word_prefix_is_ascii_only(schema: SqlSchema) -> None:
    provider = SqlCompletionProvider(schema=schema)
    sql = "SELECT * FROM éus"
    items = provider.completions(sql, len(sql.encode("utf-8")))

    assert [item.label for item in items] == ["user_roles", "users"]
    assert items[0].replace_start == len("SELECT * FROM é".encode("utf-8"))
