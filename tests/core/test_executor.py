from __future__ import annotations

import asyncio

import pytest

from dail.core.config import merge_settings
from dail.core.errors import CancelledError
from dail.core.executor import (
    CancelToken,
    ExecOptions,
    StatementKind,
    analyze_select_editability,
    append_limit,
    classify_statement,
    first_keyword,
    format_exec_message,
    split_plsql_script,
    split_statements,
)
from dail.core.connections.oracle import OracleConnection
from dail.core.types import DatabaseType, FieldType
from tests.conftest import server_config


def test_split_respects_quotes_and_comments() -> None:
    script = "SELECT ';' ;\n-- only a comment;\n;  \nSELECT 2;;"
    assert split_statements(script) == ["SELECT ';'", "SELECT 2"]


def test_split_keeps_trigger_bodies_whole() -> None:
    script = (
        "CREATE TRIGGER trg AFTER INSERT ON a BEGIN UPDATE b SET x = 1; END;\n"
        "SELECT 1;"
    )
    statements = split_statements(script)
    assert len(statements) == 2
    assert statements[0].endswith("END")
    assert statements[1] == "SELECT 1"


def test_split_empty_script() -> None:
    assert split_statements("") == []
    assert split_statements(" ;\n/* nothing */ ;") == []


def test_plsql_split_keeps_block_terminators() -> None:
    procedure = (
        "CREATE OR REPLACE PROCEDURE bump AS\nBEGIN\n"
        "  IF 1 = 1 THEN\n    UPDATE t SET x = x + 1;\n  END IF;\nEND;"
    )
    script = (
        "BEGIN UPDATE t SET x = 1; END;\n"
        "SELECT 1 FROM dual;\n"
        + procedure
        + "\nDECLARE n NUMBER; BEGIN SELECT COUNT(*) INTO n FROM t; END;"
    )
    assert split_plsql_script(script) == [
        "BEGIN UPDATE t SET x = 1; END;",
        "SELECT 1 FROM dual",
        procedure,
        "DECLARE n NUMBER; BEGIN SELECT COUNT(*) INTO n FROM t; END;",
    ]


def test_plsql_split_honours_slash_lines() -> None:
    body = "CREATE OR REPLACE PACKAGE BODY pkg AS\n  PROCEDURE p IS BEGIN NULL; END;\nEND pkg;"
    script = body + "\n/\nSELECT 4 / 2 FROM dual\n/\n"
    assert split_plsql_script(script) == [body, "SELECT 4 / 2 FROM dual"]


def test_oracle_statements_keep_plsql_terminator() -> None:
    executed: list[str] = []

    class RecordingOracle(OracleConnection):
        async def _open(self):
            return object()

        async def _close(self, raw) -> None:
            return None

        async def _run(self, sql, params, max_rows):
            executed.append(sql)
            return None, [], 0

    conn = RecordingOracle(server_config(DatabaseType.ORACLE))
    assert conn.prepare_statement("BEGIN NULL; END") == "BEGIN NULL; END;"
    assert conn.prepare_statement("SELECT 1 FROM dual;") == "SELECT 1 FROM dual"

    outcome = asyncio.run(conn.execute_script("BEGIN NULL; END;\nSELECT 1 FROM dual;"))
    assert outcome.error_count == 0
    assert executed == ["BEGIN NULL; END;", "SELECT 1 FROM dual"]


@pytest.mark.parametrize(
    ("sql", "kind"),
    [
        ("select 1", StatementKind.QUERY),
        ("/* hint */ WITH x AS (SELECT 1) SELECT * FROM x", StatementKind.QUERY),
        ("(SELECT 1) UNION (SELECT 2)", StatementKind.QUERY),
        ("PRAGMA table_info(t)", StatementKind.QUERY),
        ("insert into t values (1)", StatementKind.DML),
        ("MERGE INTO t USING s ON (1 = 1)", StatementKind.DML),
        ("CREATE TABLE t (id INT)", StatementKind.DDL),
        ("TRUNCATE TABLE t", StatementKind.DDL),
        ("COMMIT", StatementKind.TRANSACTION),
        ("START TRANSACTION", StatementKind.TRANSACTION),
        ("USE shop", StatementKind.COMMAND),
        ("EXEC sp_who", StatementKind.EXEC),
        ("CALL refresh()", StatementKind.EXEC),
    ],
)
def test_classify_statement(sql: str, kind: StatementKind) -> None:
    assert classify_statement(sql) is kind


def test_first_keyword_skips_comments() -> None:
    assert first_keyword("-- lead\n  select 1") == "SELECT"
    assert first_keyword("") == ""


@pytest.mark.parametrize(
    ("sql", "expected"),
    [
        ("SELECT * FROM users WHERE id = 1", (True, "users")),
        ("select id from shop.`users`;", (True, "users")),
        ("SELECT * FROM [dbo].[orders]", (True, "orders")),
        ("SELECT a FROM t JOIN u ON t.id = u.id", (False, None)),
        ("SELECT DISTINCT a FROM t", (False, None)),
        ("SELECT COUNT(*) FROM t", (False, None)),
        ("SELECT a FROM t GROUP BY a", (False, None)),
        ("SELECT a, b FROM t, u", (False, None)),
        ("SELECT * FROM (SELECT 1) x", (False, None)),
        ("SELECT 1", (False, None)),
        ("UPDATE t SET a = 1", (False, None)),
    ],
)
def test_select_editability(sql: str, expected: tuple[bool, str | None]) -> None:
    assert analyze_select_editability(sql) == expected


@pytest.mark.parametrize(
    ("sql", "affected", "message"),
    [
        ("INSERT INTO t VALUES (1)", 1, "Inserted 1 row(s)"),
        ("update t set a = 1", 3, "Updated 3 row(s)"),
        ("DELETE FROM t", 0, "Deleted 0 row(s)"),
        ("CREATE INDEX i ON t (a)", 0, "Object created successfully"),
        ("DROP TABLE t", 0, "Object dropped successfully"),
        ("TRUNCATE TABLE t", 0, "Table truncated successfully"),
        ("USE shop", 0, "Database changed successfully"),
        ("START TRANSACTION", 0, "Transaction started"),
        ("ROLLBACK", 0, "Transaction rolled back"),
        ("VACUUM", 0, "Query executed successfully, 0 row(s) affected"),
    ],
)
def test_exec_messages(sql: str, affected: int, message: str) -> None:
    assert format_exec_message(sql, affected) == message


@pytest.mark.parametrize(
    ("sql", "max_rows", "expected"),
    [
        ("SELECT * FROM t;", 10, "SELECT * FROM t LIMIT 10"),
        ("WITH x AS (SELECT 1) SELECT * FROM x", 5, "WITH x AS (SELECT 1) SELECT * FROM x LIMIT 5"),
        ("SELECT * FROM t LIMIT 3", 10, "SELECT * FROM t LIMIT 3"),
        ("SELECT TOP 5 * FROM t", 10, "SELECT TOP 5 * FROM t"),
        ("SELECT * FROM t FETCH FIRST 3 ROWS ONLY", 10, "SELECT * FROM t FETCH FIRST 3 ROWS ONLY"),
        ("SHOW TABLES", 10, "SHOW TABLES"),
        ("DELETE FROM t", 10, "DELETE FROM t"),
        ("SELECT * FROM t", None, "SELECT * FROM t"),
        ("SELECT * FROM t", 0, "SELECT * FROM t"),
    ],
)
def test_append_limit(sql: str, max_rows: int | None, expected: str) -> None:
    assert append_limit(sql, max_rows) == expected


def test_exec_options_from_settings() -> None:
    opts = ExecOptions.from_settings(merge_settings({"exec": {"max_rows": 5, "transactional": True}}))
    assert opts.max_rows == 5
    assert opts.transactional
    assert opts.stop_on_error
    assert opts.cancel_token is None


def test_cancel_token() -> None:
    token = CancelToken()
    token.raise_if_cancelled()
    token.cancel()
    assert token.is_cancelled
    with pytest.raises(CancelledError):
        token.raise_if_cancelled()


@pytest.mark.parametrize(
    ("db_type", "field_type"),
    [
        ("int(11) unsigned", FieldType.INTEGER),
        ("BIGSERIAL", FieldType.INTEGER),
        ("numeric(10,2)", FieldType.DECIMAL),
        ("VARCHAR(50)", FieldType.TEXT),
        ("longtext", FieldType.LONG_TEXT),
        ("geometry", FieldType.UNKNOWN),
    ],
)
def test_field_type_from_db_type(db_type: str, field_type: FieldType) -> None:
    assert FieldType.from_db_type(db_type) is field_type
