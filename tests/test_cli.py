from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from dail import cli


def _run(monkeypatch, capsys, *argv: str) -> tuple[int, object]:
    monkeypatch.setattr(sys, "argv", ["dail", *argv])
    code = 0
    try:
        cli.main()
    except SystemExit as exc:
        code = int(exc.code or 0)
    out = capsys.readouterr().out
    return code, out


def _config(tmp_path: Path) -> Path:
    path = tmp_path / "connections.yaml"
    path.write_text(
        "connections:\n"
        "  - id: local\n"
        "    database_type: sqlite\n"
        f"    host: {tmp_path / 'cli.sqlite'}\n"
        "  - id: pg\n"
        "    database_type: postgresql\n"
        "    host: db.internal\n"
        "    password: hunter2\n",
        encoding="utf-8",
    )
    return path


def test_format_and_compress(monkeypatch, capsys) -> None:
    code, out = _run(monkeypatch, capsys, "format", "select a from t where b=1")
    assert code == 0
    assert out.splitlines()[0] == "SELECT a"

    code, out = _run(monkeypatch, capsys, "format", "--compress", "SELECT a\n  FROM t -- note\n")
    assert out.strip() == "SELECT a FROM t"


def test_format_reads_sql_file(monkeypatch, capsys, tmp_path: Path) -> None:
    sql_file = tmp_path / "q.sql"
    sql_file.write_text("select 1", encoding="utf-8")
    _, out = _run(monkeypatch, capsys, "format", f"@{sql_file}")
    assert out.strip() == "SELECT 1"


def test_complete_with_schema(monkeypatch, capsys, tmp_path: Path) -> None:
    schema = tmp_path / "schema.yaml"
    schema.write_text("tables:\n  users: [id, email]\n  orders: [id]\n", encoding="utf-8")

    code, out = _run(monkeypatch, capsys, "complete", "mysql", "SELECT * FROM us", "--schema", str(schema))
    items = json.loads(out)

    assert code == 0
    assert [item["label"] for item in items] == ["users"]
    assert items[0]["textEdit"]["newText"] == "users"


def test_connections_are_redacted(monkeypatch, capsys, tmp_path: Path) -> None:
    _, out = _run(monkeypatch, capsys, "connections", "--config", str(_config(tmp_path)))
    records = {record["id"]: record for record in json.loads(out)}

    assert records["pg"]["password"] == "********"
    assert records["pg"]["port"] == 5432
    assert "hunter2" not in out


def test_exec_and_tables_against_sqlite(monkeypatch, capsys, tmp_path: Path) -> None:
    config = str(_config(tmp_path))
    code, out = _run(
        monkeypatch,
        capsys,
        "exec",
        "local",
        "CREATE TABLE t (a INT); INSERT INTO t VALUES (1); SELECT a FROM t",
        "--config",
        config,
    )
    payload = json.loads(out)

    assert code == 0
    assert payload["errors"] == 0
    assert [r["type"] for r in payload["results"]] == ["exec", "exec", "query"]
    assert payload["results"][2]["rows"] == [["1"]]

    _, out = _run(monkeypatch, capsys, "tables", "local", "--config", config)
    assert [table["name"] for table in json.loads(out)] == ["t"]


def test_exec_reports_statement_errors(monkeypatch, capsys, tmp_path: Path) -> None:
    code, out = _run(monkeypatch, capsys, "exec", "local", "SELECT * FROM missing", "--config", str(_config(tmp_path)))
    payload = json.loads(out)

    assert code == 1
    assert payload["results"][0]["type"] == "error"
    assert "missing" in payload["results"][0]["message"]


def test_unknown_connection_prints_error_record(monkeypatch, capsys, tmp_path: Path) -> None:
    code, out = _run(monkeypatch, capsys, "exec", "nope", "SELECT 1", "--config", str(_config(tmp_path)))

    assert code == 1
    assert json.loads(out)["kind"] == "ConfigError"


def test_subcommand_is_required(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["dail"])
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 2
