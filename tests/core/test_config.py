from __future__ import annotations

import json
from pathlib import Path

import pytest

from dail.core.config import DbConnectionConfig, load_connection_configs, merge_settings
from dail.core.errors import ConfigError
from dail.core.types import DatabaseType


CONNECTIONS_YAML = """
connections:
  - id: local
    database_type: sqlite
    host: /tmp/app.sqlite
  - id: pg
    name: Reporting
    database_type: postgres
    host: db.internal
    username: report
    password: s3cret
    extra_params:
      sslmode: require
      statement_timeout: 5000
      ssl: true
"""


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_load_yaml_connections(tmp_path: Path) -> None:
    local, pg = load_connection_configs(_write(tmp_path, "connections.yaml", CONNECTIONS_YAML))

    assert local.database_type is DatabaseType.SQLITE
    assert local.name == "local"
    assert local.port == 0
    assert local.file_path == "/tmp/app.sqlite"

    assert pg.database_type is DatabaseType.POSTGRESQL
    assert pg.name == "Reporting"
    assert pg.port == 5432
    assert pg.extra_params == {"sslmode": "require", "statement_timeout": "5000", "ssl": "True"}


def test_load_json_connections(tmp_path: Path) -> None:
    payload = {"connections": [{"id": "ms", "database_type": "sqlserver", "host": "sql1", "port": 14330}]}
    (config,) = load_connection_configs(_write(tmp_path, "connections.json", json.dumps(payload)))
    assert config.database_type is DatabaseType.MSSQL
    assert config.port == 14330


def test_empty_file_has_no_connections(tmp_path: Path) -> None:
    assert load_connection_configs(_write(tmp_path, "empty.yaml", "")) == []


@pytest.mark.parametrize(
    ("record", "fragment"),
    [
        ({"database_type": "mysql", "host": "h"}, "Invalid connection record"),
        ({"id": "x", "database_type": "db2", "host": "h"}, "Unknown database type"),
        ({"id": "x", "database_type": "mysql", "host": "h", "port": 70000}, "Invalid connection record"),
        ({"id": "x", "database_type": "mysql", "host": "h", "colour": "red"}, "Invalid connection record"),
        ({"id": "x", "database_type": "mysql"}, "host is required"),
        ({"id": "x", "database_type": "sqlite"}, "file path"),
    ],
)
def test_invalid_records(tmp_path: Path, record: dict, fragment: str) -> None:
    path = _write(tmp_path, "bad.json", json.dumps({"connections": [record]}))
    with pytest.raises(ConfigError, match=fragment) as excinfo:
        load_connection_configs(path)
    assert "connection #0" in excinfo.value.message


def test_duplicate_ids_are_rejected(tmp_path: Path) -> None:
    record = {"id": "dup", "database_type": "sqlite", "host": "a.sqlite"}
    path = _write(tmp_path, "dup.json", json.dumps({"connections": [record, record]}))
    with pytest.raises(ConfigError, match="duplicate connection id"):
        load_connection_configs(path)


@pytest.mark.parametrize("text", ["connections: [", "- just\n- a list\n", "connections: nope\n"])
def test_unreadable_or_misshapen_files(tmp_path: Path, text: str) -> None:
    with pytest.raises(ConfigError):
        load_connection_configs(_write(tmp_path, "broken.yaml", text))


def test_redacted_dict_hides_password() -> None:
    config = DbConnectionConfig(
        id="pg", name="pg", database_type=DatabaseType.POSTGRESQL, host="h", password="s3cret"
    )
    assert config.to_dict(redact=True)["password"] == "********"
    assert config.to_dict()["password"] == "s3cret"
    assert config.to_dict()["database_type"] == "PostgreSQL"

    no_password = DbConnectionConfig(id="l", name="l", database_type=DatabaseType.SQLITE, database="x.db")
    assert no_password.to_dict(redact=True)["password"] == ""
    assert no_password.file_path == "x.db"


def test_blank_id_is_rejected() -> None:
    with pytest.raises(ConfigError):
        DbConnectionConfig(id="  ", name="", database_type=DatabaseType.SQLITE, host="x.db")


def test_settings_merge_and_env(monkeypatch) -> None:
    monkeypatch.setenv("DAIL_MAX_ROWS", "25")
    monkeypatch.delenv("DAIL_PAGE_SIZE", raising=False)

    settings = merge_settings({"completion": {"max_items": 7}})

    assert settings["exec"]["max_rows"] == 25
    assert settings["exec"]["stop_on_error"] is True
    assert settings["completion"]["max_items"] == 7
    assert settings["table_data"]["page_size"] == 100
    assert merge_settings({"exec": {"max_rows": 3}})["exec"]["max_rows"] == 3


def test_bad_env_integer(monkeypatch) -> None:
    monkeypatch.setenv("DAIL_CONNECT_TIMEOUT", "soon")
    with pytest.raises(ValueError, match="DAIL_CONNECT_TIMEOUT"):
        merge_settings()
