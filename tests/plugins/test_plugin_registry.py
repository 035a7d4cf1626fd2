from __future__ import annotations

import pytest

from dail.core.errors import ConfigError, UnsupportedOperationError
from dail.core.plugins import find_plugin, get_plugin, register_plugin, registered_types
from dail.core.plugins import registry
from dail.core.plugins.sqlite import SqlitePlugin
from dail.core.types import DatabaseType


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("MySQL", DatabaseType.MYSQL),
        ("mariadb", DatabaseType.MYSQL),
        ("postgres", DatabaseType.POSTGRESQL),
        ("PostgreSQL", DatabaseType.POSTGRESQL),
        ("sqlserver", DatabaseType.MSSQL),
        ("mssql", DatabaseType.MSSQL),
        ("sqlite3", DatabaseType.SQLITE),
        (" Oracle ", DatabaseType.ORACLE),
    ],
)
def test_get_plugin_by_name_or_alias(raw: str, expected: DatabaseType) -> None:
    plugin = get_plugin(raw)
    assert plugin.database_type is expected
    assert get_plugin(expected) is plugin


def test_unknown_type_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="db2"):
        get_plugin("db2")


def test_builtin_types_are_registered() -> None:
    assert set(registered_types()) == set(DatabaseType)


def test_missing_plugin_lists_available(monkeypatch) -> None:
    get_plugin(DatabaseType.SQLITE)
    monkeypatch.delitem(registry._PLUGINS, DatabaseType.ORACLE)

    assert find_plugin(DatabaseType.ORACLE) is None
    with pytest.raises(UnsupportedOperationError, match="Available: "):
        get_plugin(DatabaseType.ORACLE)


def test_register_plugin_replaces_builtin(monkeypatch) -> None:
    original = get_plugin(DatabaseType.SQLITE)
    monkeypatch.setitem(registry._PLUGINS, DatabaseType.SQLITE, original)

    class LoudSqlite(SqlitePlugin):
        def truncate_table(self, database: str, table: str) -> str:
            return f"DELETE FROM {self.quote_identifier(table)} WHERE 1 = 1;"

    register_plugin(LoudSqlite())

    assert isinstance(get_plugin("sqlite"), LoudSqlite)
    assert get_plugin("sqlite").truncate_table("main", "t") == 'DELETE FROM "t" WHERE 1 = 1;'
