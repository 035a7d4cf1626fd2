"""Process-wide ``DatabaseType -> DatabasePlugin`` lookup.

Built-in dialects are loaded on first use; extra dialects register a plugin
instance with ``register_plugin`` before the first lookup or after it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import UnsupportedOperationError
from ..types import DatabaseType

if TYPE_CHECKING:
    from .base import DatabasePlugin


_PLUGINS: dict[DatabaseType, "DatabasePlugin"] = {}
_BUILTINS_LOADED = False


def register_plugin(plugin: "DatabasePlugin") -> None:
    """Register (or replace) the plugin serving ``plugin.database_type``."""
    _PLUGINS[plugin.database_type] = plugin


def _load_builtin_plugins() -> None:
    global _BUILTINS_LOADED
    from .mssql import MssqlPlugin
    from .mysql import MySqlPlugin
    from .oracle import OraclePlugin
    from .postgresql import PostgresPlugin
    from .sqlite import SqlitePlugin

    for plugin_class in (MySqlPlugin, PostgresPlugin, MssqlPlugin, SqlitePlugin, OraclePlugin):
        _PLUGINS.setdefault(plugin_class.database_type, plugin_class())
    _BUILTINS_LOADED = True


def find_plugin(database_type: DatabaseType | str) -> "DatabasePlugin | None":
    if not _BUILTINS_LOADED:
        _load_builtin_plugins()
    return _PLUGINS.get(DatabaseType.parse(database_type))


def get_plugin(database_type: DatabaseType | str) -> "DatabasePlugin":
    """
    Get the plugin for a database type.

    Raises:
        UnsupportedOperationError: if no plugin serves the type
    """
    plugin = find_plugin(database_type)
    if plugin is None:
        available = ", ".join(sorted(t.value for t in _PLUGINS))
        raise UnsupportedOperationError(
            f"No plugin for {database_type!s}. Available: {available}. "
            f"You can register one with register_plugin()."
        )
    return plugin


def registered_types() -> list[DatabaseType]:
    find_plugin(DatabaseType.SQLITE)
    return sorted(_PLUGINS, key=lambda t: t.value)
