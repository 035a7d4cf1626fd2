"""Dialect plugins.

Usage:
    from dail.core.plugins import get_plugin

    plugin = get_plugin(DatabaseType.POSTGRESQL)
    sql = plugin.build_create_table_sql(design)
"""

from __future__ import annotations

from .base import (
    NO_CHANGES_DETECTED,
    NO_ROW_CHANGES,
    STANDARD_SQL_FUNCTIONS,
    STANDARD_SQL_KEYWORDS,
    DatabasePlugin,
    build_filter_clause,
    build_order_clause,
    build_table_change_statements,
    generate_table_changes_sql,
    with_standard_sql,
)
from .registry import find_plugin, get_plugin, register_plugin, registered_types

__all__ = [
    "NO_CHANGES_DETECTED",
    "NO_ROW_CHANGES",
    "STANDARD_SQL_FUNCTIONS",
    "STANDARD_SQL_KEYWORDS",
    "DatabasePlugin",
    "build_filter_clause",
    "build_order_clause",
    "build_table_change_statements",
    "find_plugin",
    "generate_table_changes_sql",
    "get_plugin",
    "register_plugin",
    "registered_types",
    "with_standard_sql",
]
