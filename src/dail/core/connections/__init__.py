"""Driver adapters, one ``Connection`` subclass per dialect."""

from __future__ import annotations

from typing import Any

from ..config import DbConnectionConfig
from ..logs import Logger
from ..types import DatabaseType
from .base import Connection
from .mssql import MssqlConnection
from .mysql import MySqlConnection
from .oracle import OracleConnection
from .postgresql import PostgresConnection
from .sqlite import SqliteConnection

CONNECTION_CLASSES: dict[DatabaseType, type[Connection]] = {
    DatabaseType.MYSQL: MySqlConnection,
    DatabaseType.POSTGRESQL: PostgresConnection,
    DatabaseType.MSSQL: MssqlConnection,
    DatabaseType.SQLITE: SqliteConnection,
    DatabaseType.ORACLE: OracleConnection,
}


def create_connection(
    config: DbConnectionConfig,
    settings: dict[str, Any] | None = None,
    logger: Logger | None = None,
) -> Connection:
    return CONNECTION_CLASSES[config.database_type](config, settings=settings, logger=logger)


__all__ = ["CONNECTION_CLASSES", "Connection", "create_connection"]
