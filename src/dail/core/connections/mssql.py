from __future__ import annotations

from typing import Any, Sequence

from ..errors import DbError
from ..types import DatabaseType
from .base import Connection, RawResult, load_driver, not_connected, query_failed

# SQLSTATE classes pyodbc reports when the link to the server is gone.
_CONNECTION_LOST_STATES = {"08S01", "08003", "08001", "HYT00"}


def build_odbc_dsn(config: Any) -> str:
    driver = config.extra_params.get("driver", "ODBC Driver 18 for SQL Server")
    parts = [
        f"DRIVER={{{driver}}}",
        f"SERVER={config.host},{config.port}",
        f"UID={config.username}",
        f"PWD={config.password}",
        f"TrustServerCertificate={config.extra_params.get('trust_server_certificate', 'yes')}",
    ]
    if config.database:
        parts.insert(2, f"DATABASE={config.database}")
    return ";".join(parts)


class MssqlConnection(Connection):
    database_type = DatabaseType.MSSQL
    begin_sql = "BEGIN TRANSACTION"

    async def _open(self) -> Any:
        aioodbc = load_driver("aioodbc", "aioodbc")
        return await aioodbc.connect(
            dsn=build_odbc_dsn(self.config),
            autocommit=True,
            timeout=int(self.connect_timeout),
        )

    async def _close(self, raw: Any) -> None:
        await raw.close()

    def limit_query(self, sql: str, max_rows: int | None) -> str:
        # T-SQL has no LIMIT; rows past max_rows are dropped after the fetch.
        return sql

    async def _run(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None, max_rows: int | None
    ) -> RawResult:
        async with self._raw.cursor() as cursor:
            if params:
                await cursor.execute(sql, *params)
            else:
                await cursor.execute(sql)
            if cursor.description is None:
                return None, [], cursor.rowcount
            columns = [d[0] for d in cursor.description]
            if max_rows:
                rows = await cursor.fetchmany(max_rows + 1)
            else:
                rows = await cursor.fetchall()
            return columns, [tuple(row) for row in rows], -1

    def _translate_error(self, exc: Exception) -> DbError:
        args = getattr(exc, "args", ())
        state = args[0] if len(args) > 1 and isinstance(args[0], str) else None
        message = args[1] if len(args) > 1 else str(exc)
        if state in _CONNECTION_LOST_STATES or isinstance(exc, ConnectionError):
            return not_connected(exc)
        return query_failed(str(message), code=state, state=state)
