from __future__ import annotations

from typing import Any, Sequence

from ..errors import DbError
from ..types import DatabaseType
from .base import Connection, RawResult, load_driver, not_connected, query_failed

# CR_SERVER_GONE_ERROR, CR_SERVER_LOST and the client-side "not connected" codes.
_CONNECTION_LOST_CODES = {2006, 2013, 2014, 2055}


class MySqlConnection(Connection):
    database_type = DatabaseType.MYSQL
    begin_sql = "START TRANSACTION"

    async def _open(self) -> Any:
        aiomysql = load_driver("aiomysql", "aiomysql")
        cfg = self.config
        return await aiomysql.connect(
            host=cfg.host,
            port=cfg.port,
            user=cfg.username,
            password=cfg.password,
            db=cfg.database or None,
            charset=cfg.extra_params.get("charset", "utf8mb4"),
            autocommit=True,
            connect_timeout=self.connect_timeout,
        )

    async def _close(self, raw: Any) -> None:
        raw.close()

    async def _ping(self) -> None:
        await self._raw.ping(reconnect=False)

    async def _run(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None, max_rows: int | None
    ) -> RawResult:
        async with self._raw.cursor() as cursor:
            affected = await cursor.execute(sql, params)
            if cursor.description is None:
                return None, [], affected
            columns = [d[0] for d in cursor.description]
            if max_rows:
                rows = await cursor.fetchmany(max_rows + 1)
            else:
                rows = await cursor.fetchall()
            return columns, list(rows), -1

    def _translate_error(self, exc: Exception) -> DbError:
        args = getattr(exc, "args", ())
        code = args[0] if args and isinstance(args[0], int) else None
        message = args[1] if len(args) > 1 else str(exc)
        if code in _CONNECTION_LOST_CODES or isinstance(exc, (ConnectionError, BrokenPipeError)):
            return not_connected(exc)
        return query_failed(str(message), code=code)
