from __future__ import annotations

from typing import Any, Sequence

from ..errors import DbError
from ..types import DatabaseType
from .base import Connection, RawResult, load_driver, not_connected, query_failed


def _status_rowcount(status: str | None) -> int:
    """Rows affected from a command tag such as ``INSERT 0 3`` or ``UPDATE 2``."""
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


class PostgresConnection(Connection):
    database_type = DatabaseType.POSTGRESQL

    async def _open(self) -> Any:
        asyncpg = load_driver("asyncpg", "asyncpg")
        cfg = self.config
        kwargs: dict[str, Any] = {}
        if "ssl_mode" in cfg.extra_params:
            kwargs["ssl"] = cfg.extra_params["ssl_mode"]
        return await asyncpg.connect(
            host=cfg.host,
            port=cfg.port,
            user=cfg.username,
            password=cfg.password,
            database=cfg.database or "postgres",
            timeout=self.connect_timeout,
            **kwargs,
        )

    async def _close(self, raw: Any) -> None:
        await raw.close()

    async def _interrupt(self) -> None:
        # Cancelling the asyncpg task already sends a cancel request.
        return None

    async def _run(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None, max_rows: int | None
    ) -> RawResult:
        args = list(params.values()) if isinstance(params, dict) else list(params or [])
        stmt = await self._raw.prepare(sql)
        attributes = stmt.get_attributes()
        if not attributes:
            status = await self._raw.execute(sql, *args)
            return None, [], _status_rowcount(status)
        columns = [attr.name for attr in attributes]
        records = await stmt.fetch(*args)
        if max_rows:
            records = records[: max_rows + 1]
        return columns, [tuple(record.values()) for record in records], -1

    def _translate_error(self, exc: Exception) -> DbError:
        asyncpg = load_driver("asyncpg", "asyncpg")
        if isinstance(exc, (asyncpg.exceptions.ConnectionDoesNotExistError, ConnectionError)):
            return not_connected(exc)
        if isinstance(exc, asyncpg.exceptions.InterfaceError) and "closed" in str(exc):
            return not_connected(exc)
        if isinstance(exc, asyncpg.PostgresError):
            return query_failed(
                getattr(exc, "message", None) or str(exc),
                code=getattr(exc, "sqlstate", None),
                state=getattr(exc, "sqlstate", None),
            )
        return query_failed(f"{type(exc).__name__}: {exc}")
