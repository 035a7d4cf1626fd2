from __future__ import annotations

import inspect
from typing import Any, Sequence

from ..errors import DbError
from ..executor import is_plsql_block, split_plsql_script
from ..types import DatabaseType
from .base import Connection, RawResult, load_driver, not_connected, query_failed

# ORA-03113 end-of-file on channel, ORA-03114 not connected, DPY-1001 not connected.
_CONNECTION_LOST_CODES = {3113, 3114, 3135, 28}


class OracleConnection(Connection):
    database_type = DatabaseType.ORACLE

    @property
    def dsn(self) -> str:
        service = self.config.database or self.config.extra_params.get("service_name", "ORCL")
        return f"{self.config.host}:{self.config.port}/{service}"

    async def _open(self) -> Any:
        oracledb = load_driver("oracledb", "oracledb")
        conn = await oracledb.connect_async(
            user=self.config.username,
            password=self.config.password,
            dsn=self.dsn,
        )
        conn.autocommit = True
        return conn

    async def _close(self, raw: Any) -> None:
        await raw.close()

    async def _ping(self) -> None:
        await self._raw.ping()

    def split_script(self, script: str) -> list[str]:
        return split_plsql_script(script)

    def prepare_statement(self, sql: str) -> str:
        # The server rejects the terminator on plain SQL; PL/SQL blocks require it.
        stripped = sql.rstrip()
        if is_plsql_block(stripped):
            return stripped if stripped.endswith(";") else stripped + ";"
        return stripped.rstrip(";").rstrip()

    def limit_query(self, sql: str, max_rows: int | None) -> str:
        return sql

    async def _interrupt(self) -> None:
        if self._raw is None:
            return
        outcome = self._raw.cancel()
        if inspect.isawaitable(outcome):
            await outcome

    async def _begin_transaction(self) -> None:
        # Oracle opens transactions implicitly; turning off autocommit is enough.
        self._raw.autocommit = False

    async def _end_transaction(self, commit: bool) -> None:
        try:
            if commit:
                await self._raw.commit()
            else:
                await self._raw.rollback()
        finally:
            self._raw.autocommit = True
        self.logger("commit" if commit else "rollback")

    async def _run(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None, max_rows: int | None
    ) -> RawResult:
        with self._raw.cursor() as cursor:
            await cursor.execute(sql, params)
            if cursor.description is None:
                return None, [], cursor.rowcount
            columns = [d[0] for d in cursor.description]
            if max_rows:
                rows = await cursor.fetchmany(max_rows + 1)
            else:
                rows = await cursor.fetchall()
            return columns, list(rows), -1

    def _translate_error(self, exc: Exception) -> DbError:
        error = exc.args[0] if exc.args else None
        code = getattr(error, "code", None)
        full_code = getattr(error, "full_code", None)
        message = getattr(error, "message", None) or str(exc)
        if code in _CONNECTION_LOST_CODES or (full_code or "").startswith("DPY-1001"):
            return not_connected(exc)
        return query_failed(message, code=full_code or code)
