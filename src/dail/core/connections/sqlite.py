from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Sequence

import aiosqlite

from ..errors import DbError
from ..types import DatabaseType
from .base import Connection, RawResult, not_connected, query_failed


class SqliteConnection(Connection):
    database_type = DatabaseType.SQLITE

    @property
    def path(self) -> str:
        return self.config.file_path

    async def _open(self) -> aiosqlite.Connection:
        path = self.path
        if path != ":memory:" and not path.startswith("file:"):
            Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        # Autocommit; scripts opt into transactions with explicit BEGIN.
        conn = await aiosqlite.connect(path, isolation_level=None, uri=path.startswith("file:"))
        await conn.execute("PRAGMA foreign_keys = ON")
        return conn

    async def _close(self, raw: aiosqlite.Connection) -> None:
        await raw.close()

    async def _run(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None, max_rows: int | None
    ) -> RawResult:
        cursor = await self._raw.execute(sql, params or ())
        try:
            if cursor.description is None:
                return None, [], cursor.rowcount
            columns = [d[0] for d in cursor.description]
            if max_rows:
                rows = await cursor.fetchmany(max_rows + 1)
            else:
                rows = await cursor.fetchall()
            return columns, list(rows), -1
        finally:
            await cursor.close()

    async def _interrupt(self) -> None:
        if self._raw is not None:
            await self._raw.interrupt()

    def _translate_error(self, exc: Exception) -> DbError:
        if isinstance(exc, ValueError) and "no active connection" in str(exc):
            return not_connected(exc)
        if isinstance(exc, sqlite3.Error):
            return query_failed(
                str(exc),
                code=getattr(exc, "sqlite_errorname", None),
                state=getattr(exc, "sqlite_errorcode", None),
            )
        return query_failed(f"{type(exc).__name__}: {exc}")
