from __future__ import annotations

import asyncio
import importlib
import time
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from ..config import DbConnectionConfig, merge_settings
from ..errors import (
    ConfigError,
    CancelledError,
    ConnectFailedError,
    DbError,
    DisconnectedError,
    QueryFailedError,
)
from ..executor import (
    CancelToken,
    ErrorResult,
    ExecOptions,
    ExecResult,
    QueryResult,
    ScriptResult,
    analyze_select_editability,
    append_limit,
    format_exec_message,
    is_query_statement,
    scoped_cancel_token,
    split_statements,
)
from ..logs import Logger, default_logger
from ..types import DatabaseType
from ..utils import cell_to_text, truncate_sql


RawResult = tuple[Optional[list[str]], list[Sequence[Any]], int]


class Connection(ABC):
    """One live session to a database.

    Every public coroutine takes ``self._lock`` so operations on one
    connection run in submission order. Subclasses only translate between
    the driver and ``RawResult`` (columns or None, rows, rows affected).
    """

    database_type: DatabaseType
    begin_sql: str = "BEGIN"

    def __init__(
        self,
        config: DbConnectionConfig,
        settings: dict[str, Any] | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.config = config
        self.settings = settings or merge_settings()
        self.logger = logger or default_logger(f"connection_{config.id}")
        self._raw: Any = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._raw is not None

    @property
    def connect_timeout(self) -> float:
        return float(self.settings.get("connect", {}).get("timeout_s", 10))

    # --- driver hooks ------------------------------------------------------

    @abstractmethod
    async def _open(self) -> Any:
        ...

    @abstractmethod
    async def _close(self, raw: Any) -> None:
        ...

    @abstractmethod
    async def _run(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None, max_rows: int | None
    ) -> RawResult:
        ...

    @abstractmethod
    def _translate_error(self, exc: Exception) -> DbError:
        ...

    async def _ping(self) -> None:
        await self._run("SELECT 1", None, 1)

    async def _interrupt(self) -> None:
        """Abort the statement in flight. Default: drop the session."""
        raw, self._raw = self._raw, None
        if raw is not None:
            await self._close(raw)

    def limit_query(self, sql: str, max_rows: int | None) -> str:
        return append_limit(sql, max_rows)

    def prepare_statement(self, sql: str) -> str:
        return sql

    # --- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        async with self._lock:
            await self._ensure_connected()

    async def _ensure_connected(self) -> None:
        if self._raw is not None:
            return
        self.logger(f"connect {self.database_type.value} {self.config.id}")
        try:
            self._raw = await asyncio.wait_for(self._open(), timeout=self.connect_timeout)
        except DbError:
            raise
        except asyncio.TimeoutError as exc:
            self.logger(f"connect timeout {self.config.id}")
            raise ConnectFailedError(
                f"Timed out connecting to {self.config.name} after {self.connect_timeout:g}s"
            ) from exc
        except Exception as exc:
            self.logger(f"connect failed {self.config.id}: {exc}")
            raise ConnectFailedError(f"Could not connect to {self.config.name}: {exc}") from exc

    async def disconnect(self) -> None:
        async with self._lock:
            raw, self._raw = self._raw, None
            if raw is not None:
                self.logger(f"disconnect {self.config.id}")
                await self._close(raw)

    async def ping(self) -> bool:
        async with self._lock:
            await self._ensure_connected()
            try:
                await self._ping()
            except Exception as exc:
                await self._raise_driver_error(exc)
            return True

    # --- execution -----------------------------------------------------------

    async def query(
        self,
        sql: str,
        params: Sequence[Any] | dict[str, Any] | None = None,
        opts: ExecOptions | None = None,
    ) -> QueryResult | ExecResult:
        """Run one statement; driver failures raise ``DbError`` subclasses."""
        opts = opts or ExecOptions()
        async with self._lock:
            await self._ensure_connected()
            return await self._execute_one(sql, params, opts)

    async def fetch_rows(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None = None
    ) -> tuple[list[str], list[list[str | None]]]:
        result = await self.query(sql, params, ExecOptions(max_rows=None))
        if isinstance(result, QueryResult):
            return result.columns, result.rows
        return [], []

    async def fetch_dicts(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None = None
    ) -> list[dict[str, str | None]]:
        columns, rows = await self.fetch_rows(sql, params)
        keys = [c.lower() for c in columns]
        return [dict(zip(keys, row)) for row in rows]

    async def execute(self, sql: str, params: Sequence[Any] | dict[str, Any] | None = None) -> int:
        result = await self.query(sql, params, ExecOptions(max_rows=None))
        if isinstance(result, ExecResult):
            return result.rows_affected
        return 0

    def split_script(self, script: str) -> list[str]:
        return split_statements(script)

    async def execute_script(self, script: str, opts: ExecOptions | None = None) -> ScriptResult:
        """Run each statement of ``script`` in order.

        Statement failures become ``ErrorResult`` entries. In a transactional
        run the work is committed only when every statement succeeded; any
        recorded failure, cancellation or other exception rolls it back.
        """
        opts = opts or ExecOptions()
        statements = self.split_script(script)
        outcome = ScriptResult()
        token = opts.cancel_token or scoped_cancel_token()
        async with self._lock:
            await self._ensure_connected()
            if not opts.transactional:
                try:
                    await self._run_statements(statements, opts, token, outcome)
                except CancelledError:
                    self.logger(f"script cancelled after {len(outcome.results)} statement(s)")
                    raise
                return outcome

            await self._begin_transaction()
            try:
                failed = await self._run_statements(statements, opts, token, outcome)
            except BaseException as exc:
                if isinstance(exc, CancelledError):
                    self.logger(f"script cancelled after {len(outcome.results)} statement(s)")
                await self._rollback_quietly()
                raise
            if failed:
                await self._rollback_quietly()
            else:
                await self._end_transaction(commit=True)
        return outcome

    async def _run_statements(
        self,
        statements: list[str],
        opts: ExecOptions,
        token: CancelToken | None,
        outcome: ScriptResult,
    ) -> bool:
        failed = False
        for stmt in statements:
            if token is not None:
                token.raise_if_cancelled()
            try:
                outcome.results.append(await self._execute_one(stmt, None, opts))
            except QueryFailedError as exc:
                outcome.results.append(
                    ErrorResult(sql=stmt, message=exc.message, code=exc.code, state=exc.state)
                )
                failed = True
                if opts.stop_on_error:
                    break
        return failed

    async def _rollback_quietly(self) -> None:
        if self._raw is None:
            return
        try:
            await self._end_transaction(commit=False)
        except Exception as exc:
            self.logger(f"rollback failed {self.config.id}: {exc}")

    async def _begin_transaction(self) -> None:
        await self._control(self.begin_sql)

    async def _end_transaction(self, commit: bool) -> None:
        await self._control("COMMIT" if commit else "ROLLBACK")

    async def _control(self, sql: str) -> None:
        # Transaction control ignores cancel tokens so a cancelled script can still roll back.
        try:
            await self._run(sql, None, None)
        except Exception as exc:
            await self._raise_driver_error(exc, sql)
        self.logger(f"exec: {sql}")

    async def _execute_one(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None, opts: ExecOptions
    ) -> QueryResult | ExecResult:
        token = opts.cancel_token or scoped_cancel_token()
        if token is not None:
            token.raise_if_cancelled()
        statement = self.prepare_statement(sql)
        wants_rows = is_query_statement(statement)
        if wants_rows:
            statement = self.limit_query(statement, opts.max_rows)
        started = time.perf_counter()
        try:
            columns, raw_rows, affected = await self._guarded(
                self._run(statement, params, opts.max_rows), token
            )
        except CancelledError:
            self.logger(f"cancelled: {truncate_sql(sql)}")
            raise
        except Exception as exc:
            await self._raise_driver_error(exc, sql)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self.logger(f"exec {elapsed_ms}ms: {truncate_sql(sql)}")

        if columns is None:
            return ExecResult(
                sql=sql,
                rows_affected=max(affected, 0),
                elapsed_ms=elapsed_ms,
                message=format_exec_message(sql, max(affected, 0)),
            )
        rows = [[cell_to_text(value) for value in row] for row in raw_rows]
        truncated = bool(opts.max_rows) and len(rows) > opts.max_rows
        if truncated:
            rows = rows[: opts.max_rows]
        editable, table_name = analyze_select_editability(sql)
        return QueryResult(
            sql=sql,
            columns=list(columns),
            rows=rows,
            elapsed_ms=elapsed_ms,
            table_name=table_name,
            editable=editable,
            truncated=truncated,
        )

    async def _guarded(self, coro: Any, token: CancelToken | None) -> RawResult:
        if token is None:
            return await coro
        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            self.logger(f"driver error while cancelling: {exc}")
        await self._interrupt()
        raise CancelledError()

    async def _raise_driver_error(self, exc: Exception, sql: str | None = None) -> None:
        if isinstance(exc, DbError):
            error = exc
        else:
            error = self._translate_error(exc)
        if isinstance(error, DisconnectedError):
            await self._discard_raw()
        suffix = f" in: {truncate_sql(sql)}" if sql else ""
        code = f" [{error.code}]" if error.code else ""
        self.logger(f"{error.kind}{code}: {error.message}{suffix}")
        if error is exc:
            raise error
        raise error from exc

    async def _discard_raw(self) -> None:
        """Drop a session the server has already lost, releasing the driver handle."""
        raw, self._raw = self._raw, None
        if raw is None:
            return
        try:
            await self._close(raw)
        except Exception as exc:
            self.logger(f"close after disconnect failed {self.config.id}: {exc}")


def query_failed(message: str, code: Any = None, state: Any = None) -> QueryFailedError:
    return QueryFailedError(
        message,
        code=None if code is None else str(code),
        state=None if state is None else str(state),
    )


def not_connected(exc: Exception) -> DisconnectedError:
    return DisconnectedError(f"Connection lost: {exc}")


def load_driver(module: str, distribution: str) -> Any:
    """Import an optional driver module or fail with an install hint."""
    try:
        return importlib.import_module(module)
    except ImportError as exc:
        raise ConfigError(
            f"driver {distribution} is not installed; run: pip install {distribution}"
        ) from exc
