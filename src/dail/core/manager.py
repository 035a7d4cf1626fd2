"""Process-wide connection state and the façade routed by ``connection_id``.

``GlobalDbState`` owns at most one live ``Connection`` per id. Callers never
hold a connection: every façade method borrows the (plugin, connection) pair
inside ``borrow`` and releases it on every exit path.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator, Callable, Sequence

from .config import DbConnectionConfig, merge_settings
from .connections import Connection, create_connection
from .errors import ConfigError, DbError, QueryFailedError
from .executor import (
    CancelToken,
    ErrorResult,
    ExecOptions,
    ExecResult,
    QueryResult,
    ScriptResult,
    cancel_scope,
)
from .logs import Logger, default_logger
from .plugins import DatabasePlugin, build_table_change_statements, get_plugin
from .sql_editor.completion import SqlCompletionProvider
from .types import (
    CheckInfo,
    ColumnInfo,
    DatabaseInfo,
    DatabaseType,
    FunctionInfo,
    IndexInfo,
    ObjectView,
    SequenceInfo,
    SqlSchema,
    TableDataRequest,
    TableDataResponse,
    TableInfo,
    TableSaveRequest,
    TableSaveResponse,
    TriggerInfo,
    ViewInfo,
)
from .utils import now_iso


ConnectionFactory = Callable[[DbConnectionConfig, dict, Logger], Connection]


@dataclass
class ConnectionStats:
    queries: int = 0
    errors: int = 0
    connected_at: str | None = None
    last_used: str | None = None


class GlobalDbState:
    def __init__(
        self,
        settings: dict[str, Any] | None = None,
        logger: Logger | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self.settings = merge_settings(settings)
        self.logger = logger or default_logger("dail")
        self._connection_factory = connection_factory or (
            lambda config, settings, logger: create_connection(config, settings, logger)
        )
        self._configs: dict[str, DbConnectionConfig] = {}
        self._connections: dict[str, Connection] = {}
        self._stats: dict[str, ConnectionStats] = {}
        # Sessions replaced by re-registration, closed on the next async call.
        self._retired: list[Connection] = []
        self._map_lock = asyncio.Lock()

    # --- registration --------------------------------------------------------

    def register_connection(self, config: DbConnectionConfig) -> None:
        """Add or replace the config for ``config.id``.

        Replacing a config retires the live session opened from the old one;
        the next borrow connects with the new settings.
        """
        replaced = config.id in self._configs
        self._configs[config.id] = config
        self._stats[config.id] = ConnectionStats()
        stale = self._connections.pop(config.id, None)
        if stale is not None:
            self._retired.append(stale)
        action = "re-register" if replaced else "register"
        self.logger(f"{action} {config.id} ({config.database_type.value})")

    async def unregister_connection(self, connection_id: str) -> None:
        await self.disconnect_all(connection_id)
        self._configs.pop(connection_id, None)
        self._stats.pop(connection_id, None)
        self.logger(f"unregister {connection_id}")

    def list_connections(self) -> list[DbConnectionConfig]:
        return list(self._configs.values())

    def get_config(self, connection_id: str) -> DbConnectionConfig:
        config = self._configs.get(connection_id)
        if config is None:
            raise ConfigError(f"Unknown connection id: {connection_id}")
        return config

    async def get_config_async(self, connection_id: str) -> DbConnectionConfig:
        async with self._map_lock:
            return self.get_config(connection_id)

    def is_connected(self, connection_id: str) -> bool:
        conn = self._connections.get(connection_id)
        return conn is not None and conn.is_connected

    def stats(self) -> dict[str, dict[str, Any]]:
        return {cid: asdict(entry) for cid, entry in self._stats.items()}

    # --- connections -----------------------------------------------------------

    async def get_plugin_and_connection(self, connection_id: str) -> tuple[DatabasePlugin, Connection]:
        """Resolve the dialect plugin and a connected session, connecting lazily."""
        await self._close_retired()
        async with self._map_lock:
            config = self.get_config(connection_id)
            conn = self._connections.get(connection_id)
            if conn is None:
                conn = self._connection_factory(config, self.settings, self.logger)
                self._connections[connection_id] = conn
        plugin = get_plugin(config.database_type)
        if not conn.is_connected:
            await conn.connect()
            self._stats.setdefault(connection_id, ConnectionStats()).connected_at = now_iso()
        return plugin, conn

    @asynccontextmanager
    async def borrow(
        self, connection_id: str, cancel_token: CancelToken | None = None
    ) -> AsyncIterator[tuple[DatabasePlugin, Connection]]:
        plugin, conn = await self.get_plugin_and_connection(connection_id)
        entry = self._stats.setdefault(connection_id, ConnectionStats())
        entry.queries += 1
        try:
            with cancel_scope(cancel_token):
                yield plugin, conn
        except DbError:
            entry.errors += 1
            raise
        finally:
            entry.last_used = now_iso()

    async def disconnect_all(self, connection_id: str) -> None:
        async with self._map_lock:
            conn = self._connections.pop(connection_id, None)
        if conn is not None:
            await conn.disconnect()

    async def _close_retired(self) -> None:
        while self._retired:
            stale = self._retired.pop()
            self.logger(f"closing replaced session {stale.config.id}")
            await stale.disconnect()

    async def close(self) -> None:
        await self._close_retired()
        async with self._map_lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for conn in connections:
            await conn.disconnect()
        self.logger(f"closed {len(connections)} connection(s)")

    # --- execution -------------------------------------------------------------

    def exec_options(self, **overrides: Any) -> ExecOptions:
        opts = ExecOptions.from_settings(self.settings)
        for key, value in overrides.items():
            setattr(opts, key, value)
        return opts

    async def query(
        self,
        connection_id: str,
        sql: str,
        params: Sequence[Any] | dict[str, Any] | None = None,
        opts: ExecOptions | None = None,
    ) -> QueryResult | ExecResult:
        async with self.borrow(connection_id) as (_, conn):
            return await conn.query(sql, params, opts or self.exec_options())

    async def execute_script(
        self, connection_id: str, sql: str, opts: ExecOptions | None = None
    ) -> ScriptResult:
        async with self.borrow(connection_id) as (_, conn):
            result = await conn.execute_script(sql, opts or self.exec_options())
        if result.error_count:
            self._stats.setdefault(connection_id, ConnectionStats()).errors += result.error_count
        return result

    async def _run_built(
        self,
        connection_id: str,
        build: Callable[[DatabasePlugin], str],
        cancel_token: CancelToken | None = None,
    ) -> ScriptResult:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            sql = build(plugin)
            result = await conn.execute_script(sql, ExecOptions(max_rows=None))
            for item in result.results:
                if isinstance(item, ErrorResult):
                    raise QueryFailedError(item.message, code=item.code, state=item.state)
            return result

    async def drop_database(
        self, connection_id: str, name: str, cancel_token: CancelToken | None = None
    ) -> ScriptResult:
        return await self._run_built(connection_id, lambda p: p.drop_database(name), cancel_token)

    async def drop_table(
        self, connection_id: str, database: str, table: str, cancel_token: CancelToken | None = None
    ) -> ScriptResult:
        return await self._run_built(
            connection_id, lambda p: p.drop_table(database, table), cancel_token
        )

    async def drop_view(
        self, connection_id: str, database: str, view: str, cancel_token: CancelToken | None = None
    ) -> ScriptResult:
        return await self._run_built(
            connection_id, lambda p: p.drop_view(database, view), cancel_token
        )

    async def truncate_table(
        self, connection_id: str, database: str, table: str, cancel_token: CancelToken | None = None
    ) -> ScriptResult:
        return await self._run_built(
            connection_id, lambda p: p.truncate_table(database, table), cancel_token
        )

    async def rename_table(
        self,
        connection_id: str,
        database: str,
        old_name: str,
        new_name: str,
        cancel_token: CancelToken | None = None,
    ) -> ScriptResult:
        return await self._run_built(
            connection_id, lambda p: p.rename_table(database, old_name, new_name), cancel_token
        )

    # --- catalog ---------------------------------------------------------------
    #
    # Every catalog call accepts ``cancel_token``; it applies to each statement
    # the plugin runs while the connection is borrowed.

    async def list_databases(
        self, connection_id: str, cancel_token: CancelToken | None = None
    ) -> list[str]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_databases(conn)

    async def list_databases_detailed(
        self, connection_id: str, cancel_token: CancelToken | None = None
    ) -> list[DatabaseInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_databases_detailed(conn)

    async def list_schemas(
        self, connection_id: str, database: str, cancel_token: CancelToken | None = None
    ) -> list[str]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_schemas(conn, database)

    async def list_tables(
        self, connection_id: str, database: str, cancel_token: CancelToken | None = None
    ) -> list[TableInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_tables(conn, database)

    async def list_columns(
        self, connection_id: str, database: str, table: str, cancel_token: CancelToken | None = None
    ) -> list[ColumnInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_columns(conn, database, table)

    async def list_indexes(
        self, connection_id: str, database: str, table: str, cancel_token: CancelToken | None = None
    ) -> list[IndexInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_indexes(conn, database, table)

    async def list_views(
        self, connection_id: str, database: str, cancel_token: CancelToken | None = None
    ) -> list[ViewInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_views(conn, database)

    async def list_functions(
        self, connection_id: str, database: str, cancel_token: CancelToken | None = None
    ) -> list[FunctionInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_functions(conn, database)

    async def list_procedures(
        self, connection_id: str, database: str, cancel_token: CancelToken | None = None
    ) -> list[FunctionInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_procedures(conn, database)

    async def list_triggers(
        self, connection_id: str, database: str, cancel_token: CancelToken | None = None
    ) -> list[TriggerInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_triggers(conn, database)

    async def list_sequences(
        self, connection_id: str, database: str, cancel_token: CancelToken | None = None
    ) -> list[SequenceInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_sequences(conn, database)

    async def list_table_checks(
        self, connection_id: str, database: str, table: str, cancel_token: CancelToken | None = None
    ) -> list[CheckInfo]:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.list_table_checks(conn, database, table)

    async def object_view(
        self, connection_id: str, listing: str, *args: str, cancel_token: CancelToken | None = None
    ) -> ObjectView:
        """Tabular view of one catalog listing, e.g. ``object_view(id, "tables", "shop")``."""
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            builder = getattr(plugin, f"list_{listing}_view", None)
            if builder is None:
                raise ValueError(f"Unknown catalog listing: {listing}")
            return await builder(conn, *args)

    # --- table data --------------------------------------------------------------

    async def query_table_data(
        self,
        connection_id: str,
        request: TableDataRequest,
        cancel_token: CancelToken | None = None,
    ) -> TableDataResponse:
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            return await plugin.query_table_data(conn, request)

    async def apply_table_changes(
        self,
        connection_id: str,
        request: TableSaveRequest,
        stop_on_error: bool = True,
        cancel_token: CancelToken | None = None,
    ) -> TableSaveResponse:
        response = TableSaveResponse(success_count=0)
        async with self.borrow(connection_id, cancel_token) as (plugin, conn):
            for statement in build_table_change_statements(plugin, request):
                try:
                    await conn.execute(statement)
                except QueryFailedError as exc:
                    self.logger(f"table change failed on {connection_id}: {exc.message}")
                    response.errors.append(exc.message)
                    if stop_on_error:
                        break
                else:
                    response.success_count += 1
        if response.errors:
            self._stats.setdefault(connection_id, ConnectionStats()).errors += len(response.errors)
        return response

    # --- editor ----------------------------------------------------------------

    def completion_provider(
        self, database_type: DatabaseType | str | None = None, schema: SqlSchema | None = None
    ) -> SqlCompletionProvider:
        dialect_info = None
        if database_type is not None:
            dialect_info = get_plugin(database_type).get_completion_info()
        return SqlCompletionProvider(
            schema=schema or SqlSchema(),
            dialect_info=dialect_info,
            max_items=int(self.settings["completion"]["max_items"]),
            logger=self.logger,
        )
