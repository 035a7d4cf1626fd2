from __future__ import annotations

import asyncio

import pytest

from dail.core.errors import CancelledError, DbError, DisconnectedError, QueryFailedError
from dail.core.executor import CancelToken
from dail.core.types import (
    DatabaseType,
    RowChangeKind,
    TableDataRequest,
    TableRowChange,
    TableSaveRequest,
)
from dail.core.connections.base import not_connected
from tests.conftest import FakeConnection, fake_factory, make_state, server_config


def _with_fake(database_type: DatabaseType, scenario, **fake_kwargs) -> FakeConnection:
    config = server_config(database_type)
    fake = FakeConnection(config, **fake_kwargs)

    async def _main() -> None:
        state = make_state(config, connection_factory=fake_factory({config.id: fake}))
        try:
            await scenario(state)
        finally:
            await state.close()

    asyncio.run(_main())
    return fake


def test_mysql_tables_are_parsed_and_escaped() -> None:
    responses = [
        (
            "INFORMATION_SCHEMA.TABLES",
            ["NAME", "ENGINE", "ROW_COUNT", "CREATE_TIME", "COLLATION", "COMMENT"],
            [["users", "InnoDB", "42", "2024-01-01 00:00:00", "utf8mb4_general_ci", ""]],
        )
    ]

    async def scenario(state) -> None:
        tables = await state.list_tables("srv", "sh'op")
        assert len(tables) == 1
        users = tables[0]
        assert (users.name, users.engine, users.row_count) == ("users", "InnoDB", 42)
        assert users.charset == "utf8mb4"
        assert users.comment is None

    fake = _with_fake(DatabaseType.MYSQL, scenario, responses=responses)
    assert "TABLE_SCHEMA = 'sh''op'" in fake.executed[0]


def test_mysql_database_view() -> None:
    responses = [
        (
            "GROUP BY s.SCHEMA_NAME",
            ["name", "charset", "collation", "table_count", "size_bytes"],
            [["shop", "utf8mb4", "utf8mb4_bin", "3", "2048"]],
        )
    ]

    async def scenario(state) -> None:
        detailed = await state.list_databases_detailed("srv")
        assert detailed[0].size == "2 KB"
        assert detailed[0].table_count == 3

        view = await state.object_view("srv", "databases")
        assert view.title == "1 database(s)"
        assert view.rows == (("shop", "utf8mb4", "utf8mb4_bin", "2 KB", "3", ""),)

    _with_fake(DatabaseType.MYSQL, scenario, responses=responses)


def test_mysql_index_rows_are_grouped() -> None:
    responses = [
        (
            "INFORMATION_SCHEMA.STATISTICS",
            ["INDEX_NAME", "COLUMN_NAME", "UNIQUE", "INDEX_TYPE"],
            [["PRIMARY", "id", "1", "BTREE"], ["ix_ab", "a", "0", "BTREE"], ["ix_ab", "b", "0", "BTREE"]],
        )
    ]

    async def scenario(state) -> None:
        indexes = await state.list_indexes("srv", "shop", "users")
        assert [(i.name, i.columns, i.is_unique) for i in indexes] == [
            ("PRIMARY", ("id",), True),
            ("ix_ab", ("a", "b"), False),
        ]

    _with_fake(DatabaseType.MYSQL, scenario, responses=responses)


def test_mssql_table_page_uses_offset_fetch() -> None:
    responses = [
        (
            "COLUMNS c",
            ["name", "data_type", "nullable", "default_value", "is_pk", "comment"],
            [["id", "int", "NO", None, "1", None], ["name", "nvarchar(50)", "YES", None, "0", None]],
        ),
        ("SELECT COUNT(*)", [""], [["12"]]),
        ("SELECT * FROM", ["id", "name"], [["1", "ann"]]),
    ]

    async def scenario(state) -> None:
        page = await state.query_table_data(
            "srv", TableDataRequest(database="shop", table="users", page=1, page_size=10)
        )
        assert page.total_count == 12
        assert page.rows == [["1", "ann"]]
        assert page.primary_key_indices == [0]
        assert [c.name for c in page.columns] == ["id", "name"]

    fake = _with_fake(DatabaseType.MSSQL, scenario, responses=responses)
    assert "SELECT * FROM [shop].[dbo].[users] ORDER BY (SELECT NULL) OFFSET 0 ROWS FETCH NEXT 10 ROWS ONLY" in fake.executed


def test_ddl_facades_send_dialect_sql() -> None:
    async def scenario(state) -> None:
        await state.rename_table("srv", "shop", "users", "people")
        await state.truncate_table("srv", "shop", "people")

    fake = _with_fake(DatabaseType.MSSQL, scenario)
    assert fake.executed == [
        "EXEC sp_rename '[shop].[dbo].[users]', 'people'",
        "TRUNCATE TABLE [shop].[dbo].[people]",
    ]


def test_postgres_schema_listing_and_drop() -> None:
    responses = [("information_schema.schemata", ["schema_name"], [["public"], ["sales"]])]

    async def scenario(state) -> None:
        assert await state.list_schemas("srv", "shop") == ["public", "sales"]
        await state.drop_table("srv", "shop", "sales.orders")

    fake = _with_fake(DatabaseType.POSTGRESQL, scenario, responses=responses)
    assert fake.executed[-1] == 'DROP TABLE IF EXISTS "sales"."orders"'


def test_failed_ddl_raises_and_counts() -> None:
    async def scenario(state) -> None:
        with pytest.raises(QueryFailedError) as excinfo:
            await state.drop_table("srv", "shop", "users")
        assert excinfo.value.code == "E1"
        assert "permission denied" in excinfo.value.message
        assert state.stats()["srv"]["errors"] == 1

    _with_fake(DatabaseType.MYSQL, scenario, failures={"DROP TABLE": "permission denied"})


def test_oracle_row_changes_limit_with_rownum() -> None:
    request = TableSaveRequest(
        database="APP",
        table="T",
        column_names=["ID", "NAME"],
        primary_key_indices=[0],
        changes=[TableRowChange(kind=RowChangeKind.DELETED, data=["1", "a"])],
    )

    async def scenario(state) -> None:
        response = await state.apply_table_changes("srv", request)
        assert response.success_count == 1

    fake = _with_fake(DatabaseType.ORACLE, scenario)
    assert fake.executed == ["DELETE FROM \"APP\".\"T\" WHERE \"ID\" = '1' AND ROWNUM <= 1"]


def test_connection_is_opened_lazily_once() -> None:
    async def scenario(state) -> None:
        assert not state.is_connected("srv")
        await state.list_databases("srv")
        await state.list_databases("srv")
        assert state.is_connected("srv")
        await state.disconnect_all("srv")
        assert not state.is_connected("srv")

    fake = _with_fake(DatabaseType.POSTGRESQL, scenario)
    assert fake.opened == 1
    assert len(fake.executed) == 2


def test_catalog_calls_honour_cancel_token() -> None:
    token = CancelToken()
    token.cancel()

    async def scenario(state) -> None:
        with pytest.raises(CancelledError):
            await state.list_tables("srv", "shop", cancel_token=token)
        with pytest.raises(CancelledError):
            await state.object_view("srv", "tables", "shop", cancel_token=token)
        with pytest.raises(CancelledError):
            await state.query_table_data(
                "srv", TableDataRequest(database="shop", table="users"), cancel_token=token
            )
        with pytest.raises(CancelledError):
            await state.drop_table("srv", "shop", "users", cancel_token=token)
        assert await state.list_databases("srv") == []

    fake = _with_fake(DatabaseType.MYSQL, scenario)
    assert len(fake.executed) == 1
    assert "SCHEMATA" in fake.executed[0].upper()


def test_cancel_token_stops_catalog_between_statements() -> None:
    token = CancelToken()
    responses = [("COUNT(*)", ["n"], [["3"]])]

    class CancellingFake(FakeConnection):
        async def _run(self, sql, params, max_rows):
            result = await super()._run(sql, params, max_rows)
            token.cancel()
            return result

    config = server_config(DatabaseType.POSTGRESQL)
    fake = CancellingFake(config, responses=responses)

    async def _main() -> None:
        state = make_state(config, connection_factory=fake_factory({config.id: fake}))
        try:
            with pytest.raises(CancelledError):
                await state.query_table_data(
                    "srv", TableDataRequest(database="shop", table="users"), cancel_token=token
                )
        finally:
            await state.close()

    asyncio.run(_main())
    assert len(fake.executed) == 1


class DroppingFake(FakeConnection):
    """Loses the server on statements containing ``lost``."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.closed = 0

    async def _close(self, raw) -> None:
        self.closed += 1

    def _translate_error(self, exc: Exception) -> DbError:
        if "lost" in str(exc):
            return not_connected(exc)
        return super()._translate_error(exc)


def test_lost_connection_releases_driver_handle() -> None:
    config = server_config(DatabaseType.POSTGRESQL)
    fake = DroppingFake(config, failures={"lost": "server lost"})

    async def _main() -> None:
        state = make_state(config, connection_factory=fake_factory({config.id: fake}))
        try:
            with pytest.raises(DisconnectedError):
                await state.query("srv", "SELECT 'lost'")
            assert fake.closed == 1
            assert not state.is_connected("srv")

            result = await state.query("srv", "SELECT 1")
            assert result.columns == []
            assert fake.opened == 2
        finally:
            await state.close()

    asyncio.run(_main())
    assert fake.closed == 2
