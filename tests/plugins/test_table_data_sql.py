from __future__ import annotations

import pytest

from dail.core.plugins import NO_ROW_CHANGES, get_plugin
from dail.core.types import (
    DatabaseType,
    FilterCondition,
    FilterOperator,
    RowChangeKind,
    SortCondition,
    SortDirection,
    TableCellChange,
    TableDataRequest,
    TableRowChange,
    TableSaveRequest,
)


def _save_request(changes: list[TableRowChange], **kwargs) -> TableSaveRequest:
    kwargs.setdefault("primary_key_indices", [0])
    return TableSaveRequest(
        database="shop",
        table="users",
        column_names=["id", "name"],
        changes=changes,
        **kwargs,
    )


def _rename(row_id: str, old: str, new: str | None) -> TableRowChange:
    return TableRowChange(
        kind=RowChangeKind.UPDATED,
        data=[row_id, old],
        changes=[TableCellChange(column_index=1, column_name="name", old_value=old, new_value=new)],
    )


def test_filtered_sorted_page_postgres() -> None:
    request = TableDataRequest(
        database="shop",
        table="users",
        schema="public",
        page=3,
        page_size=20,
        filters=[
            FilterCondition("name", FilterOperator.LIKE, "a%"),
            FilterCondition("deleted_at", FilterOperator.IS_NULL),
            FilterCondition("role", FilterOperator.IN, "'admin', 'ops'"),
        ],
        sorts=[SortCondition("id", SortDirection.DESC), SortCondition("name")],
    )
    count_sql, data_sql = get_plugin(DatabaseType.POSTGRESQL).build_table_data_sql(request)

    where = " WHERE \"name\" LIKE 'a%' AND \"deleted_at\" IS NULL AND \"role\" IN ('admin', 'ops')"
    assert count_sql == f'SELECT COUNT(*) FROM "public"."users"{where}'
    assert data_sql == f'SELECT * FROM "public"."users"{where} ORDER BY "id" DESC, "name" ASC LIMIT 20 OFFSET 40'


def test_raw_clauses_take_priority() -> None:
    request = TableDataRequest(
        database="shop",
        table="users",
        filters=[FilterCondition("name", FilterOperator.EQUAL, "ignored")],
        sorts=[SortCondition("name")],
        where_clause="  id > 5 ",
        order_by_clause="id",
    )
    count_sql, data_sql = get_plugin(DatabaseType.MYSQL).build_table_data_sql(request)

    assert count_sql == "SELECT COUNT(*) FROM `shop`.`users` WHERE id > 5"
    assert data_sql == "SELECT * FROM `shop`.`users` WHERE id > 5 ORDER BY id LIMIT 100 OFFSET 0"


def test_filter_values_are_escaped() -> None:
    request = TableDataRequest(
        database="main",
        table="t",
        filters=[FilterCondition("name", FilterOperator.NOT_EQUAL, "O'Brien")],
        page_size=0,
    )
    _, data_sql = get_plugin(DatabaseType.SQLITE).build_table_data_sql(request)
    assert data_sql == "SELECT * FROM \"t\" WHERE \"name\" <> 'O''Brien'"


@pytest.mark.parametrize(
    ("database_type", "expected"),
    [
        (DatabaseType.MSSQL, "SELECT * FROM [shop].[dbo].[users] ORDER BY (SELECT NULL) OFFSET 10 ROWS FETCH NEXT 10 ROWS ONLY"),
        (DatabaseType.ORACLE, 'SELECT * FROM "shop"."users" OFFSET 10 ROWS FETCH NEXT 10 ROWS ONLY'),
        (DatabaseType.SQLITE, 'SELECT * FROM "users" LIMIT 10 OFFSET 10'),
    ],
)
def test_pagination_per_dialect(database_type: DatabaseType, expected: str) -> None:
    request = TableDataRequest(database="shop", table="users", page=2, page_size=10)
    _, data_sql = get_plugin(database_type).build_table_data_sql(request)
    assert data_sql == expected


def test_mssql_keeps_explicit_order() -> None:
    request = TableDataRequest(database="shop", table="users", page_size=5, sorts=[SortCondition("id")])
    _, data_sql = get_plugin(DatabaseType.MSSQL).build_table_data_sql(request)
    assert data_sql.endswith("ORDER BY [id] ASC OFFSET 0 ROWS FETCH NEXT 5 ROWS ONLY")
    assert "(SELECT NULL)" not in data_sql


def test_mysql_row_changes() -> None:
    request = _save_request(
        [
            TableRowChange(kind=RowChangeKind.ADDED, data=["3", None]),
            _rename("1", "Al", "Bob"),
            TableRowChange(kind=RowChangeKind.DELETED, data=["2", "x"]),
        ]
    )
    sql = get_plugin(DatabaseType.MYSQL).generate_table_changes_sql(request)

    assert sql.split(";\n") == [
        "INSERT INTO `shop`.`users` (`id`, `name`) VALUES ('3', NULL)",
        "UPDATE `shop`.`users` SET `name` = 'Bob' WHERE `id` = '1' LIMIT 1",
        "DELETE FROM `shop`.`users` WHERE `id` = '2' LIMIT 1;",
    ]


def test_update_where_uses_original_values() -> None:
    request = _save_request([_rename("1", "Al", "Bob")], primary_key_indices=[])
    sql = get_plugin(DatabaseType.MYSQL).generate_table_changes_sql(request)
    assert sql == "UPDATE `shop`.`users` SET `name` = 'Bob' WHERE `id` = '1' AND `name` = 'Al' LIMIT 1;"


def test_null_sentinel_and_null_originals() -> None:
    request = _save_request([_rename("1", None, "NULL")], primary_key_indices=[], unique_key_indices=[])
    sql = get_plugin(DatabaseType.POSTGRESQL).generate_table_changes_sql(request)
    assert sql == (
        'UPDATE "public"."users" SET "name" = NULL WHERE ctid IN '
        '(SELECT ctid FROM "public"."users" WHERE "id" = \'1\' AND "name" IS NULL LIMIT 1);'
    )


def test_unique_key_used_when_no_primary_key() -> None:
    request = _save_request(
        [TableRowChange(kind=RowChangeKind.DELETED, data=["7", "dup"])],
        primary_key_indices=[],
        unique_key_indices=[1],
    )
    sql = get_plugin(DatabaseType.SQLITE).generate_table_changes_sql(request)
    assert sql == "DELETE FROM \"users\" WHERE \"name\" = 'dup';"


@pytest.mark.parametrize(
    ("database_type", "expected"),
    [
        (DatabaseType.POSTGRESQL, 'DELETE FROM "public"."users" WHERE ctid IN (SELECT ctid FROM "public"."users" WHERE "id" = \'1\' LIMIT 1);'),
        (DatabaseType.MSSQL, "DELETE TOP (1) FROM [shop].[dbo].[users] WHERE [id] = '1';"),
        (DatabaseType.SQLITE, "DELETE FROM \"users\" WHERE \"id\" = '1';"),
        (DatabaseType.ORACLE, "DELETE FROM \"shop\".\"users\" WHERE \"id\" = '1' AND ROWNUM <= 1;"),
    ],
)
def test_single_row_delete_per_dialect(database_type: DatabaseType, expected: str) -> None:
    request = _save_request([TableRowChange(kind=RowChangeKind.DELETED, data=["1", "a"])])
    assert get_plugin(database_type).generate_table_changes_sql(request) == expected


def test_sqlite_without_key_targets_rowid() -> None:
    request = _save_request(
        [TableRowChange(kind=RowChangeKind.DELETED, data=["1", None])],
        primary_key_indices=[],
    )
    sql = get_plugin(DatabaseType.SQLITE).generate_table_changes_sql(request)
    assert sql == (
        'DELETE FROM "users" WHERE rowid IN '
        '(SELECT rowid FROM "users" WHERE "id" = \'1\' AND "name" IS NULL LIMIT 1);'
    )


def test_mssql_update_top() -> None:
    request = _save_request([_rename("1", "a", "x")])
    assert get_plugin(DatabaseType.MSSQL).generate_table_changes_sql(request) == (
        "UPDATE TOP (1) [shop].[dbo].[users] SET [name] = 'x' WHERE [id] = '1';"
    )


def test_no_row_changes() -> None:
    plugin = get_plugin(DatabaseType.MYSQL)
    assert plugin.generate_table_changes_sql(_save_request([])) == NO_ROW_CHANGES
    empty_update = TableRowChange(kind=RowChangeKind.UPDATED, data=["1", "a"])
    assert plugin.generate_table_changes_sql(_save_request([empty_update])) == NO_ROW_CHANGES
