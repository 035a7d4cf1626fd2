from __future__ import annotations

from typing import Sequence

from ..connections.base import Connection
from ..types import (
    CheckInfo,
    CollationInfo,
    ColumnDefinition,
    ColumnInfo,
    DatabaseInfo,
    DatabaseOperationRequest,
    DatabaseType,
    DataTypeCategory,
    DataTypeInfo,
    FunctionInfo,
    IndexDefinition,
    IndexInfo,
    RowChangeKind,
    SequenceInfo,
    TableInfo,
    TriggerInfo,
    ViewInfo,
)
from ..utils import escape_literal, quote_literal
from .base import DatabasePlugin, _as_int, _truthy, _type_changed, group_index_rows


DEFAULT_SCHEMA = "dbo"

_SYSTEM_DATABASES = ("master", "tempdb", "model", "msdb")

_ROLE_SCHEMAS = (
    "db_owner", "db_accessadmin", "db_securityadmin", "db_ddladmin",
    "db_backupoperator", "db_datareader", "db_datawriter",
    "db_denydatareader", "db_denydatawriter", "sys", "INFORMATION_SCHEMA", "guest",
)

_COLLATIONS = (
    "SQL_Latin1_General_CP1_CI_AS",
    "SQL_Latin1_General_CP1_CS_AS",
    "Latin1_General_CI_AS",
    "Latin1_General_CS_AS",
    "Latin1_General_100_CI_AS_SC_UTF8",
    "Chinese_PRC_CI_AS",
    "Japanese_CI_AS",
)


class MssqlPlugin(DatabasePlugin):
    database_type = DatabaseType.MSSQL
    quote_open = "["
    quote_close = "]"
    dialect_name = "tsql"
    unsupported_column_changes: tuple[str, ...] = ("unsigned", "charset", "auto_increment")

    completion_keywords = (
        ("IDENTITY", "Auto-increment column"),
        ("CLUSTERED", "Clustered index"),
        ("NONCLUSTERED", "Non-clustered index"),
        ("TOP", "Limit rows"),
        ("OUTPUT", "Return affected rows"),
        ("MERGE", "Upsert statement"),
        ("GO", "Batch separator"),
        ("EXEC", "Execute procedure"),
        ("DECLARE", "Declare variable"),
        ("NOLOCK", "Read uncommitted hint"),
        ("CROSS APPLY", "Apply table function"),
        ("OUTER APPLY", "Outer apply"),
        ("OFFSET", "Skip rows"),
        ("FETCH NEXT", "Take rows"),
    )
    completion_functions = (
        ("LEN(str)", "String length"),
        ("CHARINDEX(substr, str)", "Position of substring"),
        ("ISNULL(expr, alt)", "Replace NULL"),
        ("IIF(cond, a, b)", "Inline if"),
        ("GETDATE()", "Current date and time"),
        ("SYSDATETIME()", "Current high-precision time"),
        ("DATEADD(part, n, date)", "Add interval"),
        ("DATEDIFF(part, a, b)", "Difference between dates"),
        ("DATEPART(part, date)", "Extract date part"),
        ("FORMAT(value, fmt)", "Format value"),
        ("CONVERT(type, expr)", "Convert type"),
        ("TRY_CAST(expr AS type)", "Cast or NULL"),
        ("STRING_AGG(expr, sep)", "Concatenate group values"),
        ("NEWID()", "New uniqueidentifier"),
        ("SCOPE_IDENTITY()", "Last identity value"),
        ("OBJECT_ID(name)", "Object id"),
    )
    completion_operators = (
        ("+", "Concatenate or add"),
        ("%", "Modulo"),
        ("!=", "Not equal"),
        ("!<", "Not less than"),
        ("!>", "Not greater than"),
    )
    completion_data_types = (
        ("INT", "4-byte integer"),
        ("BIGINT", "8-byte integer"),
        ("SMALLINT", "2-byte integer"),
        ("TINYINT", "1-byte integer"),
        ("BIT", "Boolean bit"),
        ("DECIMAL", "Exact decimal"),
        ("MONEY", "Currency"),
        ("FLOAT", "Approximate numeric"),
        ("NVARCHAR", "Unicode string"),
        ("VARCHAR", "Variable-length string"),
        ("NTEXT", "Unicode long text"),
        ("DATETIME2", "Date and time"),
        ("DATE", "Date"),
        ("TIME", "Time of day"),
        ("DATETIMEOFFSET", "Date and time with offset"),
        ("UNIQUEIDENTIFIER", "GUID"),
        ("VARBINARY", "Binary data"),
    )
    completion_snippets = (
        ("crt", "CREATE TABLE $1 (\n  id INT IDENTITY(1,1) PRIMARY KEY,\n  $2\n);", "Create table"),
        ("idx", "CREATE NONCLUSTERED INDEX $1 ON $2 ($3);", "Create index"),
        ("top", "SELECT TOP ($1) * FROM $2", "Select top rows"),
        ("try", "BEGIN TRY\n  $1\nEND TRY\nBEGIN CATCH\n  SELECT ERROR_MESSAGE();\nEND CATCH", "Try/catch block"),
    )

    def supports_schema(self) -> bool:
        return True

    def supports_sequences(self) -> bool:
        return True

    def qualified_table(self, database: str, table: str, schema: str | None = None) -> str:
        if "." in table and schema is None:
            schema, table = table.split(".", 1)
        parts = [self.quote_identifier(schema or DEFAULT_SCHEMA), self.quote_identifier(table)]
        if database:
            parts.insert(0, self.quote_identifier(database))
        return ".".join(parts)

    def _sys(self, database: str, view: str) -> str:
        return f"{self.quote_identifier(database)}.{view}" if database else view

    # --- catalog ---------------------------------------------------------------

    async def list_databases(self, conn: Connection) -> list[str]:
        excluded = ", ".join(quote_literal(name) for name in _SYSTEM_DATABASES)
        _, rows = await conn.fetch_rows(
            f"SELECT name FROM sys.databases WHERE name NOT IN ({excluded}) ORDER BY name"
        )
        return [row[0] for row in rows if row[0]]

    async def list_databases_detailed(self, conn: Connection) -> list[DatabaseInfo]:
        excluded = ", ".join(quote_literal(name) for name in _SYSTEM_DATABASES)
        rows = await conn.fetch_dicts(
            "SELECT d.name AS name, d.collation_name AS collation, "
            "CAST(SUM(CAST(f.size AS BIGINT)) * 8 / 1024 AS VARCHAR(32)) + ' MB' AS size "
            "FROM sys.databases d LEFT JOIN sys.master_files f ON f.database_id = d.database_id "
            f"WHERE d.name NOT IN ({excluded}) GROUP BY d.name, d.collation_name ORDER BY d.name"
        )
        return [
            DatabaseInfo(name=row["name"] or "", collation=row.get("collation"), size=row.get("size"))
            for row in rows
        ]

    async def list_schemas(self, conn: Connection, database: str) -> list[str]:
        excluded = ", ".join(quote_literal(name) for name in _ROLE_SCHEMAS)
        _, rows = await conn.fetch_rows(
            f"SELECT name FROM {self._sys(database, 'sys.schemas')} "
            f"WHERE name NOT IN ({excluded}) ORDER BY name"
        )
        return [row[0] for row in rows if row[0]]

    async def list_tables(self, conn: Connection, database: str) -> list[TableInfo]:
        rows = await conn.fetch_dicts(
            "SELECT TABLE_SCHEMA AS [schema], TABLE_NAME AS name "
            f"FROM {self._sys(database, 'INFORMATION_SCHEMA.TABLES')} "
            "WHERE TABLE_TYPE = 'BASE TABLE' ORDER BY TABLE_SCHEMA, TABLE_NAME"
        )
        return [TableInfo(name=row["name"] or "", schema=row.get("schema")) for row in rows]

    async def list_columns(self, conn: Connection, database: str, table: str) -> list[ColumnInfo]:
        schema, name = _split_table(table)
        info_schema = self._sys(database, "INFORMATION_SCHEMA")
        rows = await conn.fetch_dicts(
            "SELECT c.COLUMN_NAME AS name, "
            "CASE WHEN c.CHARACTER_MAXIMUM_LENGTH = -1 THEN c.DATA_TYPE + '(MAX)' "
            "WHEN c.CHARACTER_MAXIMUM_LENGTH IS NOT NULL "
            "THEN c.DATA_TYPE + '(' + CAST(c.CHARACTER_MAXIMUM_LENGTH AS VARCHAR(10)) + ')' "
            "ELSE c.DATA_TYPE END AS data_type, "
            "c.IS_NULLABLE AS nullable, c.COLUMN_DEFAULT AS default_value, "
            "CASE WHEN pk.COLUMN_NAME IS NULL THEN 0 ELSE 1 END AS is_pk, "
            "CAST(ep.value AS NVARCHAR(4000)) AS comment "
            f"FROM {info_schema}.COLUMNS c "
            "LEFT JOIN ("
            "SELECT ku.TABLE_SCHEMA, ku.TABLE_NAME, ku.COLUMN_NAME "
            f"FROM {info_schema}.TABLE_CONSTRAINTS tc "
            f"JOIN {info_schema}.KEY_COLUMN_USAGE ku ON ku.CONSTRAINT_NAME = tc.CONSTRAINT_NAME "
            "WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'"
            ") pk ON pk.TABLE_SCHEMA = c.TABLE_SCHEMA AND pk.TABLE_NAME = c.TABLE_NAME "
            "AND pk.COLUMN_NAME = c.COLUMN_NAME "
            f"LEFT JOIN {self._sys(database, 'sys.extended_properties')} ep "
            "ON ep.major_id = OBJECT_ID(QUOTENAME(c.TABLE_CATALOG) + '.' + QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)) "
            "AND ep.minor_id = COLUMNPROPERTY(ep.major_id, c.COLUMN_NAME, 'ColumnId') "
            "AND ep.name = 'MS_Description' "
            f"WHERE c.TABLE_SCHEMA = {quote_literal(schema)} AND c.TABLE_NAME = {quote_literal(name)} "
            "ORDER BY c.ORDINAL_POSITION"
        )
        return [
            ColumnInfo(
                name=row["name"] or "",
                data_type=row.get("data_type") or "",
                is_nullable=row.get("nullable") == "YES",
                is_primary_key=_truthy(row.get("is_pk")),
                default_value=row.get("default_value"),
                comment=row.get("comment"),
            )
            for row in rows
        ]

    async def list_indexes(self, conn: Connection, database: str, table: str) -> list[IndexInfo]:
        object_name = escape_literal(self.qualified_table(database, table))
        _, rows = await conn.fetch_rows(
            "SELECT i.name, c.name, i.is_unique, i.type_desc "
            f"FROM {self._sys(database, 'sys.indexes')} i "
            f"JOIN {self._sys(database, 'sys.index_columns')} ic "
            "ON ic.object_id = i.object_id AND ic.index_id = i.index_id "
            f"JOIN {self._sys(database, 'sys.columns')} c "
            "ON c.object_id = ic.object_id AND c.column_id = ic.column_id "
            f"WHERE i.object_id = OBJECT_ID('{object_name}') AND i.type > 0 "
            "ORDER BY i.name, ic.key_ordinal"
        )
        return group_index_rows(rows)

    async def list_views(self, conn: Connection, database: str) -> list[ViewInfo]:
        rows = await conn.fetch_dicts(
            "SELECT TABLE_SCHEMA AS [schema], TABLE_NAME AS name, VIEW_DEFINITION AS definition "
            f"FROM {self._sys(database, 'INFORMATION_SCHEMA.VIEWS')} ORDER BY TABLE_SCHEMA, TABLE_NAME"
        )
        return [
            ViewInfo(name=row["name"] or "", schema=row.get("schema"), definition=row.get("definition"))
            for row in rows
        ]

    async def _routines(self, conn: Connection, database: str, kind: str) -> list[FunctionInfo]:
        rows = await conn.fetch_dicts(
            "SELECT ROUTINE_NAME AS name, DATA_TYPE AS return_type, ROUTINE_DEFINITION AS definition "
            f"FROM {self._sys(database, 'INFORMATION_SCHEMA.ROUTINES')} "
            f"WHERE ROUTINE_TYPE = '{kind}' ORDER BY ROUTINE_NAME"
        )
        return [
            FunctionInfo(
                name=row["name"] or "",
                return_type=row.get("return_type"),
                definition=row.get("definition"),
            )
            for row in rows
        ]

    async def list_functions(self, conn: Connection, database: str) -> list[FunctionInfo]:
        return await self._routines(conn, database, "FUNCTION")

    async def list_procedures(self, conn: Connection, database: str) -> list[FunctionInfo]:
        return await self._routines(conn, database, "PROCEDURE")

    async def list_triggers(self, conn: Connection, database: str) -> list[TriggerInfo]:
        rows = await conn.fetch_dicts(
            "SELECT t.name AS name, OBJECT_NAME(t.parent_id) AS table_name, "
            "CASE WHEN t.is_instead_of_trigger = 1 THEN 'INSTEAD OF' ELSE 'AFTER' END AS timing "
            f"FROM {self._sys(database, 'sys.triggers')} t "
            "WHERE t.parent_class = 1 ORDER BY t.name"
        )
        return [
            TriggerInfo(name=row["name"] or "", table_name=row.get("table_name"), timing=row.get("timing"))
            for row in rows
        ]

    async def list_sequences(self, conn: Connection, database: str) -> list[SequenceInfo]:
        rows = await conn.fetch_dicts(
            "SELECT name, CAST(start_value AS VARCHAR(40)) AS start_value, "
            "CAST(increment AS VARCHAR(40)) AS increment, "
            "CAST(minimum_value AS VARCHAR(40)) AS minimum_value, "
            "CAST(maximum_value AS VARCHAR(40)) AS maximum_value "
            f"FROM {self._sys(database, 'sys.sequences')} ORDER BY name"
        )
        return [
            SequenceInfo(
                name=row["name"] or "",
                start_value=_as_int(row.get("start_value")),
                increment=_as_int(row.get("increment")),
                min_value=_as_int(row.get("minimum_value")),
                max_value=_as_int(row.get("maximum_value")),
            )
            for row in rows
        ]

    async def list_table_checks(self, conn: Connection, database: str, table: str) -> list[CheckInfo]:
        object_name = escape_literal(self.qualified_table(database, table))
        rows = await conn.fetch_dicts(
            "SELECT name, definition "
            f"FROM {self._sys(database, 'sys.check_constraints')} "
            f"WHERE parent_object_id = OBJECT_ID('{object_name}') ORDER BY name"
        )
        _, name = _split_table(table)
        return [
            CheckInfo(name=row["name"] or "", table_name=name, definition=row.get("definition"))
            for row in rows
        ]

    # --- DDL -------------------------------------------------------------------

    def _collate_clause(self, request: DatabaseOperationRequest) -> str:
        collation = request.field_values.get("collation", "").strip()
        return f" COLLATE {collation}" if collation else ""

    def build_create_database_sql(self, request: DatabaseOperationRequest) -> str:
        return f"CREATE DATABASE {self.quote_identifier(request.database_name)}{self._collate_clause(request)};"

    def build_modify_database_sql(self, request: DatabaseOperationRequest) -> str:
        clause = self._collate_clause(request)
        name = self.quote_identifier(request.database_name)
        if not clause:
            return f"-- No modifications for database {name}"
        return f"ALTER DATABASE {name}{clause};"

    def build_comment_schema_sql(self, name: str, comment: str) -> str | None:
        self._require_schema_support()
        return (
            "EXEC sp_addextendedproperty @name=N'MS_Description', "
            f"@value=N'{escape_literal(comment)}', "
            f"@level0type=N'SCHEMA', @level0name=N'{escape_literal(name)}';"
        )

    def drop_table(self, database: str, table: str) -> str:
        return f"DROP TABLE IF EXISTS {self.qualified_table(database, table)};"

    def rename_table(self, database: str, old_name: str, new_name: str) -> str:
        # sp_rename takes the current name qualified and the new name bare.
        current = escape_literal(self.qualified_table(database, old_name))
        _, bare = _split_table(new_name)
        return f"EXEC sp_rename '{current}', '{escape_literal(bare)}';"

    def drop_view(self, database: str, view: str) -> str:
        schema, name = _split_table(view)
        return f"DROP VIEW IF EXISTS {self.quote_identifier(schema)}.{self.quote_identifier(name)};"

    def auto_increment_clause(self) -> str:
        return "IDENTITY(1,1)"

    def column_constraints(self, col: ColumnDefinition) -> list[str]:
        parts: list[str] = []
        if col.collation:
            parts.append(f"COLLATE {col.collation}")
        if col.is_auto_increment:
            parts.append(self.auto_increment_clause())
        parts.append("NULL" if col.is_nullable else "NOT NULL")
        if col.default_value:
            parts.append(f"DEFAULT {col.default_value}")
        return parts

    def add_column_sql(
        self, table: str, col: ColumnDefinition, after: str | None, first: bool
    ) -> str:
        return f"ALTER TABLE {table} ADD {self.build_column_def(col)};"

    def modify_column_sql(
        self, table: str, old: ColumnDefinition, new: ColumnDefinition
    ) -> list[str]:
        column = self.quote_identifier(new.name)
        statements: list[str] = []
        if (
            _type_changed(old, new)
            or old.is_nullable != new.is_nullable
            or (old.collation or "") != (new.collation or "")
        ):
            collate = f" COLLATE {new.collation}" if new.collation else ""
            null = "NULL" if new.is_nullable else "NOT NULL"
            statements.append(
                f"ALTER TABLE {table} ALTER COLUMN {column} {self.type_string(new)}{collate} {null};"
            )
        if (old.default_value or "") != (new.default_value or ""):
            if old.default_value:
                statements.append(self._drop_default_sql(table, new.name))
            if new.default_value:
                statements.append(f"ALTER TABLE {table} ADD DEFAULT {new.default_value} FOR {column};")
        if (old.comment or "") != (new.comment or ""):
            statements.append(self._column_comment_sql(table, new.name, old.comment, new.comment))
        return statements

    def _drop_default_sql(self, table: str, column: str) -> str:
        # Default constraints carry server-generated names; resolve it and drop it in one batch.
        target = escape_literal(table)
        return (
            "DECLARE @df sysname = (SELECT dc.name FROM sys.default_constraints dc "
            "JOIN sys.columns c ON c.object_id = dc.parent_object_id "
            "AND c.column_id = dc.parent_column_id "
            f"WHERE dc.parent_object_id = OBJECT_ID(N'{target}') "
            f"AND c.name = N'{escape_literal(column)}') "
            f"IF @df IS NOT NULL EXEC(N'ALTER TABLE {target} DROP CONSTRAINT ' + QUOTENAME(@df));"
        )

    def _column_comment_sql(self, table: str, column: str, old: str, new: str) -> str:
        schema, name = _split_table(_unbracket(table))
        if not new:
            procedure, value = "sp_dropextendedproperty", ""
        else:
            procedure = "sp_updateextendedproperty" if old else "sp_addextendedproperty"
            value = f"@value=N'{escape_literal(new)}', "
        return (
            f"EXEC {procedure} @name=N'MS_Description', {value}"
            f"@level0type=N'SCHEMA', @level0name=N'{escape_literal(schema)}', "
            f"@level1type=N'TABLE', @level1name=N'{escape_literal(name)}', "
            f"@level2type=N'COLUMN', @level2name=N'{escape_literal(column)}';"
        )

    def drop_primary_key_sql(self, table: str, table_name: str) -> str:
        return f"ALTER TABLE {table} DROP CONSTRAINT {self.quote_identifier('PK_' + table_name)};"

    def add_primary_key_sql(self, table: str, table_name: str, columns: Sequence[str]) -> str:
        constraint = self.quote_identifier("PK_" + table_name)
        return f"ALTER TABLE {table} ADD CONSTRAINT {constraint} PRIMARY KEY ({self._column_list(columns)});"

    def drop_index_sql(self, table: str, index: IndexDefinition) -> str:
        return f"DROP INDEX {self.quote_identifier(index.name)} ON {table};"

    # --- table data ------------------------------------------------------------

    def paginate(self, sql: str, has_order: bool, limit: int, offset: int) -> str:
        if not has_order:
            sql += " ORDER BY (SELECT NULL)"
        return f"{sql} OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"

    def single_row_statement(
        self,
        kind: RowChangeKind,
        table: str,
        set_clause: str,
        where_clause: str,
        has_unique_key: bool,
    ) -> str:
        where = f" WHERE {where_clause}" if where_clause else ""
        if kind is RowChangeKind.UPDATED:
            return f"UPDATE TOP (1) {table} SET {set_clause}{where}"
        return f"DELETE TOP (1) FROM {table}{where}"

    # --- dictionaries ----------------------------------------------------------

    def get_data_types(self) -> list[DataTypeInfo]:
        numeric, string, when = DataTypeCategory.NUMERIC, DataTypeCategory.STRING, DataTypeCategory.DATETIME
        return [
            DataTypeInfo("TINYINT", "1-byte integer", numeric),
            DataTypeInfo("SMALLINT", "2-byte integer", numeric),
            DataTypeInfo("INT", "4-byte integer", numeric),
            DataTypeInfo("BIGINT", "8-byte integer", numeric),
            DataTypeInfo("DECIMAL", "Exact decimal", numeric),
            DataTypeInfo("MONEY", "Currency", numeric),
            DataTypeInfo("FLOAT", "Approximate numeric", numeric),
            DataTypeInfo("CHAR", "Fixed-length string", string),
            DataTypeInfo("VARCHAR", "Variable-length string", string),
            DataTypeInfo("NCHAR", "Fixed-length Unicode string", string),
            DataTypeInfo("NVARCHAR", "Variable-length Unicode string", string),
            DataTypeInfo("NVARCHAR(MAX)", "Unicode long text", string),
            DataTypeInfo("UNIQUEIDENTIFIER", "GUID", string),
            DataTypeInfo("DATE", "Date", when),
            DataTypeInfo("TIME", "Time of day", when),
            DataTypeInfo("DATETIME", "Date and time", when),
            DataTypeInfo("DATETIME2", "Date and time, high precision", when),
            DataTypeInfo("DATETIMEOFFSET", "Date and time with offset", when),
            DataTypeInfo("BIT", "0 or 1", DataTypeCategory.BOOLEAN),
            DataTypeInfo("VARBINARY", "Variable-length binary", DataTypeCategory.BINARY),
            DataTypeInfo("XML", "XML document", DataTypeCategory.STRUCTURED),
        ]

    def get_collations(self, charset: str | None = None) -> list[CollationInfo]:
        return [
            CollationInfo(name, charset or "", name == "SQL_Latin1_General_CP1_CI_AS")
            for name in _COLLATIONS
        ]


def _split_table(table: str) -> tuple[str, str]:
    if "." in table:
        schema, name = table.split(".", 1)
        return schema, name
    return DEFAULT_SCHEMA, table


def _unbracket(quoted: str) -> str:
    if quoted.startswith("[") and quoted.endswith("]"):
        return quoted[1:-1].replace("]]", "]")
    return quoted
