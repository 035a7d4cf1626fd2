from __future__ import annotations

from ..connections.base import Connection
from ..types import (
    CheckInfo,
    ColumnDefinition,
    ColumnInfo,
    DatabaseOperationRequest,
    DatabaseType,
    DataTypeCategory,
    DataTypeInfo,
    FunctionInfo,
    IndexInfo,
    RowChangeKind,
    SequenceInfo,
    TableDesign,
    TableInfo,
    TableOptions,
    TriggerInfo,
    ViewInfo,
)
from ..utils import quote_literal
from .base import DatabasePlugin, _as_int, _type_changed, group_index_rows


class OraclePlugin(DatabasePlugin):
    """Oracle "databases" are schemas owned by users; DDL on them is user DDL."""

    database_type = DatabaseType.ORACLE
    dialect_name = "oracle"

    completion_keywords = (
        ("ROWNUM", "Row number pseudo-column"),
        ("ROWID", "Row address pseudo-column"),
        ("DUAL", "One-row dummy table"),
        ("CONNECT BY", "Hierarchical query"),
        ("START WITH", "Hierarchy root"),
        ("PRIOR", "Parent row in hierarchy"),
        ("MERGE INTO", "Upsert statement"),
        ("FETCH FIRST", "Limit rows"),
        ("SYSDATE", "Current date"),
        ("SYSTIMESTAMP", "Current timestamp"),
        ("PURGE", "Skip recycle bin"),
        ("NOCOPY", "Pass by reference"),
    )
    completion_functions = (
        ("NVL(expr, alt)", "Replace NULL"),
        ("NVL2(expr, if_not_null, if_null)", "Choose on NULL"),
        ("DECODE(expr, search, result, ...)", "Inline case"),
        ("TO_CHAR(value, fmt)", "Format to text"),
        ("TO_DATE(text, fmt)", "Parse date"),
        ("TO_NUMBER(text)", "Parse number"),
        ("TO_TIMESTAMP(text, fmt)", "Parse timestamp"),
        ("ADD_MONTHS(date, n)", "Add months"),
        ("MONTHS_BETWEEN(a, b)", "Months between dates"),
        ("TRUNC(date)", "Truncate date"),
        ("INSTR(str, substr)", "Position of substring"),
        ("SUBSTR(str, pos, len)", "Extract substring"),
        ("LISTAGG(expr, sep)", "Concatenate group values"),
        ("REGEXP_LIKE(str, pattern)", "Regex match"),
        ("SYS_GUID()", "Generate GUID"),
    )
    completion_operators = (
        ("||", "Concatenate"),
        (":=", "Assignment"),
        ("=>", "Named argument"),
    )
    completion_data_types = (
        ("NUMBER", "Numeric"),
        ("INTEGER", "Integer"),
        ("BINARY_FLOAT", "32-bit float"),
        ("BINARY_DOUBLE", "64-bit float"),
        ("VARCHAR2", "Variable-length string"),
        ("NVARCHAR2", "Unicode string"),
        ("CHAR", "Fixed-length string"),
        ("CLOB", "Character large object"),
        ("BLOB", "Binary large object"),
        ("DATE", "Date and time"),
        ("TIMESTAMP", "Timestamp"),
        ("RAW", "Raw binary"),
    )
    completion_snippets = (
        ("crt", "CREATE TABLE $1 (\n  id NUMBER GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,\n  $2\n);", "Create table"),
        ("idx", "CREATE INDEX $1 ON $2 ($3);", "Create index"),
        ("seq", "CREATE SEQUENCE $1 START WITH 1 INCREMENT BY 1;", "Create sequence"),
        ("blk", "BEGIN\n  $1\nEXCEPTION\n  WHEN OTHERS THEN\n    RAISE;\nEND;", "PL/SQL block"),
    )

    def supports_sequences(self) -> bool:
        return True

    # --- catalog ---------------------------------------------------------------

    async def list_databases(self, conn: Connection) -> list[str]:
        _, rows = await conn.fetch_rows(
            "SELECT username FROM all_users WHERE oracle_maintained = 'N' ORDER BY username"
        )
        return [row[0] for row in rows if row[0]]

    async def list_tables(self, conn: Connection, database: str) -> list[TableInfo]:
        rows = await conn.fetch_dicts(
            "SELECT t.table_name AS name, t.num_rows AS row_count, c.comments AS comments "
            "FROM all_tables t "
            "LEFT JOIN all_tab_comments c ON c.owner = t.owner AND c.table_name = t.table_name "
            f"WHERE t.owner = {quote_literal(database)} ORDER BY t.table_name"
        )
        return [
            TableInfo(
                name=row["name"] or "",
                schema=database,
                row_count=_as_int(row.get("row_count")),
                comment=row.get("comments"),
            )
            for row in rows
        ]

    async def list_columns(self, conn: Connection, database: str, table: str) -> list[ColumnInfo]:
        rows = await conn.fetch_dicts(
            "SELECT c.column_name AS name, "
            "CASE WHEN c.data_type IN ('VARCHAR2', 'NVARCHAR2', 'CHAR', 'NCHAR', 'RAW') "
            "THEN c.data_type || '(' || c.char_length || ')' "
            "WHEN c.data_type = 'NUMBER' AND c.data_precision IS NOT NULL "
            "THEN 'NUMBER(' || c.data_precision || ',' || NVL(c.data_scale, 0) || ')' "
            "ELSE c.data_type END AS data_type, "
            "c.nullable AS nullable, c.data_default AS default_value, "
            "CASE WHEN pk.column_name IS NULL THEN 0 ELSE 1 END AS is_pk, "
            "cc.comments AS comments "
            "FROM all_tab_columns c "
            "LEFT JOIN ("
            "SELECT cols.owner, cols.table_name, cols.column_name "
            "FROM all_cons_columns cols "
            "JOIN all_constraints cons "
            "ON cons.owner = cols.owner AND cons.constraint_name = cols.constraint_name "
            "WHERE cons.constraint_type = 'P'"
            ") pk ON pk.owner = c.owner AND pk.table_name = c.table_name AND pk.column_name = c.column_name "
            "LEFT JOIN all_col_comments cc "
            "ON cc.owner = c.owner AND cc.table_name = c.table_name AND cc.column_name = c.column_name "
            f"WHERE c.owner = {quote_literal(database)} AND c.table_name = {quote_literal(table)} "
            "ORDER BY c.column_id"
        )
        return [
            ColumnInfo(
                name=row["name"] or "",
                data_type=row.get("data_type") or "",
                is_nullable=row.get("nullable") == "Y",
                is_primary_key=row.get("is_pk") == "1",
                default_value=(row.get("default_value") or "").strip() or None,
                comment=row.get("comments"),
            )
            for row in rows
        ]

    async def list_indexes(self, conn: Connection, database: str, table: str) -> list[IndexInfo]:
        _, rows = await conn.fetch_rows(
            "SELECT i.index_name, ic.column_name, "
            "CASE WHEN i.uniqueness = 'UNIQUE' THEN 1 ELSE 0 END, i.index_type "
            "FROM all_indexes i "
            "JOIN all_ind_columns ic ON ic.index_owner = i.owner AND ic.index_name = i.index_name "
            f"WHERE i.table_owner = {quote_literal(database)} AND i.table_name = {quote_literal(table)} "
            "ORDER BY i.index_name, ic.column_position"
        )
        return group_index_rows(rows)

    async def list_views(self, conn: Connection, database: str) -> list[ViewInfo]:
        rows = await conn.fetch_dicts(
            "SELECT view_name AS name, text_vc AS definition FROM all_views "
            f"WHERE owner = {quote_literal(database)} ORDER BY view_name"
        )
        return [
            ViewInfo(name=row["name"] or "", schema=database, definition=row.get("definition"))
            for row in rows
        ]

    async def _objects(self, conn: Connection, database: str, kind: str) -> list[FunctionInfo]:
        _, rows = await conn.fetch_rows(
            "SELECT object_name FROM all_objects "
            f"WHERE owner = {quote_literal(database)} AND object_type = '{kind}' ORDER BY object_name"
        )
        return [FunctionInfo(name=row[0]) for row in rows if row[0]]

    async def list_functions(self, conn: Connection, database: str) -> list[FunctionInfo]:
        return await self._objects(conn, database, "FUNCTION")

    async def list_procedures(self, conn: Connection, database: str) -> list[FunctionInfo]:
        return await self._objects(conn, database, "PROCEDURE")

    async def list_triggers(self, conn: Connection, database: str) -> list[TriggerInfo]:
        rows = await conn.fetch_dicts(
            "SELECT trigger_name AS name, table_name, triggering_event AS event, "
            "trigger_type AS timing FROM all_triggers "
            f"WHERE owner = {quote_literal(database)} ORDER BY trigger_name"
        )
        return [
            TriggerInfo(
                name=row["name"] or "",
                table_name=row.get("table_name"),
                event=row.get("event"),
                timing=row.get("timing"),
            )
            for row in rows
        ]

    async def list_sequences(self, conn: Connection, database: str) -> list[SequenceInfo]:
        rows = await conn.fetch_dicts(
            "SELECT sequence_name AS name, min_value, max_value, increment_by "
            f"FROM all_sequences WHERE sequence_owner = {quote_literal(database)} "
            "ORDER BY sequence_name"
        )
        return [
            SequenceInfo(
                name=row["name"] or "",
                start_value=_as_int(row.get("min_value")),
                increment=_as_int(row.get("increment_by")),
                min_value=_as_int(row.get("min_value")),
                max_value=_as_int(row.get("max_value")),
            )
            for row in rows
        ]

    async def list_table_checks(self, conn: Connection, database: str, table: str) -> list[CheckInfo]:
        rows = await conn.fetch_dicts(
            "SELECT constraint_name AS name, search_condition_vc AS definition "
            "FROM all_constraints "
            f"WHERE owner = {quote_literal(database)} AND table_name = {quote_literal(table)} "
            "AND constraint_type = 'C' ORDER BY constraint_name"
        )
        return [
            CheckInfo(name=row["name"] or "", table_name=table, definition=row.get("definition"))
            for row in rows
        ]

    # --- DDL -------------------------------------------------------------------

    def build_create_database_sql(self, request: DatabaseOperationRequest) -> str:
        user = self.quote_identifier(request.database_name)
        password = request.field_values.get("password", "").strip() or request.database_name
        return (
            f"CREATE USER {user} IDENTIFIED BY {self.quote_identifier(password)};\n"
            f"GRANT CONNECT, RESOURCE TO {user};"
        )

    def build_modify_database_sql(self, request: DatabaseOperationRequest) -> str:
        user = self.quote_identifier(request.database_name)
        tablespace = request.field_values.get("default_tablespace", "").strip()
        if not tablespace:
            return f"-- No modifications for schema {user}"
        return f"ALTER USER {user} DEFAULT TABLESPACE {tablespace};"

    def build_drop_database_sql(self, name: str) -> str:
        return f"DROP USER {self.quote_identifier(name)} CASCADE;"

    def drop_database(self, name: str) -> str:
        return self.build_drop_database_sql(name)

    def drop_table(self, database: str, table: str) -> str:
        return f"DROP TABLE {self.qualified_table(database, table)};"

    def rename_table(self, database: str, old_name: str, new_name: str) -> str:
        return (
            f"ALTER TABLE {self.qualified_table(database, old_name)} "
            f"RENAME TO {self.quote_identifier(new_name)};"
        )

    def drop_view(self, database: str, view: str) -> str:
        return f"DROP VIEW {self.qualified_table(database, view)};"

    def column_constraints(self, col: ColumnDefinition) -> list[str]:
        # Identity and DEFAULT precede inline constraints in Oracle column syntax.
        parts: list[str] = []
        if col.is_auto_increment:
            parts.append(self.auto_increment_clause())
        elif col.default_value:
            parts.append(f"DEFAULT {col.default_value}")
        if not col.is_nullable:
            parts.append("NOT NULL")
        return parts

    def comment_statements(self, design: TableDesign) -> list[str]:
        table = self.quote_identifier(design.table_name)
        statements = []
        if design.options.comment:
            statements.append(f"COMMENT ON TABLE {table} IS {quote_literal(design.options.comment)};")
        for col in design.columns:
            if col.comment:
                statements.append(
                    f"COMMENT ON COLUMN {table}.{self.quote_identifier(col.name)} "
                    f"IS {quote_literal(col.comment)};"
                )
        return statements

    def add_column_sql(
        self, table: str, col: ColumnDefinition, after: str | None, first: bool
    ) -> str:
        return f"ALTER TABLE {table} ADD {self.build_column_def(col)};"

    def modify_column_sql(
        self, table: str, old: ColumnDefinition, new: ColumnDefinition
    ) -> list[str]:
        column = self.quote_identifier(new.name)
        prefix = f"ALTER TABLE {table} MODIFY {column}"
        statements: list[str] = []
        collation_changed = (old.collation or "") != (new.collation or "")
        if _type_changed(old, new) or collation_changed:
            collate = ""
            if collation_changed:
                collate = f" COLLATE {new.collation or 'USING_NLS_COMP'}"
            statements.append(f"{prefix} {self.type_string(new)}{collate};")
        if old.is_nullable != new.is_nullable:
            statements.append(f"{prefix} {'NULL' if new.is_nullable else 'NOT NULL'};")
        if old.is_auto_increment != new.is_auto_increment:
            if new.is_auto_increment:
                # Only columns created as identity can become one again.
                statements.append(
                    f"-- {self.database_type.value}: cannot add identity to existing column {new.name}"
                )
            else:
                statements.append(f"{prefix} DROP IDENTITY;")
        if (old.default_value or "") != (new.default_value or ""):
            statements.append(f"{prefix} DEFAULT {new.default_value or 'NULL'};")
        if (old.comment or "") != (new.comment or ""):
            statements.append(
                f"COMMENT ON COLUMN {table}.{column} IS {quote_literal(new.comment or '')};"
            )
        return statements

    def option_change_statements(
        self, table: str, old: TableOptions, new: TableOptions
    ) -> list[str]:
        if (old.comment or "") == (new.comment or ""):
            return []
        return [f"COMMENT ON TABLE {table} IS {quote_literal(new.comment or '')};"]

    # --- table data ------------------------------------------------------------

    def paginate(self, sql: str, has_order: bool, limit: int, offset: int) -> str:
        return f"{sql} OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"

    def single_row_statement(
        self,
        kind: RowChangeKind,
        table: str,
        set_clause: str,
        where_clause: str,
        has_unique_key: bool,
    ) -> str:
        where = f" WHERE {where_clause} AND ROWNUM <= 1" if where_clause else " WHERE ROWNUM <= 1"
        if kind is RowChangeKind.UPDATED:
            return f"UPDATE {table} SET {set_clause}{where}"
        return f"DELETE FROM {table}{where}"

    # --- dictionaries ----------------------------------------------------------

    def get_data_types(self) -> list[DataTypeInfo]:
        numeric, string, when = DataTypeCategory.NUMERIC, DataTypeCategory.STRING, DataTypeCategory.DATETIME
        return [
            DataTypeInfo("NUMBER", "Exact numeric", numeric),
            DataTypeInfo("INTEGER", "NUMBER(38)", numeric),
            DataTypeInfo("BINARY_FLOAT", "32-bit float", numeric),
            DataTypeInfo("BINARY_DOUBLE", "64-bit float", numeric),
            DataTypeInfo("CHAR", "Fixed-length string", string),
            DataTypeInfo("VARCHAR2", "Variable-length string", string),
            DataTypeInfo("NVARCHAR2", "Variable-length Unicode string", string),
            DataTypeInfo("CLOB", "Character large object", string),
            DataTypeInfo("NCLOB", "Unicode large object", string),
            DataTypeInfo("DATE", "Date and time to the second", when),
            DataTypeInfo("TIMESTAMP", "Date and time with fractions", when),
            DataTypeInfo("TIMESTAMP WITH TIME ZONE", "Timestamp with zone", when),
            DataTypeInfo("INTERVAL DAY TO SECOND", "Time span", when),
            DataTypeInfo("BOOLEAN", "True or false (23ai)", DataTypeCategory.BOOLEAN),
            DataTypeInfo("RAW", "Raw binary", DataTypeCategory.BINARY),
            DataTypeInfo("BLOB", "Binary large object", DataTypeCategory.BINARY),
            DataTypeInfo("JSON", "JSON document", DataTypeCategory.STRUCTURED),
        ]
