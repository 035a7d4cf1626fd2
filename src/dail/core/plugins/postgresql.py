from __future__ import annotations

from ..connections.base import Connection
from ..types import (
    CharsetInfo,
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
    IndexInfo,
    RowChangeKind,
    SequenceInfo,
    TableDesign,
    TableInfo,
    TableOptions,
    TriggerInfo,
    ViewInfo,
)
from ..utils import escape_literal, quote_literal
from .base import DatabasePlugin, _as_int, _truthy, group_index_rows


DEFAULT_SCHEMA = "public"

_ENCODINGS = (
    ("UTF8", "Unicode, 8-bit"),
    ("SQL_ASCII", "Unspecified (no conversion)"),
    ("LATIN1", "ISO 8859-1, Western European"),
    ("LATIN2", "ISO 8859-2, Central European"),
    ("WIN1252", "Windows CP1252"),
    ("EUC_JP", "Extended UNIX Code-JP"),
    ("EUC_KR", "Extended UNIX Code-KR"),
    ("EUC_CN", "Extended UNIX Code-CN"),
    ("KOI8R", "KOI8-R Cyrillic"),
)

_COLLATIONS = ("C", "POSIX", "C.UTF-8", "en_US.UTF-8", "de_DE.UTF-8", "zh_CN.UTF-8")


class PostgresPlugin(DatabasePlugin):
    database_type = DatabaseType.POSTGRESQL
    dialect_name = "postgres"

    completion_keywords = (
        ("RETURNING", "Return rows affected by DML"),
        ("SERIAL", "Auto-increment integer"),
        ("BIGSERIAL", "Auto-increment bigint"),
        ("ILIKE", "Case-insensitive LIKE"),
        ("SIMILAR TO", "SQL regular expression match"),
        ("ON CONFLICT", "Upsert clause"),
        ("DO NOTHING", "Ignore conflicting row"),
        ("DO UPDATE SET", "Update conflicting row"),
        ("LATERAL", "Lateral subquery"),
        ("MATERIALIZED VIEW", "Materialized view"),
        ("REFRESH MATERIALIZED VIEW", "Refresh a materialized view"),
        ("VACUUM", "Reclaim storage"),
        ("ANALYZE", "Collect statistics"),
        ("SCHEMA", "Schema keyword"),
        ("SEARCH_PATH", "Schema search path"),
        ("EXPLAIN ANALYZE", "Run and show plan"),
    )
    completion_functions = (
        ("STRING_AGG(expr, sep)", "Concatenate group values"),
        ("ARRAY_AGG(expr)", "Aggregate into array"),
        ("DATE_TRUNC(field, source)", "Truncate timestamp"),
        ("DATE_PART(field, source)", "Extract date part"),
        ("TO_CHAR(value, fmt)", "Format to text"),
        ("TO_DATE(text, fmt)", "Parse date"),
        ("TO_TIMESTAMP(text, fmt)", "Parse timestamp"),
        ("NOW()", "Current timestamp"),
        ("AGE(ts1, ts2)", "Interval between timestamps"),
        ("GENERATE_SERIES(start, stop)", "Set of values"),
        ("UNNEST(array)", "Expand array to rows"),
        ("ARRAY_LENGTH(array, dim)", "Array length"),
        ("JSONB_BUILD_OBJECT(k, v, ...)", "Build JSONB object"),
        ("JSONB_AGG(expr)", "Aggregate into JSONB array"),
        ("JSONB_EXTRACT_PATH(doc, path)", "Extract JSONB value"),
        ("JSONB_SET(doc, path, value)", "Set JSONB value"),
        ("REGEXP_REPLACE(str, pattern, repl)", "Regex replace"),
        ("SPLIT_PART(str, sep, n)", "Nth field"),
        ("GEN_RANDOM_UUID()", "Random UUID"),
        ("CURRVAL(seq)", "Current sequence value"),
        ("NEXTVAL(seq)", "Next sequence value"),
    )
    completion_operators = (
        ("~", "Regex match"),
        ("~*", "Case-insensitive regex match"),
        ("!~", "Regex does not match"),
        ("->", "JSON field as JSON"),
        ("->>", "JSON field as text"),
        ("#>", "JSON path as JSON"),
        ("@>", "Contains"),
        ("<@", "Contained by"),
        ("?", "Key exists"),
        ("&&", "Overlaps"),
        ("||", "Concatenate"),
        ("::", "Type cast"),
    )
    completion_data_types = (
        ("SMALLINT", "2-byte integer"),
        ("INTEGER", "4-byte integer"),
        ("BIGINT", "8-byte integer"),
        ("SERIAL", "Auto-increment integer"),
        ("NUMERIC", "Exact numeric"),
        ("REAL", "Single precision"),
        ("DOUBLE PRECISION", "Double precision"),
        ("VARCHAR", "Variable-length string"),
        ("TEXT", "Unlimited text"),
        ("BOOLEAN", "True or false"),
        ("DATE", "Date"),
        ("TIMESTAMP", "Timestamp"),
        ("TIMESTAMPTZ", "Timestamp with time zone"),
        ("INTERVAL", "Time span"),
        ("UUID", "UUID"),
        ("JSON", "JSON text"),
        ("JSONB", "Binary JSON"),
        ("BYTEA", "Binary data"),
        ("TSVECTOR", "Text search document"),
        ("TSQUERY", "Text search query"),
    )
    completion_snippets = (
        ("crt", "CREATE TABLE $1 (\n  id SERIAL PRIMARY KEY,\n  $2\n);", "Create table"),
        ("idx", "CREATE INDEX $1 ON $2 ($3);", "Create index"),
        ("cidx", "CREATE INDEX CONCURRENTLY $1 ON $2 ($3);", "Create index concurrently"),
        ("cte", "WITH $1 AS (\n  $2\n)\nSELECT * FROM $1;", "Common table expression"),
        ("rcte", "WITH RECURSIVE $1 AS (\n  $2\n  UNION ALL\n  $3\n)\nSELECT * FROM $1;", "Recursive CTE"),
        ("wf", "$1() OVER (PARTITION BY $2 ORDER BY $3)", "Window function"),
    )

    def supports_schema(self) -> bool:
        return True

    def supports_sequences(self) -> bool:
        return True

    def qualified_table(self, database: str, table: str, schema: str | None = None) -> str:
        return f"{self.quote_identifier(schema or DEFAULT_SCHEMA)}.{self.quote_identifier(table)}"

    # --- catalog ---------------------------------------------------------------

    async def list_databases(self, conn: Connection) -> list[str]:
        _, rows = await conn.fetch_rows(
            "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"
        )
        return [row[0] for row in rows if row[0]]

    async def list_databases_detailed(self, conn: Connection) -> list[DatabaseInfo]:
        rows = await conn.fetch_dicts(
            "SELECT d.datname AS name, pg_encoding_to_char(d.encoding) AS charset, "
            "d.datcollate AS collation, pg_size_pretty(pg_database_size(d.datname)) AS size, "
            "shobj_description(d.oid, 'pg_database') AS comment "
            "FROM pg_database d WHERE d.datistemplate = false ORDER BY d.datname"
        )
        return [
            DatabaseInfo(
                name=row["name"] or "",
                charset=row.get("charset"),
                collation=row.get("collation"),
                size=row.get("size"),
                comment=row.get("comment"),
            )
            for row in rows
        ]

    async def list_schemas(self, conn: Connection, database: str) -> list[str]:
        _, rows = await conn.fetch_rows(
            "SELECT schema_name FROM information_schema.schemata "
            "WHERE schema_name NOT IN ('pg_catalog', 'information_schema', 'pg_toast') "
            "AND schema_name NOT LIKE 'pg_temp_%' AND schema_name NOT LIKE 'pg_toast_temp_%' "
            "ORDER BY schema_name"
        )
        return [row[0] for row in rows if row[0]]

    async def list_tables(self, conn: Connection, database: str) -> list[TableInfo]:
        rows = await conn.fetch_dicts(
            "SELECT t.schemaname AS schema, t.tablename AS name, "
            "obj_description(c.oid, 'pg_class') AS comment, c.reltuples::bigint AS row_count "
            "FROM pg_tables t "
            "JOIN pg_namespace n ON n.nspname = t.schemaname "
            "JOIN pg_class c ON c.relname = t.tablename AND c.relnamespace = n.oid "
            "WHERE t.schemaname NOT IN ('pg_catalog', 'information_schema') "
            "ORDER BY t.schemaname, t.tablename"
        )
        return [
            TableInfo(
                name=row["name"] or "",
                schema=row.get("schema"),
                comment=row.get("comment"),
                row_count=_as_int(row.get("row_count")),
            )
            for row in rows
        ]

    async def list_columns(self, conn: Connection, database: str, table: str) -> list[ColumnInfo]:
        schema, name = _split_table(table)
        rows = await conn.fetch_dicts(
            "SELECT c.column_name AS name, "
            "CASE WHEN c.character_maximum_length IS NOT NULL "
            "THEN c.data_type || '(' || c.character_maximum_length || ')' ELSE c.data_type END AS data_type, "
            "c.is_nullable AS nullable, c.column_default AS default_value, "
            "EXISTS (SELECT 1 FROM information_schema.table_constraints tc "
            "JOIN information_schema.key_column_usage kcu "
            "ON kcu.constraint_name = tc.constraint_name AND kcu.table_schema = tc.table_schema "
            "WHERE tc.constraint_type = 'PRIMARY KEY' AND tc.table_schema = c.table_schema "
            "AND tc.table_name = c.table_name AND kcu.column_name = c.column_name) AS is_pk, "
            "col_description(format('%I.%I', c.table_schema, c.table_name)::regclass, c.ordinal_position) AS comment "
            "FROM information_schema.columns c "
            f"WHERE c.table_schema = {quote_literal(schema)} AND c.table_name = {quote_literal(name)} "
            "ORDER BY c.ordinal_position"
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
        schema, name = _split_table(table)
        _, rows = await conn.fetch_rows(
            "SELECT i.relname, a.attname, ix.indisunique, am.amname "
            "FROM pg_index ix "
            "JOIN pg_class t ON t.oid = ix.indrelid "
            "JOIN pg_class i ON i.oid = ix.indexrelid "
            "JOIN pg_namespace n ON n.oid = t.relnamespace "
            "JOIN pg_am am ON am.oid = i.relam "
            "JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord) ON true "
            "JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum "
            f"WHERE n.nspname = {quote_literal(schema)} AND t.relname = {quote_literal(name)} "
            "ORDER BY i.relname, k.ord"
        )
        return group_index_rows(rows)

    async def list_views(self, conn: Connection, database: str) -> list[ViewInfo]:
        rows = await conn.fetch_dicts(
            "SELECT table_schema AS schema, table_name AS name, view_definition AS definition "
            "FROM information_schema.views "
            "WHERE table_schema NOT IN ('pg_catalog', 'information_schema') "
            "ORDER BY table_schema, table_name"
        )
        return [
            ViewInfo(name=row["name"] or "", schema=row.get("schema"), definition=row.get("definition"))
            for row in rows
        ]

    async def _routines(self, conn: Connection, kind: str) -> list[FunctionInfo]:
        rows = await conn.fetch_dicts(
            "SELECT routine_name AS name, data_type AS return_type, routine_definition AS definition "
            "FROM information_schema.routines "
            f"WHERE routine_schema NOT IN ('pg_catalog', 'information_schema') AND routine_type = '{kind}' "
            "ORDER BY routine_name"
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
        return await self._routines(conn, "FUNCTION")

    async def list_procedures(self, conn: Connection, database: str) -> list[FunctionInfo]:
        return await self._routines(conn, "PROCEDURE")

    async def list_triggers(self, conn: Connection, database: str) -> list[TriggerInfo]:
        rows = await conn.fetch_dicts(
            "SELECT trigger_name AS name, event_object_table AS table_name, "
            "event_manipulation AS event, action_timing AS timing, action_statement AS definition "
            "FROM information_schema.triggers "
            "WHERE trigger_schema NOT IN ('pg_catalog', 'information_schema') "
            "ORDER BY trigger_name"
        )
        return [
            TriggerInfo(
                name=row["name"] or "",
                table_name=row.get("table_name"),
                event=row.get("event"),
                timing=row.get("timing"),
                definition=row.get("definition"),
            )
            for row in rows
        ]

    async def list_sequences(self, conn: Connection, database: str) -> list[SequenceInfo]:
        rows = await conn.fetch_dicts(
            "SELECT sequence_name AS name, start_value, increment, minimum_value, maximum_value "
            "FROM information_schema.sequences "
            "WHERE sequence_schema NOT IN ('pg_catalog', 'information_schema') "
            "ORDER BY sequence_name"
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
        schema, name = _split_table(table)
        rows = await conn.fetch_dicts(
            "SELECT con.conname AS name, pg_get_constraintdef(con.oid) AS definition "
            "FROM pg_constraint con "
            "JOIN pg_class c ON c.oid = con.conrelid "
            "JOIN pg_namespace n ON n.oid = c.relnamespace "
            f"WHERE con.contype = 'c' AND n.nspname = {quote_literal(schema)} "
            f"AND c.relname = {quote_literal(name)} ORDER BY con.conname"
        )
        return [
            CheckInfo(name=row["name"] or "", table_name=name, definition=row.get("definition"))
            for row in rows
        ]

    # --- DDL -------------------------------------------------------------------

    def build_create_database_sql(self, request: DatabaseOperationRequest) -> str:
        encoding = request.field_values.get("encoding", "").strip() or "UTF8"
        sql = f"CREATE DATABASE {self.quote_identifier(request.database_name)} ENCODING '{escape_literal(encoding)}'"
        owner = request.field_values.get("owner", "").strip()
        if owner:
            sql += f" OWNER {self.quote_identifier(owner)}"
        return sql + ";"

    def build_modify_database_sql(self, request: DatabaseOperationRequest) -> str:
        raw = request.field_values.get("search_path", "")
        schemas = [part.strip() for part in raw.split(",") if part.strip()] or [DEFAULT_SCHEMA]
        search_path = ", ".join(self.quote_identifier(schema) for schema in schemas)
        return f"ALTER DATABASE {self.quote_identifier(request.database_name)} SET search_path = {search_path};"

    def build_comment_schema_sql(self, name: str, comment: str) -> str | None:
        self._require_schema_support()
        return f"COMMENT ON SCHEMA {self.quote_identifier(name)} IS {quote_literal(comment)};"

    def drop_table(self, database: str, table: str) -> str:
        return f"DROP TABLE IF EXISTS {self._table_ref(table)};"

    def truncate_table(self, database: str, table: str) -> str:
        return f"TRUNCATE TABLE {self._table_ref(table)};"

    def rename_table(self, database: str, old_name: str, new_name: str) -> str:
        _, new_table = _split_table(new_name)
        return f"ALTER TABLE {self._table_ref(old_name)} RENAME TO {self.quote_identifier(new_table)};"

    def drop_view(self, database: str, view: str) -> str:
        return f"DROP VIEW IF EXISTS {self._table_ref(view)};"

    def _table_ref(self, table: str) -> str:
        if "." in table:
            schema, name = _split_table(table)
            return f"{self.quote_identifier(schema)}.{self.quote_identifier(name)}"
        return self.quote_identifier(table)

    def column_constraints(self, col: ColumnDefinition) -> list[str]:
        parts = super().column_constraints(col)
        if col.collation:
            parts.insert(0, f"COLLATE {self.quote_identifier(col.collation)}")
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

    def modify_column_sql(
        self, table: str, old: ColumnDefinition, new: ColumnDefinition
    ) -> list[str]:
        statements = super().modify_column_sql(table, old, new)
        if (old.comment or "") != (new.comment or ""):
            comment = quote_literal(new.comment) if new.comment else "NULL"
            statements.append(
                f"COMMENT ON COLUMN {table}.{self.quote_identifier(new.name)} IS {comment};"
            )
        return statements

    def drop_primary_key_sql(self, table: str, table_name: str) -> str:
        return f"ALTER TABLE {table} DROP CONSTRAINT {self.quote_identifier(table_name + '_pkey')};"

    def option_change_statements(
        self, table: str, old: TableOptions, new: TableOptions
    ) -> list[str]:
        if (old.comment or "") == (new.comment or ""):
            return []
        comment = quote_literal(new.comment) if new.comment else "NULL"
        return [f"COMMENT ON TABLE {table} IS {comment};"]

    # --- table data ------------------------------------------------------------

    def single_row_statement(
        self,
        kind: RowChangeKind,
        table: str,
        set_clause: str,
        where_clause: str,
        has_unique_key: bool,
    ) -> str:
        inner = f" WHERE {where_clause}" if where_clause else ""
        target = f"ctid IN (SELECT ctid FROM {table}{inner} LIMIT 1)"
        if kind is RowChangeKind.UPDATED:
            return f"UPDATE {table} SET {set_clause} WHERE {target}"
        return f"DELETE FROM {table} WHERE {target}"

    # --- dictionaries ----------------------------------------------------------

    def get_data_types(self) -> list[DataTypeInfo]:
        numeric, string, when = DataTypeCategory.NUMERIC, DataTypeCategory.STRING, DataTypeCategory.DATETIME
        return [
            DataTypeInfo("SMALLINT", "2-byte integer", numeric),
            DataTypeInfo("INTEGER", "4-byte integer", numeric),
            DataTypeInfo("BIGINT", "8-byte integer", numeric),
            DataTypeInfo("SERIAL", "Auto-increment integer", numeric),
            DataTypeInfo("BIGSERIAL", "Auto-increment bigint", numeric),
            DataTypeInfo("NUMERIC", "Exact numeric", numeric),
            DataTypeInfo("REAL", "Single precision float", numeric),
            DataTypeInfo("DOUBLE PRECISION", "Double precision float", numeric),
            DataTypeInfo("MONEY", "Currency amount", numeric),
            DataTypeInfo("CHAR", "Fixed-length string", string),
            DataTypeInfo("VARCHAR", "Variable-length string", string),
            DataTypeInfo("TEXT", "Unlimited text", string),
            DataTypeInfo("UUID", "Universally unique identifier", string),
            DataTypeInfo("DATE", "Date", when),
            DataTypeInfo("TIME", "Time of day", when),
            DataTypeInfo("TIMESTAMP", "Date and time", when),
            DataTypeInfo("TIMESTAMPTZ", "Date and time with zone", when),
            DataTypeInfo("INTERVAL", "Time span", when),
            DataTypeInfo("BOOLEAN", "True or false", DataTypeCategory.BOOLEAN),
            DataTypeInfo("BYTEA", "Binary data", DataTypeCategory.BINARY),
            DataTypeInfo("JSON", "JSON text", DataTypeCategory.STRUCTURED),
            DataTypeInfo("JSONB", "Binary JSON", DataTypeCategory.STRUCTURED),
            DataTypeInfo("ARRAY", "Array of values", DataTypeCategory.STRUCTURED),
            DataTypeInfo("INET", "IP address", DataTypeCategory.OTHER),
            DataTypeInfo("TSVECTOR", "Text search document", DataTypeCategory.OTHER),
            DataTypeInfo("TSQUERY", "Text search query", DataTypeCategory.OTHER),
        ]

    def get_charsets(self) -> list[CharsetInfo]:
        return [CharsetInfo(name, description, "") for name, description in _ENCODINGS]

    def get_collations(self, charset: str | None = None) -> list[CollationInfo]:
        return [CollationInfo(name, charset or "UTF8", name == "C") for name in _COLLATIONS]


def _split_table(table: str) -> tuple[str, str]:
    """``schema.table`` or a bare table in the default schema."""
    if "." in table:
        schema, name = table.split(".", 1)
        return schema, name
    return DEFAULT_SCHEMA, table
