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
    IndexDefinition,
    IndexInfo,
    TableDesign,
    TableInfo,
    TableOptions,
    TriggerInfo,
    ViewInfo,
)
from ..utils import escape_literal, quote_literal
from .base import DatabasePlugin, _as_int, group_index_rows


_CHARSETS: list[tuple[str, str, str, tuple[str, ...]]] = [
    ("utf8mb4", "UTF-8 Unicode", "utf8mb4_0900_ai_ci",
     ("utf8mb4_0900_ai_ci", "utf8mb4_general_ci", "utf8mb4_unicode_ci", "utf8mb4_bin")),
    ("utf8", "UTF-8 Unicode (3 byte)", "utf8_general_ci",
     ("utf8_general_ci", "utf8_unicode_ci", "utf8_bin")),
    ("latin1", "cp1252 West European", "latin1_swedish_ci",
     ("latin1_swedish_ci", "latin1_general_ci", "latin1_bin")),
    ("ascii", "US ASCII", "ascii_general_ci", ("ascii_general_ci", "ascii_bin")),
    ("gbk", "GBK Simplified Chinese", "gbk_chinese_ci", ("gbk_chinese_ci", "gbk_bin")),
    ("big5", "Big5 Traditional Chinese", "big5_chinese_ci", ("big5_chinese_ci", "big5_bin")),
    ("binary", "Binary pseudo charset", "binary", ("binary",)),
]


class MySqlPlugin(DatabasePlugin):
    database_type = DatabaseType.MYSQL
    quote_open = "`"
    quote_close = "`"
    dialect_name = "mysql"
    # MODIFY COLUMN restates the whole definition.
    unsupported_column_changes: tuple[str, ...] = ()

    completion_keywords = (
        ("AUTO_INCREMENT", "Auto-increment column"),
        ("ENGINE", "Storage engine"),
        ("CHARSET", "Character set"),
        ("COLLATE", "Collation"),
        ("UNSIGNED", "Unsigned numeric type"),
        ("ZEROFILL", "Pad with zeros"),
        ("SHOW", "Show server information"),
        ("SHOW TABLES", "List tables"),
        ("SHOW DATABASES", "List databases"),
        ("SHOW COLUMNS", "List columns"),
        ("SHOW CREATE TABLE", "Show table DDL"),
        ("DESCRIBE", "Describe table"),
        ("USE", "Switch database"),
        ("REPLACE INTO", "Insert or replace row"),
        ("ON DUPLICATE KEY UPDATE", "Upsert clause"),
        ("INSERT IGNORE", "Insert skipping duplicates"),
        ("LOCK TABLES", "Lock tables"),
        ("UNLOCK TABLES", "Release table locks"),
    )
    completion_functions = (
        ("CONCAT_WS(sep, str1, ...)", "Concatenate with separator"),
        ("CHAR_LENGTH(str)", "Length in characters"),
        ("LPAD(str, len, pad)", "Left-pad string"),
        ("RPAD(str, len, pad)", "Right-pad string"),
        ("LEFT(str, len)", "Leftmost characters"),
        ("RIGHT(str, len)", "Rightmost characters"),
        ("LOCATE(substr, str)", "Position of substring"),
        ("GROUP_CONCAT(expr)", "Concatenate group values"),
        ("IFNULL(expr, alt)", "Replace NULL"),
        ("IF(cond, a, b)", "Conditional value"),
        ("NOW()", "Current date and time"),
        ("CURDATE()", "Current date"),
        ("DATE_FORMAT(date, fmt)", "Format a date"),
        ("DATE_ADD(date, INTERVAL n unit)", "Add interval"),
        ("DATE_SUB(date, INTERVAL n unit)", "Subtract interval"),
        ("DATEDIFF(a, b)", "Days between dates"),
        ("UNIX_TIMESTAMP()", "Seconds since epoch"),
        ("FROM_UNIXTIME(ts)", "Epoch seconds to datetime"),
        ("JSON_EXTRACT(doc, path)", "Extract JSON value"),
        ("JSON_OBJECT(k, v, ...)", "Build JSON object"),
        ("JSON_ARRAY(v, ...)", "Build JSON array"),
        ("LAST_INSERT_ID()", "Last auto-increment value"),
        ("UUID()", "Generate UUID"),
    )
    completion_operators = (
        ("REGEXP", "Regular expression match"),
        ("RLIKE", "Regular expression match"),
        ("SOUNDS LIKE", "Soundex comparison"),
        ("<=>", "NULL-safe equality"),
        ("DIV", "Integer division"),
        ("XOR", "Logical exclusive OR"),
        (":=", "Assignment"),
    )
    completion_data_types = (
        ("TINYINT", "1-byte integer"),
        ("SMALLINT", "2-byte integer"),
        ("MEDIUMINT", "3-byte integer"),
        ("INT", "4-byte integer"),
        ("BIGINT", "8-byte integer"),
        ("DECIMAL", "Exact decimal"),
        ("FLOAT", "Single precision"),
        ("DOUBLE", "Double precision"),
        ("CHAR", "Fixed-length string"),
        ("VARCHAR", "Variable-length string"),
        ("TEXT", "Long text"),
        ("LONGTEXT", "Very long text"),
        ("BLOB", "Binary data"),
        ("DATE", "Date"),
        ("DATETIME", "Date and time"),
        ("TIMESTAMP", "Timestamp"),
        ("ENUM", "Enumeration"),
        ("JSON", "JSON document"),
    )
    completion_snippets = (
        ("crt", "CREATE TABLE $1 (\n  id INT AUTO_INCREMENT PRIMARY KEY,\n  $2\n) ENGINE=InnoDB;", "Create table"),
        ("idx", "CREATE INDEX $1 ON $2 ($3);", "Create index"),
        ("alt", "ALTER TABLE $1 ADD COLUMN $2;", "Add column"),
        ("jn", "SELECT * FROM $1 a JOIN $2 b ON a.$3 = b.$4", "Inner join"),
        ("lj", "SELECT * FROM $1 a LEFT JOIN $2 b ON a.$3 = b.$4", "Left join"),
    )

    # --- catalog ---------------------------------------------------------------

    async def list_databases(self, conn: Connection) -> list[str]:
        _, rows = await conn.fetch_rows(
            "SELECT SCHEMA_NAME FROM INFORMATION_SCHEMA.SCHEMATA ORDER BY SCHEMA_NAME"
        )
        return [row[0] for row in rows if row[0]]

    async def list_databases_detailed(self, conn: Connection) -> list[DatabaseInfo]:
        rows = await conn.fetch_dicts(
            "SELECT s.SCHEMA_NAME AS name, s.DEFAULT_CHARACTER_SET_NAME AS charset, "
            "s.DEFAULT_COLLATION_NAME AS collation, "
            "COUNT(t.TABLE_NAME) AS table_count, "
            "SUM(t.DATA_LENGTH + t.INDEX_LENGTH) AS size_bytes "
            "FROM INFORMATION_SCHEMA.SCHEMATA s "
            "LEFT JOIN INFORMATION_SCHEMA.TABLES t ON t.TABLE_SCHEMA = s.SCHEMA_NAME "
            "GROUP BY s.SCHEMA_NAME, s.DEFAULT_CHARACTER_SET_NAME, s.DEFAULT_COLLATION_NAME "
            "ORDER BY s.SCHEMA_NAME"
        )
        return [
            DatabaseInfo(
                name=row["name"] or "",
                charset=row.get("charset"),
                collation=row.get("collation"),
                size=_format_bytes(row.get("size_bytes")),
                table_count=_as_int(row.get("table_count")),
            )
            for row in rows
        ]

    async def list_tables(self, conn: Connection, database: str) -> list[TableInfo]:
        rows = await conn.fetch_dicts(
            "SELECT TABLE_NAME AS name, ENGINE AS engine, TABLE_ROWS AS row_count, "
            "CREATE_TIME AS create_time, TABLE_COLLATION AS collation, TABLE_COMMENT AS comment "
            "FROM INFORMATION_SCHEMA.TABLES "
            f"WHERE TABLE_SCHEMA = {quote_literal(database)} AND TABLE_TYPE = 'BASE TABLE' "
            "ORDER BY TABLE_NAME"
        )
        return [
            TableInfo(
                name=row["name"] or "",
                engine=row.get("engine"),
                row_count=_as_int(row.get("row_count")),
                create_time=row.get("create_time"),
                collation=row.get("collation"),
                charset=(row.get("collation") or "").split("_", 1)[0] or None,
                comment=row.get("comment") or None,
            )
            for row in rows
        ]

    async def list_columns(self, conn: Connection, database: str, table: str) -> list[ColumnInfo]:
        rows = await conn.fetch_dicts(
            "SELECT COLUMN_NAME AS name, COLUMN_TYPE AS data_type, IS_NULLABLE AS nullable, "
            "COLUMN_KEY AS column_key, COLUMN_DEFAULT AS default_value, COLUMN_COMMENT AS comment "
            "FROM INFORMATION_SCHEMA.COLUMNS "
            f"WHERE TABLE_SCHEMA = {quote_literal(database)} AND TABLE_NAME = {quote_literal(table)} "
            "ORDER BY ORDINAL_POSITION"
        )
        return [
            ColumnInfo(
                name=row["name"] or "",
                data_type=row.get("data_type") or "",
                is_nullable=row.get("nullable") == "YES",
                is_primary_key=row.get("column_key") == "PRI",
                default_value=row.get("default_value"),
                comment=row.get("comment") or None,
            )
            for row in rows
        ]

    async def list_indexes(self, conn: Connection, database: str, table: str) -> list[IndexInfo]:
        _, rows = await conn.fetch_rows(
            "SELECT INDEX_NAME, COLUMN_NAME, CASE WHEN NON_UNIQUE = '0' THEN 1 ELSE 0 END, INDEX_TYPE "
            "FROM INFORMATION_SCHEMA.STATISTICS "
            f"WHERE TABLE_SCHEMA = {quote_literal(database)} AND TABLE_NAME = {quote_literal(table)} "
            "ORDER BY INDEX_NAME, SEQ_IN_INDEX"
        )
        return group_index_rows(rows)

    async def list_views(self, conn: Connection, database: str) -> list[ViewInfo]:
        rows = await conn.fetch_dicts(
            "SELECT TABLE_NAME AS name, VIEW_DEFINITION AS definition "
            "FROM INFORMATION_SCHEMA.VIEWS "
            f"WHERE TABLE_SCHEMA = {quote_literal(database)} ORDER BY TABLE_NAME"
        )
        return [ViewInfo(name=row["name"] or "", definition=row.get("definition")) for row in rows]

    async def _routines(self, conn: Connection, database: str, kind: str) -> list[FunctionInfo]:
        rows = await conn.fetch_dicts(
            "SELECT ROUTINE_NAME AS name, DTD_IDENTIFIER AS return_type, "
            "ROUTINE_DEFINITION AS definition, ROUTINE_COMMENT AS comment "
            "FROM INFORMATION_SCHEMA.ROUTINES "
            f"WHERE ROUTINE_SCHEMA = {quote_literal(database)} AND ROUTINE_TYPE = '{kind}' "
            "ORDER BY ROUTINE_NAME"
        )
        return [
            FunctionInfo(
                name=row["name"] or "",
                return_type=row.get("return_type"),
                definition=row.get("definition"),
                comment=row.get("comment") or None,
            )
            for row in rows
        ]

    async def list_functions(self, conn: Connection, database: str) -> list[FunctionInfo]:
        return await self._routines(conn, database, "FUNCTION")

    async def list_procedures(self, conn: Connection, database: str) -> list[FunctionInfo]:
        return await self._routines(conn, database, "PROCEDURE")

    async def list_triggers(self, conn: Connection, database: str) -> list[TriggerInfo]:
        rows = await conn.fetch_dicts(
            "SELECT TRIGGER_NAME AS name, EVENT_OBJECT_TABLE AS table_name, "
            "EVENT_MANIPULATION AS event, ACTION_TIMING AS timing, ACTION_STATEMENT AS definition "
            "FROM INFORMATION_SCHEMA.TRIGGERS "
            f"WHERE TRIGGER_SCHEMA = {quote_literal(database)} ORDER BY TRIGGER_NAME"
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

    async def list_table_checks(self, conn: Connection, database: str, table: str) -> list[CheckInfo]:
        rows = await conn.fetch_dicts(
            "SELECT cc.CONSTRAINT_NAME AS name, cc.CHECK_CLAUSE AS definition "
            "FROM INFORMATION_SCHEMA.CHECK_CONSTRAINTS cc "
            "JOIN INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc "
            "ON tc.CONSTRAINT_SCHEMA = cc.CONSTRAINT_SCHEMA AND tc.CONSTRAINT_NAME = cc.CONSTRAINT_NAME "
            f"WHERE tc.TABLE_SCHEMA = {quote_literal(database)} AND tc.TABLE_NAME = {quote_literal(table)} "
            "AND tc.CONSTRAINT_TYPE = 'CHECK' ORDER BY cc.CONSTRAINT_NAME"
        )
        return [
            CheckInfo(name=row["name"] or "", table_name=table, definition=row.get("definition"))
            for row in rows
        ]

    # --- DDL -------------------------------------------------------------------

    def _charset_clause(self, request: DatabaseOperationRequest) -> str:
        clause = ""
        charset = request.field_values.get("charset", "").strip()
        collation = request.field_values.get("collation", "").strip()
        if charset:
            clause += f" CHARACTER SET {charset}"
        if collation:
            clause += f" COLLATE {collation}"
        return clause

    def build_create_database_sql(self, request: DatabaseOperationRequest) -> str:
        name = self.quote_identifier(request.database_name)
        return f"CREATE DATABASE {name}{self._charset_clause(request)};"

    def build_modify_database_sql(self, request: DatabaseOperationRequest) -> str:
        clause = self._charset_clause(request)
        name = self.quote_identifier(request.database_name)
        if not clause:
            return f"-- No modifications for database {name}"
        return f"ALTER DATABASE {name}{clause};"

    def rename_table(self, database: str, old_name: str, new_name: str) -> str:
        return (
            f"RENAME TABLE {self.qualified_table(database, old_name)} "
            f"TO {self.qualified_table(database, new_name)};"
        )

    def type_string(self, col: ColumnDefinition) -> str:
        base = super().type_string(col)
        if col.is_unsigned:
            base += " UNSIGNED"
        return base

    def auto_increment_clause(self) -> str:
        return "AUTO_INCREMENT"

    def column_constraints(self, col: ColumnDefinition) -> list[str]:
        parts: list[str] = []
        if col.charset:
            parts.append(f"CHARACTER SET {col.charset}")
        if col.collation:
            parts.append(f"COLLATE {col.collation}")
        parts.extend(super().column_constraints(col))
        if col.comment:
            parts.append(f"COMMENT '{escape_literal(col.comment)}'")
        return parts

    def inlines_indexes(self) -> bool:
        return True

    def inline_index_clauses(self, design: TableDesign) -> list[str]:
        clauses = []
        for index in design.indexes:
            if index.is_primary:
                continue
            kind = "UNIQUE INDEX" if index.is_unique else "INDEX"
            clause = f"{kind} {self.quote_identifier(index.name)} ({self._column_list(index.columns)})"
            if index.index_type:
                clause += f" USING {index.index_type}"
            clauses.append(clause)
        return clauses

    def table_options_clause(self, options: TableOptions) -> str:
        clause = ""
        if options.engine:
            clause += f" ENGINE={options.engine}"
        if options.charset:
            clause += f" DEFAULT CHARSET={options.charset}"
        if options.collation:
            clause += f" COLLATE={options.collation}"
        if options.auto_increment:
            clause += f" AUTO_INCREMENT={options.auto_increment}"
        if options.comment:
            clause += f" COMMENT='{escape_literal(options.comment)}'"
        return clause

    def add_column_sql(
        self, table: str, col: ColumnDefinition, after: str | None, first: bool
    ) -> str:
        position = " FIRST" if first else f" AFTER {self.quote_identifier(after)}" if after else ""
        return f"ALTER TABLE {table} ADD COLUMN {self.build_column_def(col)}{position};"

    def modify_column_sql(
        self, table: str, old: ColumnDefinition, new: ColumnDefinition
    ) -> list[str]:
        return [f"ALTER TABLE {table} MODIFY COLUMN {self.build_column_def(new)};"]

    def drop_index_sql(self, table: str, index: IndexDefinition) -> str:
        return f"ALTER TABLE {table} DROP INDEX {self.quote_identifier(index.name)};"

    def create_index_sql(self, table: str, index: IndexDefinition) -> str:
        kind = "UNIQUE INDEX" if index.is_unique else "INDEX"
        return (
            f"ALTER TABLE {table} ADD {kind} {self.quote_identifier(index.name)} "
            f"({self._column_list(index.columns)});"
        )

    def option_change_statements(
        self, table: str, old: TableOptions, new: TableOptions
    ) -> list[str]:
        changed = TableOptions(
            engine=new.engine if new.engine and new.engine != old.engine else None,
            charset=new.charset if new.charset and new.charset != old.charset else None,
            collation=new.collation if new.collation and new.collation != old.collation else None,
            comment=new.comment if (new.comment or "") != (old.comment or "") else "",
            auto_increment=(
                new.auto_increment
                if new.auto_increment and new.auto_increment != old.auto_increment
                else None
            ),
        )
        clause = self.table_options_clause(changed)
        if (new.comment or "") != (old.comment or "") and not new.comment:
            clause += " COMMENT=''"
        if not clause:
            return []
        return [f"ALTER TABLE {table}{clause};"]

    # --- dictionaries ----------------------------------------------------------

    def get_data_types(self) -> list[DataTypeInfo]:
        numeric, string, when = DataTypeCategory.NUMERIC, DataTypeCategory.STRING, DataTypeCategory.DATETIME
        return [
            DataTypeInfo("TINYINT", "1-byte integer", numeric),
            DataTypeInfo("SMALLINT", "2-byte integer", numeric),
            DataTypeInfo("MEDIUMINT", "3-byte integer", numeric),
            DataTypeInfo("INT", "4-byte integer", numeric),
            DataTypeInfo("BIGINT", "8-byte integer", numeric),
            DataTypeInfo("DECIMAL", "Exact fixed-point", numeric),
            DataTypeInfo("FLOAT", "Single precision float", numeric),
            DataTypeInfo("DOUBLE", "Double precision float", numeric),
            DataTypeInfo("BIT", "Bit field", numeric),
            DataTypeInfo("CHAR", "Fixed-length string", string),
            DataTypeInfo("VARCHAR", "Variable-length string", string),
            DataTypeInfo("TINYTEXT", "Text up to 255 bytes", string),
            DataTypeInfo("TEXT", "Text up to 64 KB", string),
            DataTypeInfo("MEDIUMTEXT", "Text up to 16 MB", string),
            DataTypeInfo("LONGTEXT", "Text up to 4 GB", string),
            DataTypeInfo("ENUM", "One value from a list", string),
            DataTypeInfo("SET", "Several values from a list", string),
            DataTypeInfo("DATE", "Date", when),
            DataTypeInfo("TIME", "Time of day", when),
            DataTypeInfo("DATETIME", "Date and time", when),
            DataTypeInfo("TIMESTAMP", "UTC timestamp", when),
            DataTypeInfo("YEAR", "Year", when),
            DataTypeInfo("BOOLEAN", "Alias of TINYINT(1)", DataTypeCategory.BOOLEAN),
            DataTypeInfo("BINARY", "Fixed-length binary", DataTypeCategory.BINARY),
            DataTypeInfo("VARBINARY", "Variable-length binary", DataTypeCategory.BINARY),
            DataTypeInfo("BLOB", "Binary up to 64 KB", DataTypeCategory.BINARY),
            DataTypeInfo("LONGBLOB", "Binary up to 4 GB", DataTypeCategory.BINARY),
            DataTypeInfo("JSON", "JSON document", DataTypeCategory.STRUCTURED),
        ]

    def get_charsets(self) -> list[CharsetInfo]:
        return [CharsetInfo(name, description, default) for name, description, default, _ in _CHARSETS]

    def get_collations(self, charset: str | None = None) -> list[CollationInfo]:
        collations = []
        for name, _, default, names in _CHARSETS:
            if charset and charset != name:
                continue
            collations.extend(CollationInfo(c, name, c == default) for c in names)
        return collations


def _format_bytes(raw: str | None) -> str | None:
    size = _as_int(raw)
    if size is None:
        return None
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size} {unit}"
        size //= 1024
    return f"{size} TB"
