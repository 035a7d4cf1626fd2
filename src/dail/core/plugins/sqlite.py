from __future__ import annotations

from ..connections.base import Connection
from ..types import (
    ColumnDefinition,
    ColumnInfo,
    DatabaseOperationRequest,
    DatabaseType,
    DataTypeCategory,
    DataTypeInfo,
    IndexDefinition,
    IndexInfo,
    RowChangeKind,
    TableDesign,
    TableInfo,
    TriggerInfo,
    ViewInfo,
)
from .base import (
    NO_CHANGES_DETECTED,
    DatabasePlugin,
    _index_changed,
    _require,
    primary_key_columns,
)


MAIN_DATABASE = "main"


class SqlitePlugin(DatabasePlugin):
    """SQLite has one database per file; ALTER beyond ADD COLUMN rebuilds the table."""

    database_type = DatabaseType.SQLITE
    dialect_name = "sqlite"

    completion_keywords = (
        ("AUTOINCREMENT", "Monotonic rowid"),
        ("VACUUM", "Rebuild database file"),
        ("PRAGMA", "Query or change settings"),
        ("ATTACH DATABASE", "Attach another file"),
        ("DETACH DATABASE", "Detach a file"),
        ("WITHOUT ROWID", "Table without rowid"),
        ("INSERT OR REPLACE", "Insert or replace row"),
        ("INSERT OR IGNORE", "Insert skipping conflicts"),
        ("ON CONFLICT", "Conflict clause"),
        ("GLOB", "Unix glob match"),
        ("STRICT", "Strict typing table"),
    )
    completion_functions = (
        ("IFNULL(x, y)", "Replace NULL"),
        ("IIF(cond, a, b)", "Inline if"),
        ("TYPEOF(x)", "Storage class of value"),
        ("INSTR(str, substr)", "Position of substring"),
        ("SUBSTR(str, start, len)", "Extract substring"),
        ("GROUP_CONCAT(expr, sep)", "Concatenate group values"),
        ("DATE(timestring)", "Date part"),
        ("DATETIME(timestring)", "Date and time"),
        ("STRFTIME(fmt, timestring)", "Format date and time"),
        ("JULIANDAY(timestring)", "Julian day number"),
        ("JSON_EXTRACT(doc, path)", "Extract JSON value"),
        ("LAST_INSERT_ROWID()", "Last inserted rowid"),
        ("CHANGES()", "Rows changed by last statement"),
        ("RANDOM()", "Random integer"),
        ("HEX(x)", "Hexadecimal rendering"),
    )
    completion_operators = (
        ("||", "Concatenate"),
        ("->", "JSON field as JSON"),
        ("->>", "JSON field as SQL value"),
        ("GLOB", "Glob match"),
        ("REGEXP", "Regular expression match"),
    )
    completion_data_types = (
        ("INTEGER", "Signed integer"),
        ("REAL", "Floating point"),
        ("TEXT", "Text string"),
        ("BLOB", "Binary data"),
        ("NUMERIC", "Numeric affinity"),
    )
    completion_snippets = (
        ("crt", "CREATE TABLE $1 (\n  id INTEGER PRIMARY KEY AUTOINCREMENT,\n  $2\n);", "Create table"),
        ("idx", "CREATE INDEX $1 ON $2 ($3);", "Create index"),
        ("uidx", "CREATE UNIQUE INDEX $1 ON $2 ($3);", "Create unique index"),
        ("vac", "VACUUM;", "Vacuum database"),
        ("pragma", "PRAGMA table_info($1);", "Table info"),
    )

    def supports_functions(self) -> bool:
        return False

    def supports_procedures(self) -> bool:
        return False

    def qualified_table(self, database: str, table: str, schema: str | None = None) -> str:
        return self.quote_identifier(table)

    # --- catalog ---------------------------------------------------------------

    async def list_databases(self, conn: Connection) -> list[str]:
        return [MAIN_DATABASE]

    async def list_tables(self, conn: Connection, database: str) -> list[TableInfo]:
        _, rows = await conn.fetch_rows(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [TableInfo(name=row[0]) for row in rows if row[0]]

    async def list_columns(self, conn: Connection, database: str, table: str) -> list[ColumnInfo]:
        rows = await conn.fetch_dicts(f"PRAGMA table_info({self.quote_identifier(table)})")
        return [
            ColumnInfo(
                name=row["name"] or "",
                data_type=row.get("type") or "",
                is_nullable=row.get("notnull") == "0",
                is_primary_key=(row.get("pk") or "0") != "0",
                default_value=row.get("dflt_value"),
            )
            for row in rows
        ]

    async def list_indexes(self, conn: Connection, database: str, table: str) -> list[IndexInfo]:
        listing = await conn.fetch_dicts(f"PRAGMA index_list({self.quote_identifier(table)})")
        indexes = []
        for entry in listing:
            name = entry.get("name")
            if not name:
                continue
            columns = await conn.fetch_dicts(f"PRAGMA index_info({self.quote_identifier(name)})")
            indexes.append(
                IndexInfo(
                    name=name,
                    columns=tuple(c["name"] for c in columns if c.get("name")),
                    is_unique=entry.get("unique") == "1",
                    index_type=entry.get("origin"),
                )
            )
        return indexes

    async def list_views(self, conn: Connection, database: str) -> list[ViewInfo]:
        _, rows = await conn.fetch_rows(
            "SELECT name, sql FROM sqlite_master WHERE type = 'view' ORDER BY name"
        )
        return [ViewInfo(name=row[0], definition=row[1]) for row in rows if row[0]]

    async def list_triggers(self, conn: Connection, database: str) -> list[TriggerInfo]:
        _, rows = await conn.fetch_rows(
            "SELECT name, tbl_name, sql FROM sqlite_master WHERE type = 'trigger' ORDER BY name"
        )
        return [
            TriggerInfo(name=row[0], table_name=row[1], definition=row[2])
            for row in rows
            if row[0]
        ]

    # --- DDL -------------------------------------------------------------------

    def build_create_database_sql(self, request: DatabaseOperationRequest) -> str:
        return "-- SQLite: database is created when opening a file"

    def build_modify_database_sql(self, request: DatabaseOperationRequest) -> str:
        return "-- SQLite: database modification not supported"

    def build_drop_database_sql(self, name: str) -> str:
        return "-- SQLite: delete the database file to drop the database"

    def drop_database(self, name: str) -> str:
        return self.build_drop_database_sql(name)

    def truncate_table(self, database: str, table: str) -> str:
        return f"DELETE FROM {self.quote_identifier(table)};"

    def drop_view(self, database: str, view: str) -> str:
        return f"DROP VIEW IF EXISTS {self.quote_identifier(view)};"

    def auto_increment_clause(self) -> str:
        return ""

    def build_column_def(self, col: ColumnDefinition, inline_pk: bool = False) -> str:
        _require(col.name, "column")
        parts = [self.quote_identifier(col.name), self.type_string(col)]
        if inline_pk:
            parts.append("PRIMARY KEY")
            if col.is_auto_increment:
                parts.append("AUTOINCREMENT")
        elif not col.is_nullable:
            parts.append("NOT NULL")
        if col.default_value:
            parts.append(f"DEFAULT {col.default_value}")
        if col.collation:
            parts.append(f"COLLATE {col.collation}")
        return " ".join(parts)

    def _table_body(self, design: TableDesign) -> list[str]:
        pk = primary_key_columns(design)
        inline = pk[0] if len(pk) == 1 else None
        lines = [self.build_column_def(col, inline_pk=col.name == inline) for col in design.columns]
        if len(pk) > 1:
            lines.append(f"PRIMARY KEY ({self._column_list(pk)})")
        lines.extend(self.foreign_key_clauses(design))
        return lines

    def build_create_table_sql(self, design: TableDesign) -> str:
        _require(design.table_name, "table")
        table = self.quote_identifier(design.table_name)
        body = ",\n".join(f"  {line}" for line in self._table_body(design))
        statements = [f"CREATE TABLE {table} (\n{body}\n);"]
        statements.extend(
            self.create_index_sql(table, index) for index in design.indexes if not index.is_primary
        )
        return "\n".join(statements)

    def build_alter_table_sql(self, original: TableDesign, new: TableDesign) -> str:
        _require(new.table_name, "table")
        old_columns = {c.name: c for c in original.columns}
        new_names = [c.name for c in new.columns]
        dropped = [c for c in original.columns if c.name not in new_names]
        modified = [
            c for c in new.columns
            if c.name in old_columns and self.column_changed(old_columns[c.name], c)
        ]
        added = [c for c in new.columns if c.name not in old_columns]
        kept_order = [c.name for c in original.columns if c.name in new_names]
        reordered = kept_order != [n for n in new_names if n in old_columns]
        pk_changed = primary_key_columns(original) != primary_key_columns(new)
        renamed = bool(original.table_name) and original.table_name != new.table_name

        needs_rebuild = (
            dropped
            or modified
            or reordered
            or pk_changed
            or any(not _can_add_column(c) for c in added)
        )
        if needs_rebuild:
            statements = self._recreate_statements(original, new)
        else:
            statements = []
            if renamed:
                statements.append(self.rename_table("", original.table_name, new.table_name))
            table = self.quote_identifier(new.table_name)
            statements.extend(
                f"ALTER TABLE {table} ADD COLUMN {self.build_column_def(col)};" for col in added
            )
            statements.extend(self._index_diff(table, original, new))
        if not statements:
            return NO_CHANGES_DETECTED
        return "\n".join(statements)

    def _index_diff(self, table: str, original: TableDesign, new: TableDesign) -> list[str]:
        old_indexes = {i.name: i for i in original.indexes if not i.is_primary}
        new_indexes = {i.name: i for i in new.indexes if not i.is_primary}
        statements = []
        for name, index in old_indexes.items():
            replacement = new_indexes.get(name)
            if replacement is None or _index_changed(index, replacement):
                statements.append(self.drop_index_sql(table, index))
        for name, index in new_indexes.items():
            existing = old_indexes.get(name)
            if existing is None or _index_changed(existing, index):
                statements.append(self._recreate_index_sql(new, index))
        return [s for s in statements if s]

    def _recreate_statements(self, original: TableDesign, new: TableDesign) -> list[str]:
        source = self.quote_identifier(original.table_name or new.table_name)
        target = self.quote_identifier(new.table_name)
        temp = self.quote_identifier(f"{new.table_name}_dg_tmp")
        old_names = {c.name for c in original.columns}
        common = self._column_list(c.name for c in new.columns if c.name in old_names)

        body = ",\n".join(f"    {line}" for line in self._table_body(new))
        statements = [f"create table {temp}\n(\n{body}\n);"]
        if common:
            statements.append(f"insert into {temp}({common}) select {common} from {source};")
        statements.append(f"drop table {source};")
        statements.append(f"alter table {temp} rename to {target};")
        statements.extend(
            self._recreate_index_sql(new, index) for index in new.indexes if not index.is_primary
        )
        return [s for s in statements if s]

    def _recreate_index_sql(self, design: TableDesign, index: IndexDefinition) -> str:
        columns = {c.name: c for c in design.columns}
        present = [name for name in index.columns if name in columns]
        if not present:
            return ""
        table = self.quote_identifier(design.table_name)
        name = self.quote_identifier(index.name)
        column_list = self._column_list(present)
        if not index.is_unique:
            return f"create index {name} on {table} ({column_list});"
        nullable = [c for c in present if columns[c].is_nullable]
        where = ""
        if nullable:
            where = " where " + " and ".join(f"{self.quote_identifier(c)} is not null" for c in nullable)
        return f"create unique index {name} on {table} ({column_list}){where};"

    # --- table data ------------------------------------------------------------

    def single_row_statement(
        self,
        kind: RowChangeKind,
        table: str,
        set_clause: str,
        where_clause: str,
        has_unique_key: bool,
    ) -> str:
        where = f" WHERE {where_clause}" if where_clause else ""
        if not has_unique_key:
            where = f" WHERE rowid IN (SELECT rowid FROM {table}{where} LIMIT 1)"
        if kind is RowChangeKind.UPDATED:
            return f"UPDATE {table} SET {set_clause}{where}"
        return f"DELETE FROM {table}{where}"

    # --- dictionaries ----------------------------------------------------------

    def get_data_types(self) -> list[DataTypeInfo]:
        return [
            DataTypeInfo("INTEGER", "Signed integer, up to 8 bytes", DataTypeCategory.NUMERIC),
            DataTypeInfo("REAL", "8-byte IEEE float", DataTypeCategory.NUMERIC),
            DataTypeInfo("NUMERIC", "Numeric affinity", DataTypeCategory.NUMERIC),
            DataTypeInfo("TEXT", "Text string", DataTypeCategory.STRING),
            DataTypeInfo("VARCHAR", "Text affinity with declared length", DataTypeCategory.STRING),
            DataTypeInfo("BOOLEAN", "Stored as 0 or 1", DataTypeCategory.BOOLEAN),
            DataTypeInfo("DATE", "Stored as TEXT, REAL or INTEGER", DataTypeCategory.DATETIME),
            DataTypeInfo("DATETIME", "Stored as TEXT, REAL or INTEGER", DataTypeCategory.DATETIME),
            DataTypeInfo("BLOB", "Binary data", DataTypeCategory.BINARY),
        ]


def _can_add_column(col: ColumnDefinition) -> bool:
    """ADD COLUMN rejects key columns and NOT NULL without a default."""
    if col.is_primary_key or col.is_auto_increment:
        return False
    return col.is_nullable or bool(col.default_value)
