"""Dialect plugin contract and the builders every dialect shares.

A plugin is stateless: catalog readers take a live ``Connection`` and are
coroutines, everything else is a synchronous SQL builder. Dialects override
the small hooks (quoting, column clauses, index forms, paging, single-row
limits) rather than the whole builders wherever they can.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Iterable, Sequence

from ..connections.base import Connection
from ..errors import UnsupportedOperationError
from ..types import (
    CharsetInfo,
    CheckInfo,
    CollationInfo,
    ColumnDefinition,
    ColumnInfo,
    ColumnMeta,
    DatabaseInfo,
    DatabaseOperationRequest,
    DatabaseType,
    DataTypeCategory,
    DataTypeInfo,
    DbNodeType,
    FieldType,
    FilterCondition,
    FunctionInfo,
    IndexDefinition,
    IndexInfo,
    ObjectView,
    RowChangeKind,
    SequenceInfo,
    SortCondition,
    SqlCompletionInfo,
    TableDataRequest,
    TableDataResponse,
    TableDesign,
    TableInfo,
    TableOptions,
    TableRowChange,
    TableSaveRequest,
    TriggerInfo,
    ViewInfo,
)
from ..utils import quote_literal


NO_CHANGES_DETECTED = "-- No changes detected"
NO_ROW_CHANGES = "-- No changes"
NULL_SENTINEL = "NULL"

STANDARD_SQL_FUNCTIONS: list[tuple[str, str]] = [
    ("COUNT(*)", "Count rows"),
    ("COUNT(expr)", "Count non-NULL values"),
    ("SUM(expr)", "Sum of values"),
    ("AVG(expr)", "Average of values"),
    ("MAX(expr)", "Maximum value"),
    ("MIN(expr)", "Minimum value"),
    ("CONCAT(str1, str2, ...)", "Concatenate strings"),
    ("SUBSTRING(str, pos, len)", "Extract substring"),
    ("UPPER(str)", "Convert to uppercase"),
    ("LOWER(str)", "Convert to lowercase"),
    ("TRIM(str)", "Remove leading and trailing spaces"),
    ("LTRIM(str)", "Remove leading spaces"),
    ("RTRIM(str)", "Remove trailing spaces"),
    ("LENGTH(str)", "String length"),
    ("REPLACE(str, from, to)", "Replace occurrences"),
    ("ABS(x)", "Absolute value"),
    ("ROUND(x, d)", "Round to d decimals"),
    ("CEIL(x)", "Round up"),
    ("FLOOR(x)", "Round down"),
    ("MOD(x, y)", "Remainder"),
    ("POWER(x, y)", "x raised to y"),
    ("SQRT(x)", "Square root"),
    ("COALESCE(v1, v2, ...)", "First non-NULL value"),
    ("NULLIF(a, b)", "NULL if a equals b"),
    ("CAST(expr AS type)", "Convert type"),
    ("CURRENT_DATE", "Current date"),
    ("CURRENT_TIME", "Current time"),
    ("CURRENT_TIMESTAMP", "Current date and time"),
    ("EXTRACT(field FROM source)", "Extract date part"),
    ("ROW_NUMBER() OVER (...)", "Sequential row number"),
    ("RANK() OVER (...)", "Rank with gaps"),
    ("DENSE_RANK() OVER (...)", "Rank without gaps"),
    ("LAG(expr) OVER (...)", "Value from previous row"),
    ("LEAD(expr) OVER (...)", "Value from next row"),
    ("EXISTS(subquery)", "Subquery returns rows"),
]

STANDARD_SQL_KEYWORDS: list[tuple[str, str]] = [
    ("IF EXISTS", "Only if the object exists"),
    ("IF NOT EXISTS", "Only if the object does not exist"),
]


def with_standard_sql(info: SqlCompletionInfo) -> SqlCompletionInfo:
    """Prepend the dialect-neutral keywords and functions to ``info``."""
    return SqlCompletionInfo(
        keywords=STANDARD_SQL_KEYWORDS + list(info.keywords),
        functions=STANDARD_SQL_FUNCTIONS + list(info.functions),
        operators=list(info.operators),
        data_types=list(info.data_types),
        snippets=list(info.snippets),
    )


def _text(value: Any, missing: str = "-") -> str:
    if value is None or value == "":
        return missing
    return str(value)


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _truthy(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "t", "true", "y", "yes")


def _view(
    node_type: DbNodeType,
    noun: str,
    columns: Sequence[tuple[str, str]],
    rows: Iterable[Sequence[str]],
) -> ObjectView:
    materialized = tuple(tuple(row) for row in rows)
    return ObjectView(
        db_node_type=node_type,
        title=f"{len(materialized)} {noun}",
        columns=tuple(columns),
        rows=materialized,
    )


def group_index_rows(rows: Iterable[Sequence[Any]]) -> list[IndexInfo]:
    """Fold ``(name, column, is_unique, index_type)`` rows into one entry per index."""
    order: list[str] = []
    grouped: dict[str, dict[str, Any]] = {}
    for name, column, unique, index_type in rows:
        if name is None:
            continue
        entry = grouped.get(name)
        if entry is None:
            entry = {"columns": [], "unique": _truthy(unique), "type": index_type}
            grouped[name] = entry
            order.append(name)
        if column is not None:
            entry["columns"].append(str(column))
    return [
        IndexInfo(
            name=name,
            columns=tuple(grouped[name]["columns"]),
            is_unique=grouped[name]["unique"],
            index_type=grouped[name]["type"],
        )
        for name in order
    ]


class DatabasePlugin(ABC):
    """One SQL dialect: identity, catalog readers, DDL/DML builders, dictionaries."""

    database_type: DatabaseType
    quote_open = '"'
    quote_close = '"'
    dialect_name = "ansi"
    # Column attributes ALTER TABLE cannot change in this dialect.
    unsupported_column_changes: tuple[str, ...] = ("unsigned", "charset")

    completion_keywords: Sequence[tuple[str, str]] = ()
    completion_functions: Sequence[tuple[str, str]] = ()
    completion_operators: Sequence[tuple[str, str]] = ()
    completion_data_types: Sequence[tuple[str, str]] = ()
    completion_snippets: Sequence[tuple[str, str, str]] = ()

    # --- identity and capabilities -------------------------------------------

    def name(self) -> DatabaseType:
        return self.database_type

    def supports_schema(self) -> bool:
        return False

    def supports_sequences(self) -> bool:
        return False

    def supports_functions(self) -> bool:
        return True

    def supports_procedures(self) -> bool:
        return True

    def identifier_quote(self) -> str:
        return self.quote_open

    def quote_identifier(self, identifier: str) -> str:
        escaped = identifier.replace(self.quote_close, self.quote_close * 2)
        return f"{self.quote_open}{escaped}{self.quote_close}"

    def sql_dialect(self) -> str:
        return self.dialect_name

    def qualified_table(self, database: str, table: str, schema: str | None = None) -> str:
        if database:
            return f"{self.quote_identifier(database)}.{self.quote_identifier(table)}"
        return self.quote_identifier(table)

    def get_completion_info(self) -> SqlCompletionInfo:
        return with_standard_sql(
            SqlCompletionInfo(
                keywords=list(self.completion_keywords),
                functions=list(self.completion_functions),
                operators=list(self.completion_operators),
                data_types=list(self.completion_data_types),
                snippets=list(self.completion_snippets),
            )
        )

    # --- catalog ---------------------------------------------------------------

    @abstractmethod
    async def list_databases(self, conn: Connection) -> list[str]:
        ...

    async def list_databases_detailed(self, conn: Connection) -> list[DatabaseInfo]:
        return [DatabaseInfo(name=name) for name in await self.list_databases(conn)]

    async def list_schemas(self, conn: Connection, database: str) -> list[str]:
        return []

    @abstractmethod
    async def list_tables(self, conn: Connection, database: str) -> list[TableInfo]:
        ...

    @abstractmethod
    async def list_columns(self, conn: Connection, database: str, table: str) -> list[ColumnInfo]:
        ...

    @abstractmethod
    async def list_indexes(self, conn: Connection, database: str, table: str) -> list[IndexInfo]:
        ...

    @abstractmethod
    async def list_views(self, conn: Connection, database: str) -> list[ViewInfo]:
        ...

    async def list_functions(self, conn: Connection, database: str) -> list[FunctionInfo]:
        return []

    async def list_procedures(self, conn: Connection, database: str) -> list[FunctionInfo]:
        return []

    async def list_triggers(self, conn: Connection, database: str) -> list[TriggerInfo]:
        return []

    async def list_sequences(self, conn: Connection, database: str) -> list[SequenceInfo]:
        return []

    async def list_table_checks(self, conn: Connection, database: str, table: str) -> list[CheckInfo]:
        return []

    # --- catalog views -----------------------------------------------------------

    async def list_databases_view(self, conn: Connection) -> ObjectView:
        databases = await self.list_databases_detailed(conn)
        return _view(
            DbNodeType.DATABASE,
            "database(s)",
            (("name", "Name"), ("charset", "Charset"), ("collation", "Collation"),
             ("size", "Size"), ("tables", "Tables"), ("comment", "Comment")),
            (
                (d.name, _text(d.charset), _text(d.collation), _text(d.size),
                 _text(d.table_count), _text(d.comment, ""))
                for d in databases
            ),
        )

    async def list_schemas_view(self, conn: Connection, database: str) -> ObjectView:
        schemas = await self.list_schemas(conn, database)
        return _view(DbNodeType.SCHEMA, "schema(s)", (("name", "Name"),), ((s,) for s in schemas))

    async def list_tables_view(self, conn: Connection, database: str) -> ObjectView:
        tables = await self.list_tables(conn, database)
        return _view(
            DbNodeType.TABLE,
            "table(s)",
            (("name", "Name"), ("schema", "Schema"), ("engine", "Engine"),
             ("rows", "Rows"), ("created", "Created"), ("comment", "Comment")),
            (
                (t.name, _text(t.schema), _text(t.engine), _text(t.row_count),
                 _text(t.create_time), _text(t.comment, ""))
                for t in tables
            ),
        )

    async def list_columns_view(self, conn: Connection, database: str, table: str) -> ObjectView:
        columns = await self.list_columns(conn, database, table)
        return _view(
            DbNodeType.COLUMN,
            "column(s)",
            (("name", "Name"), ("type", "Type"), ("nullable", "Nullable"),
             ("key", "Key"), ("default", "Default"), ("comment", "Comment")),
            (
                (c.name, c.data_type, "YES" if c.is_nullable else "NO",
                 "PRI" if c.is_primary_key else "", _text(c.default_value, ""),
                 _text(c.comment, ""))
                for c in columns
            ),
        )

    async def list_indexes_view(self, conn: Connection, database: str, table: str) -> ObjectView:
        indexes = await self.list_indexes(conn, database, table)
        return _view(
            DbNodeType.INDEX,
            "index(es)",
            (("name", "Name"), ("columns", "Columns"), ("unique", "Unique"), ("type", "Type")),
            (
                (i.name, ", ".join(i.columns), "YES" if i.is_unique else "NO", _text(i.index_type))
                for i in indexes
            ),
        )

    async def list_views_view(self, conn: Connection, database: str) -> ObjectView:
        views = await self.list_views(conn, database)
        return _view(
            DbNodeType.VIEW,
            "view(s)",
            (("name", "Name"), ("schema", "Schema"), ("definition", "Definition")),
            ((v.name, _text(v.schema), _text(v.definition, "")) for v in views),
        )

    async def list_functions_view(self, conn: Connection, database: str) -> ObjectView:
        functions = await self.list_functions(conn, database)
        return _view(
            DbNodeType.FUNCTION,
            "function(s)",
            (("name", "Name"), ("return_type", "Returns")),
            ((f.name, _text(f.return_type)) for f in functions),
        )

    async def list_procedures_view(self, conn: Connection, database: str) -> ObjectView:
        procedures = await self.list_procedures(conn, database)
        return _view(
            DbNodeType.PROCEDURE,
            "procedure(s)",
            (("name", "Name"),),
            ((p.name,) for p in procedures),
        )

    async def list_triggers_view(self, conn: Connection, database: str) -> ObjectView:
        triggers = await self.list_triggers(conn, database)
        return _view(
            DbNodeType.TRIGGER,
            "trigger(s)",
            (("name", "Name"), ("table", "Table"), ("event", "Event"), ("timing", "Timing")),
            ((t.name, _text(t.table_name), _text(t.event), _text(t.timing)) for t in triggers),
        )

    async def list_sequences_view(self, conn: Connection, database: str) -> ObjectView:
        sequences = await self.list_sequences(conn, database)
        return _view(
            DbNodeType.SEQUENCE,
            "sequence(s)",
            (("name", "Name"), ("start", "Start"), ("increment", "Increment"),
             ("min", "Min"), ("max", "Max")),
            (
                (s.name, _text(s.start_value), _text(s.increment),
                 _text(s.min_value), _text(s.max_value))
                for s in sequences
            ),
        )

    async def list_table_checks_view(self, conn: Connection, database: str, table: str) -> ObjectView:
        checks = await self.list_table_checks(conn, database, table)
        return _view(
            DbNodeType.CHECK,
            "check(s)",
            (("name", "Name"), ("table", "Table"), ("definition", "Definition")),
            ((c.name, _text(c.table_name), _text(c.definition, "")) for c in checks),
        )

    # --- database and schema DDL -----------------------------------------------

    def build_create_database_sql(self, request: DatabaseOperationRequest) -> str:
        return f"CREATE DATABASE {self.quote_identifier(_require(request.database_name, 'database'))};"

    def build_modify_database_sql(self, request: DatabaseOperationRequest) -> str:
        return f"-- No modifications for database {self.quote_identifier(request.database_name)}"

    def build_drop_database_sql(self, name: str) -> str:
        return f"DROP DATABASE {self.quote_identifier(_require(name, 'database'))};"

    def build_create_schema_sql(self, name: str) -> str:
        self._require_schema_support()
        return f"CREATE SCHEMA {self.quote_identifier(_require(name, 'schema'))};"

    def build_drop_schema_sql(self, name: str) -> str:
        self._require_schema_support()
        return f"DROP SCHEMA {self.quote_identifier(_require(name, 'schema'))};"

    def build_comment_schema_sql(self, name: str, comment: str) -> str | None:
        self._require_schema_support()
        return None

    def _require_schema_support(self) -> None:
        if not self.supports_schema():
            raise UnsupportedOperationError(f"{self.database_type.value} has no schemas")

    # --- object DDL ----------------------------------------------------------------

    def drop_database(self, name: str) -> str:
        return f"DROP DATABASE IF EXISTS {self.quote_identifier(name)};"

    def drop_table(self, database: str, table: str) -> str:
        return f"DROP TABLE IF EXISTS {self.qualified_table(database, table)};"

    def truncate_table(self, database: str, table: str) -> str:
        return f"TRUNCATE TABLE {self.qualified_table(database, table)};"

    def rename_table(self, database: str, old_name: str, new_name: str) -> str:
        return (
            f"ALTER TABLE {self.qualified_table(database, old_name)} "
            f"RENAME TO {self.quote_identifier(new_name)};"
        )

    def drop_view(self, database: str, view: str) -> str:
        return f"DROP VIEW IF EXISTS {self.qualified_table(database, view)};"

    # --- column clauses --------------------------------------------------------------

    def type_string(self, col: ColumnDefinition) -> str:
        size = col.length if col.length is not None else col.precision
        if size is None:
            return col.data_type
        if col.scale is not None:
            return f"{col.data_type}({size},{col.scale})"
        return f"{col.data_type}({size})"

    def auto_increment_clause(self) -> str:
        return "GENERATED BY DEFAULT AS IDENTITY"

    def column_constraints(self, col: ColumnDefinition) -> list[str]:
        parts: list[str] = []
        if not col.is_nullable:
            parts.append("NOT NULL")
        if col.is_auto_increment:
            parts.append(self.auto_increment_clause())
        if col.default_value:
            parts.append(f"DEFAULT {col.default_value}")
        return parts

    def build_column_def(self, col: ColumnDefinition) -> str:
        _require(col.name, "column")
        return " ".join(
            [self.quote_identifier(col.name), self.type_string(col)] + self.column_constraints(col)
        )

    def changed_column_fields(self, old: ColumnDefinition, new: ColumnDefinition) -> list[str]:
        fields: list[str] = []
        if old.name != new.name:
            fields.append("name")
        if _type_changed(old, new):
            fields.append("type")
        if old.is_nullable != new.is_nullable:
            fields.append("nullable")
        if old.is_auto_increment != new.is_auto_increment:
            fields.append("auto_increment")
        if old.is_unsigned != new.is_unsigned:
            fields.append("unsigned")
        if (old.default_value or "") != (new.default_value or ""):
            fields.append("default")
        if (old.comment or "") != (new.comment or ""):
            fields.append("comment")
        if (old.charset or "") != (new.charset or ""):
            fields.append("charset")
        if (old.collation or "") != (new.collation or ""):
            fields.append("collation")
        return fields

    def column_changed(self, old: ColumnDefinition, new: ColumnDefinition) -> bool:
        return bool(self.changed_column_fields(old, new))

    def _column_list(self, columns: Iterable[str]) -> str:
        return ", ".join(self.quote_identifier(c) for c in columns)

    # --- CREATE TABLE ------------------------------------------------------------------

    def build_create_table_sql(self, design: TableDesign) -> str:
        _require(design.table_name, "table")
        table = self.quote_identifier(design.table_name)
        lines = [f"  {self.build_column_def(col)}" for col in design.columns]
        pk = primary_key_columns(design)
        if pk:
            lines.append(f"  PRIMARY KEY ({self._column_list(pk)})")
        lines.extend(f"  {clause}" for clause in self.inline_index_clauses(design))
        lines.extend(f"  {clause}" for clause in self.foreign_key_clauses(design))
        sql = f"CREATE TABLE {table} (\n" + ",\n".join(lines) + "\n)"
        sql += self.table_options_clause(design.options) + ";"
        trailing = [
            self.create_index_sql(table, idx)
            for idx in design.indexes
            if not idx.is_primary and not self.inlines_indexes()
        ]
        trailing.extend(self.comment_statements(design))
        return "\n".join([sql] + trailing)

    def inlines_indexes(self) -> bool:
        return False

    def inline_index_clauses(self, design: TableDesign) -> list[str]:
        return []

    def foreign_key_clauses(self, design: TableDesign) -> list[str]:
        clauses = []
        for fk in design.foreign_keys:
            clause = (
                f"CONSTRAINT {self.quote_identifier(fk.name)} FOREIGN KEY ({self._column_list(fk.columns)}) "
                f"REFERENCES {self.quote_identifier(fk.ref_table)} ({self._column_list(fk.ref_columns)})"
            )
            if fk.on_delete:
                clause += f" ON DELETE {fk.on_delete}"
            if fk.on_update:
                clause += f" ON UPDATE {fk.on_update}"
            clauses.append(clause)
        return clauses

    def table_options_clause(self, options: TableOptions) -> str:
        return ""

    def comment_statements(self, design: TableDesign) -> list[str]:
        return []

    # --- ALTER TABLE -------------------------------------------------------------------

    def build_alter_table_sql(self, original: TableDesign, new: TableDesign) -> str:
        _require(new.table_name, "table")
        statements: list[str] = []
        if original.table_name and original.table_name != new.table_name:
            statements.append(self.rename_table(new.database_name, original.table_name, new.table_name))
        table = self.quote_identifier(new.table_name)

        old_columns = {c.name: c for c in original.columns}
        new_names = {c.name for c in new.columns}
        for col in original.columns:
            if col.name not in new_names:
                statements.append(f"ALTER TABLE {table} DROP COLUMN {self.quote_identifier(col.name)};")
        previous: str | None = None
        for position, col in enumerate(new.columns):
            old = old_columns.get(col.name)
            if old is None:
                statements.append(self.add_column_sql(table, col, previous, position == 0))
            elif self.column_changed(old, col):
                statements.extend(self.modify_column_sql(table, old, col))
                statements.extend(self.unsupported_change_notes(old, col))
            previous = col.name

        statements.extend(self.index_change_statements(table, original, new))
        statements.extend(self.option_change_statements(table, original.options, new.options))
        if not statements:
            return NO_CHANGES_DETECTED
        return "\n".join(statements)

    def add_column_sql(
        self, table: str, col: ColumnDefinition, after: str | None, first: bool
    ) -> str:
        return f"ALTER TABLE {table} ADD COLUMN {self.build_column_def(col)};"

    def modify_column_sql(
        self, table: str, old: ColumnDefinition, new: ColumnDefinition
    ) -> list[str]:
        column = self.quote_identifier(new.name)
        prefix = f"ALTER TABLE {table} ALTER COLUMN {column}"
        statements: list[str] = []
        if _type_changed(old, new) or (old.collation or "") != (new.collation or ""):
            collate = ""
            if new.collation:
                collate = f" COLLATE {self.quote_identifier(new.collation)}"
            elif old.collation:
                collate = f" COLLATE {self.quote_identifier('default')}"
            statements.append(f"{prefix} TYPE {self.type_string(new)}{collate};")
        if old.is_nullable != new.is_nullable:
            statements.append(f"{prefix} {'DROP' if new.is_nullable else 'SET'} NOT NULL;")
        if (old.default_value or "") != (new.default_value or ""):
            if new.default_value:
                statements.append(f"{prefix} SET DEFAULT {new.default_value};")
            else:
                statements.append(f"{prefix} DROP DEFAULT;")
        if old.is_auto_increment != new.is_auto_increment:
            if new.is_auto_increment:
                statements.append(f"{prefix} ADD {self.auto_increment_clause()};")
            else:
                statements.append(f"{prefix} DROP IDENTITY IF EXISTS;")
        return statements

    def unsupported_change_notes(self, old: ColumnDefinition, new: ColumnDefinition) -> list[str]:
        skipped = [
            item
            for item in self.changed_column_fields(old, new)
            if item in self.unsupported_column_changes
        ]
        if not skipped:
            return []
        return [
            f"-- {self.database_type.value}: cannot alter {', '.join(skipped)} "
            f"of column {new.name}"
        ]

    def drop_primary_key_sql(self, table: str, table_name: str) -> str:
        return f"ALTER TABLE {table} DROP PRIMARY KEY;"

    def add_primary_key_sql(self, table: str, table_name: str, columns: Sequence[str]) -> str:
        return f"ALTER TABLE {table} ADD PRIMARY KEY ({self._column_list(columns)});"

    def drop_index_sql(self, table: str, index: IndexDefinition) -> str:
        return f"DROP INDEX {self.quote_identifier(index.name)};"

    def create_index_sql(self, table: str, index: IndexDefinition) -> str:
        unique = "UNIQUE " if index.is_unique else ""
        return (
            f"CREATE {unique}INDEX {self.quote_identifier(index.name)} "
            f"ON {table} ({self._column_list(index.columns)});"
        )

    def index_change_statements(
        self, table: str, original: TableDesign, new: TableDesign
    ) -> list[str]:
        statements: list[str] = []
        old_pk = primary_key_columns(original)
        new_pk = primary_key_columns(new)
        if old_pk != new_pk:
            if old_pk:
                statements.append(self.drop_primary_key_sql(table, new.table_name))
            if new_pk:
                statements.append(self.add_primary_key_sql(table, new.table_name, new_pk))

        old_indexes = {i.name: i for i in original.indexes if not i.is_primary}
        new_indexes = {i.name: i for i in new.indexes if not i.is_primary}
        for name, index in old_indexes.items():
            replacement = new_indexes.get(name)
            if replacement is None or _index_changed(index, replacement):
                statements.append(self.drop_index_sql(table, index))
        for name, index in new_indexes.items():
            existing = old_indexes.get(name)
            if existing is None or _index_changed(existing, index):
                statements.append(self.create_index_sql(table, index))
        return statements

    def option_change_statements(
        self, table: str, old: TableOptions, new: TableOptions
    ) -> list[str]:
        return []

    # --- data types, charsets, collations ------------------------------------------------

    def get_data_types(self) -> list[DataTypeInfo]:
        return [
            DataTypeInfo("INT", "Integer", DataTypeCategory.NUMERIC),
            DataTypeInfo("VARCHAR(255)", "Variable-length string", DataTypeCategory.STRING),
            DataTypeInfo("TEXT", "Long text", DataTypeCategory.STRING),
            DataTypeInfo("DATE", "Date", DataTypeCategory.DATETIME),
            DataTypeInfo("DATETIME", "Date and time", DataTypeCategory.DATETIME),
            DataTypeInfo("BOOLEAN", "True or false", DataTypeCategory.BOOLEAN),
            DataTypeInfo("DECIMAL(10,2)", "Exact decimal", DataTypeCategory.NUMERIC),
        ]

    def get_charsets(self) -> list[CharsetInfo]:
        return []

    def get_collations(self, charset: str | None = None) -> list[CollationInfo]:
        return []

    # --- table data --------------------------------------------------------------------

    def paginate(self, sql: str, has_order: bool, limit: int, offset: int) -> str:
        return f"{sql} LIMIT {limit} OFFSET {offset}"

    def single_row_statement(
        self,
        kind: RowChangeKind,
        table: str,
        set_clause: str,
        where_clause: str,
        has_unique_key: bool,
    ) -> str:
        """UPDATE or DELETE touching at most one row; default is a trailing LIMIT 1."""
        return f"{_dml_head(kind, table, set_clause)}{_where(where_clause)} LIMIT 1"

    def build_table_data_sql(self, request: TableDataRequest) -> tuple[str, str]:
        """Return ``(count_sql, data_sql)`` for one page of ``request``."""
        _require(request.table, "table")
        table = self.qualified_table(request.database, request.table, request.schema)
        where = _where(request.where_clause.strip() if request.where_clause else build_filter_clause(self, request.filters))
        order = request.order_by_clause.strip() if request.order_by_clause else build_order_clause(self, request.sorts)
        count_sql = f"SELECT COUNT(*) FROM {table}{where}"
        data_sql = f"SELECT * FROM {table}{where}"
        if order:
            data_sql += f" ORDER BY {order}"
        if request.page_size > 0:
            offset = max(request.page - 1, 0) * request.page_size
            data_sql = self.paginate(data_sql, bool(order), request.page_size, offset)
        return count_sql, data_sql

    async def query_table_data(self, conn: Connection, request: TableDataRequest) -> TableDataResponse:
        started = time.perf_counter()
        catalog_table = request.table
        if request.schema and self.supports_schema():
            catalog_table = f"{request.schema}.{request.table}"
        column_infos = await self.list_columns(conn, request.database, catalog_table)
        columns = [
            ColumnMeta(
                name=info.name,
                db_type=info.data_type,
                field_type=FieldType.from_db_type(info.data_type),
                nullable=info.is_nullable,
                is_primary_key=info.is_primary_key,
                ordinal=position,
            )
            for position, info in enumerate(column_infos)
        ]
        primary_key_indices = [c.ordinal for c in columns if c.is_primary_key]
        unique_key_indices: list[int] = []
        if not primary_key_indices:
            positions = {c.name: c.ordinal for c in columns}
            for index in await self.list_indexes(conn, request.database, catalog_table):
                if index.is_unique:
                    unique_key_indices = [positions[c] for c in index.columns if c in positions]
                    break

        count_sql, data_sql = self.build_table_data_sql(request)
        _, count_rows = await conn.fetch_rows(count_sql)
        total_count = _as_int(count_rows[0][0]) if count_rows else 0
        result_columns, rows = await conn.fetch_rows(data_sql)
        if not columns:
            columns = [
                ColumnMeta(name, "", FieldType.UNKNOWN, True, False, position)
                for position, name in enumerate(result_columns)
            ]
        return TableDataResponse(
            table=request.table,
            columns=columns,
            rows=rows,
            total_count=total_count or 0,
            page=request.page,
            page_size=request.page_size,
            primary_key_indices=primary_key_indices,
            unique_key_indices=unique_key_indices,
            executed_sql=data_sql,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )

    def generate_table_changes_sql(self, request: TableSaveRequest) -> str:
        return generate_table_changes_sql(self, request)


# --- shared helpers ---------------------------------------------------------------


def _type_changed(old: ColumnDefinition, new: ColumnDefinition) -> bool:
    return (
        old.data_type.upper() != new.data_type.upper()
        or old.length != new.length
        or old.precision != new.precision
        or old.scale != new.scale
    )


def _require(name: str, what: str) -> str:
    if not name or not name.strip():
        raise ValueError(f"{what} name must not be empty")
    return name


def _where(condition: str) -> str:
    return f" WHERE {condition}" if condition else ""


def _dml_head(kind: RowChangeKind, table: str, set_clause: str) -> str:
    if kind is RowChangeKind.UPDATED:
        return f"UPDATE {table} SET {set_clause}"
    return f"DELETE FROM {table}"


def _index_changed(old: IndexDefinition, new: IndexDefinition) -> bool:
    return list(old.columns) != list(new.columns) or old.is_unique != new.is_unique


def primary_key_columns(design: TableDesign) -> list[str]:
    """Key columns from the column flags, else from a primary index."""
    flagged = [c.name for c in design.columns if c.is_primary_key]
    if flagged:
        return flagged
    for index in design.indexes:
        if index.is_primary:
            return list(index.columns)
    return []


def build_filter_clause(plugin: DatabasePlugin, filters: Sequence[FilterCondition]) -> str:
    conditions = []
    for cond in filters:
        column = plugin.quote_identifier(cond.column)
        op = cond.operator
        if not op.takes_value:
            conditions.append(f"{column} {op.value}")
        elif op.value in ("IN", "NOT IN"):
            conditions.append(f"{column} {op.value} ({cond.value})")
        else:
            conditions.append(f"{column} {op.value} {quote_literal(cond.value)}")
    return " AND ".join(conditions)


def build_order_clause(plugin: DatabasePlugin, sorts: Sequence[SortCondition]) -> str:
    return ", ".join(f"{plugin.quote_identifier(s.column)} {s.direction.value}" for s in sorts)


def _sql_value(value: str | None) -> str:
    if value is None or value == NULL_SENTINEL:
        return "NULL"
    return quote_literal(value)


def _key_indices(request: TableSaveRequest) -> tuple[list[int], bool]:
    if request.primary_key_indices:
        return list(request.primary_key_indices), True
    if request.unique_key_indices:
        return list(request.unique_key_indices), True
    return list(range(len(request.column_names))), False


def _row_condition(plugin: DatabasePlugin, request: TableSaveRequest, row: Sequence[str | None]) -> str:
    indices, _ = _key_indices(request)
    parts = []
    for idx in indices:
        if idx >= len(request.column_names):
            continue
        column = plugin.quote_identifier(request.column_names[idx])
        value = row[idx] if idx < len(row) else None
        if value is None:
            parts.append(f"{column} IS NULL")
        else:
            parts.append(f"{column} = {quote_literal(value)}")
    return " AND ".join(parts)


def build_table_change_statements(plugin: DatabasePlugin, request: TableSaveRequest) -> list[str]:
    """One statement per row change, without terminators."""
    table = plugin.qualified_table(request.database, request.table, request.schema)
    _, has_unique_key = _key_indices(request)
    statements: list[str] = []
    for change in request.changes:
        statement = _change_statement(plugin, request, table, change, has_unique_key)
        if statement:
            statements.append(statement)
    return statements


def _change_statement(
    plugin: DatabasePlugin,
    request: TableSaveRequest,
    table: str,
    change: TableRowChange,
    has_unique_key: bool,
) -> str | None:
    if change.kind is RowChangeKind.ADDED:
        columns = ", ".join(plugin.quote_identifier(c) for c in request.column_names)
        values = ", ".join(_sql_value(v) for v in change.data)
        return f"INSERT INTO {table} ({columns}) VALUES ({values})"
    where = _row_condition(plugin, request, change.data)
    if change.kind is RowChangeKind.UPDATED:
        if not change.changes:
            return None
        set_clause = ", ".join(
            f"{plugin.quote_identifier(cell.column_name or request.column_names[cell.column_index])} "
            f"= {_sql_value(cell.new_value)}"
            for cell in change.changes
        )
        return plugin.single_row_statement(change.kind, table, set_clause, where, has_unique_key)
    return plugin.single_row_statement(change.kind, table, "", where, has_unique_key)


def generate_table_changes_sql(plugin: DatabasePlugin, request: TableSaveRequest) -> str:
    statements = build_table_change_statements(plugin, request)
    if not statements:
        return NO_ROW_CHANGES
    return ";\n".join(statements) + ";"


__all__ = [
    "DatabasePlugin",
    "NO_CHANGES_DETECTED",
    "NO_ROW_CHANGES",
    "STANDARD_SQL_FUNCTIONS",
    "STANDARD_SQL_KEYWORDS",
    "build_filter_clause",
    "build_order_clause",
    "build_table_change_statements",
    "generate_table_changes_sql",
    "group_index_rows",
    "primary_key_columns",
    "with_standard_sql",
]
