from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ConfigError


class DatabaseType(str, Enum):
    MYSQL = "MySQL"
    POSTGRESQL = "PostgreSQL"
    MSSQL = "MSSQL"
    SQLITE = "SQLite"
    ORACLE = "Oracle"

    @classmethod
    def parse(cls, raw: str | DatabaseType) -> DatabaseType:
        if isinstance(raw, DatabaseType):
            return raw
        key = str(raw).strip().lower()
        for member in cls:
            if member.value.lower() == key or member.name.lower() == key:
                return member
        alias = _DATABASE_TYPE_ALIASES.get(key)
        if alias is None:
            raise ConfigError(f"Unknown database type: {raw!r}")
        return alias


_DATABASE_TYPE_ALIASES = {
    "mariadb": DatabaseType.MYSQL,
    "postgres": DatabaseType.POSTGRESQL,
    "pg": DatabaseType.POSTGRESQL,
    "pgsql": DatabaseType.POSTGRESQL,
    "sqlserver": DatabaseType.MSSQL,
    "sql server": DatabaseType.MSSQL,
    "sqlite3": DatabaseType.SQLITE,
}


class DbNodeType(str, Enum):
    CONNECTION = "Connection"
    DATABASE = "Database"
    SCHEMA = "Schema"
    TABLES_FOLDER = "Tables"
    TABLE = "Table"
    COLUMNS_FOLDER = "Columns"
    COLUMN = "Column"
    INDEXES_FOLDER = "Indexes"
    INDEX = "Index"
    FOREIGN_KEYS_FOLDER = "Foreign Keys"
    FOREIGN_KEY = "Foreign Key"
    TRIGGERS_FOLDER = "Triggers"
    TRIGGER = "Trigger"
    CHECKS_FOLDER = "Checks"
    CHECK = "Check"
    VIEWS_FOLDER = "Views"
    VIEW = "View"
    FUNCTIONS_FOLDER = "Functions"
    FUNCTION = "Function"
    PROCEDURES_FOLDER = "Procedures"
    PROCEDURE = "Procedure"
    SEQUENCES_FOLDER = "Sequences"
    SEQUENCE = "Sequence"


# --- catalog records -------------------------------------------------------


@dataclass(frozen=True)
class DatabaseInfo:
    name: str
    charset: str | None = None
    collation: str | None = None
    size: str | None = None
    table_count: int | None = None
    comment: str | None = None


@dataclass(frozen=True)
class TableInfo:
    name: str
    schema: str | None = None
    comment: str | None = None
    engine: str | None = None
    row_count: int | None = None
    create_time: str | None = None
    charset: str | None = None
    collation: str | None = None


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    data_type: str = ""
    is_nullable: bool = True
    is_primary_key: bool = False
    default_value: str | None = None
    comment: str | None = None


@dataclass(frozen=True)
class IndexInfo:
    name: str
    columns: tuple[str, ...] = ()
    is_unique: bool = False
    index_type: str | None = None


@dataclass(frozen=True)
class ViewInfo:
    name: str
    schema: str | None = None
    definition: str | None = None
    comment: str | None = None


@dataclass(frozen=True)
class FunctionInfo:
    name: str
    return_type: str | None = None
    parameters: tuple[str, ...] = ()
    definition: str | None = None
    comment: str | None = None


@dataclass(frozen=True)
class TriggerInfo:
    name: str
    table_name: str | None = None
    event: str | None = None
    timing: str | None = None
    definition: str | None = None


@dataclass(frozen=True)
class SequenceInfo:
    name: str
    start_value: int | None = None
    increment: int | None = None
    min_value: int | None = None
    max_value: int | None = None


@dataclass(frozen=True)
class CheckInfo:
    name: str
    table_name: str | None = None
    definition: str | None = None


class DataTypeCategory(str, Enum):
    NUMERIC = "Numeric"
    STRING = "String"
    DATETIME = "DateTime"
    BOOLEAN = "Boolean"
    BINARY = "Binary"
    STRUCTURED = "Structured"
    OTHER = "Other"


@dataclass(frozen=True)
class DataTypeInfo:
    name: str
    description: str
    category: DataTypeCategory


@dataclass(frozen=True)
class CharsetInfo:
    name: str
    description: str
    default_collation: str


@dataclass(frozen=True)
class CollationInfo:
    name: str
    charset: str
    is_default: bool = False


@dataclass(frozen=True)
class ObjectView:
    """Column/row projection of a catalog listing for tabular display."""

    db_node_type: DbNodeType
    title: str
    columns: tuple[tuple[str, str], ...]
    rows: tuple[tuple[str, ...], ...]


# --- designer input --------------------------------------------------------


@dataclass
class ColumnDefinition:
    name: str
    data_type: str
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    is_nullable: bool = True
    is_primary_key: bool = False
    is_auto_increment: bool = False
    is_unsigned: bool = False
    default_value: str | None = None
    comment: str = ""
    charset: str | None = None
    collation: str | None = None


@dataclass
class IndexDefinition:
    name: str
    columns: list[str] = field(default_factory=list)
    is_unique: bool = False
    is_primary: bool = False
    index_type: str | None = None
    comment: str = ""


@dataclass
class ForeignKeyDefinition:
    name: str
    columns: list[str] = field(default_factory=list)
    ref_table: str = ""
    ref_columns: list[str] = field(default_factory=list)
    on_delete: str | None = None
    on_update: str | None = None


@dataclass
class TableOptions:
    engine: str | None = None
    charset: str | None = None
    collation: str | None = None
    comment: str = ""
    auto_increment: int | None = None


@dataclass
class TableDesign:
    database_name: str
    table_name: str
    columns: list[ColumnDefinition] = field(default_factory=list)
    indexes: list[IndexDefinition] = field(default_factory=list)
    foreign_keys: list[ForeignKeyDefinition] = field(default_factory=list)
    options: TableOptions = field(default_factory=TableOptions)


@dataclass
class DatabaseOperationRequest:
    database_name: str
    field_values: dict[str, str] = field(default_factory=dict)


# --- table data ------------------------------------------------------------


class FieldType(str, Enum):
    INTEGER = "Integer"
    DECIMAL = "Decimal"
    BOOLEAN = "Boolean"
    DATE = "Date"
    TIME = "Time"
    DATETIME = "DateTime"
    TEXT = "Text"
    LONG_TEXT = "LongText"
    BINARY = "Binary"
    JSON = "Json"
    UNKNOWN = "Unknown"

    @classmethod
    def from_db_type(cls, db_type: str) -> FieldType:
        base = db_type.split("(", 1)[0].strip().upper()
        for candidate in (base, base.replace(" UNSIGNED", "").strip()):
            found = _FIELD_TYPE_BY_NAME.get(candidate)
            if found is not None:
                return found
        return cls.UNKNOWN

    @property
    def category(self) -> DataTypeCategory:
        return _FIELD_CATEGORY[self]


_FIELD_TYPE_GROUPS: dict[FieldType, tuple[str, ...]] = {
    FieldType.INTEGER: (
        "INT", "INTEGER", "BIGINT", "SMALLINT", "TINYINT", "MEDIUMINT",
        "SERIAL", "BIGSERIAL", "SMALLSERIAL", "INT2", "INT4", "INT8",
    ),
    FieldType.DECIMAL: (
        "DECIMAL", "NUMERIC", "NUMBER", "FLOAT", "DOUBLE", "REAL",
        "DOUBLE PRECISION", "MONEY", "SMALLMONEY", "FLOAT4", "FLOAT8",
        "BINARY_FLOAT", "BINARY_DOUBLE",
    ),
    FieldType.BOOLEAN: ("BOOL", "BOOLEAN", "BIT"),
    FieldType.DATE: ("DATE",),
    FieldType.TIME: ("TIME", "TIMETZ"),
    FieldType.DATETIME: (
        "DATETIME", "DATETIME2", "SMALLDATETIME", "DATETIMEOFFSET",
        "TIMESTAMP", "TIMESTAMPTZ",
    ),
    FieldType.TEXT: (
        "CHAR", "VARCHAR", "NCHAR", "NVARCHAR", "VARCHAR2", "NVARCHAR2",
        "CHARACTER VARYING", "CHARACTER", "UUID", "UNIQUEIDENTIFIER",
        "ENUM", "SET",
    ),
    FieldType.LONG_TEXT: (
        "TEXT", "LONGTEXT", "MEDIUMTEXT", "TINYTEXT", "CLOB", "NCLOB", "NTEXT",
    ),
    FieldType.BINARY: (
        "BLOB", "LONGBLOB", "MEDIUMBLOB", "TINYBLOB", "BINARY", "VARBINARY",
        "BYTEA", "IMAGE", "RAW",
    ),
    FieldType.JSON: ("JSON", "JSONB"),
}

_FIELD_TYPE_BY_NAME = {
    name: field_type
    for field_type, names in _FIELD_TYPE_GROUPS.items()
    for name in names
}

_FIELD_CATEGORY = {
    FieldType.INTEGER: DataTypeCategory.NUMERIC,
    FieldType.DECIMAL: DataTypeCategory.NUMERIC,
    FieldType.BOOLEAN: DataTypeCategory.BOOLEAN,
    FieldType.DATE: DataTypeCategory.DATETIME,
    FieldType.TIME: DataTypeCategory.DATETIME,
    FieldType.DATETIME: DataTypeCategory.DATETIME,
    FieldType.TEXT: DataTypeCategory.STRING,
    FieldType.LONG_TEXT: DataTypeCategory.STRING,
    FieldType.BINARY: DataTypeCategory.BINARY,
    FieldType.JSON: DataTypeCategory.STRUCTURED,
    FieldType.UNKNOWN: DataTypeCategory.OTHER,
}


@dataclass(frozen=True)
class ColumnMeta:
    name: str
    db_type: str
    field_type: FieldType
    nullable: bool
    is_primary_key: bool
    ordinal: int


class FilterOperator(str, Enum):
    EQUAL = "="
    NOT_EQUAL = "<>"
    LESS_THAN = "<"
    LESS_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_OR_EQUAL = ">="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"

    @property
    def takes_value(self) -> bool:
        return self not in (FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL)


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class FilterCondition:
    column: str
    operator: FilterOperator
    value: str = ""


@dataclass(frozen=True)
class SortCondition:
    column: str
    direction: SortDirection = SortDirection.ASC


@dataclass
class TableDataRequest:
    database: str
    table: str
    schema: str | None = None
    page: int = 1
    page_size: int = 100
    filters: list[FilterCondition] = field(default_factory=list)
    sorts: list[SortCondition] = field(default_factory=list)
    where_clause: str | None = None
    order_by_clause: str | None = None


@dataclass
class TableDataResponse:
    table: str
    columns: list[ColumnMeta]
    rows: list[list[str | None]]
    total_count: int
    page: int
    page_size: int
    primary_key_indices: list[int]
    unique_key_indices: list[int]
    executed_sql: str
    duration_ms: int


class RowChangeKind(str, Enum):
    ADDED = "Added"
    UPDATED = "Updated"
    DELETED = "Deleted"


@dataclass(frozen=True)
class TableCellChange:
    column_index: int
    column_name: str
    old_value: str | None
    new_value: str | None


@dataclass
class TableRowChange:
    kind: RowChangeKind
    # Added rows carry the full new row; Updated/Deleted carry the original row.
    data: list[str | None] = field(default_factory=list)
    changes: list[TableCellChange] = field(default_factory=list)


@dataclass
class TableSaveRequest:
    database: str
    table: str
    column_names: list[str]
    primary_key_indices: list[int] = field(default_factory=list)
    unique_key_indices: list[int] = field(default_factory=list)
    changes: list[TableRowChange] = field(default_factory=list)
    schema: str | None = None


@dataclass
class TableSaveResponse:
    success_count: int
    errors: list[str] = field(default_factory=list)


# --- completion dictionaries -----------------------------------------------


@dataclass
class SqlCompletionInfo:
    keywords: list[tuple[str, str]] = field(default_factory=list)
    functions: list[tuple[str, str]] = field(default_factory=list)
    operators: list[tuple[str, str]] = field(default_factory=list)
    data_types: list[tuple[str, str]] = field(default_factory=list)
    snippets: list[tuple[str, str, str]] = field(default_factory=list)


@dataclass
class SqlSchema:
    """User schema known to the editor: tables, global columns, per-table columns."""

    tables: list[tuple[str, str]] = field(default_factory=list)
    columns: list[tuple[str, str]] = field(default_factory=list)
    columns_by_table: dict[str, list[tuple[str, str]]] = field(default_factory=dict)

    def add_table(self, name: str, columns: list[str], doc: str = "") -> None:
        self.tables.append((name, doc))
        entries = [(column, "") for column in columns]
        self.columns_by_table[name] = entries
        seen = {label for label, _ in self.columns}
        for entry in entries:
            if entry[0] not in seen:
                seen.add(entry[0])
                self.columns.append(entry)

    def columns_for(self, table: str) -> list[tuple[str, str]]:
        found = self.columns_by_table.get(table)
        if found is not None:
            return found
        lowered = table.lower()
        for name, entries in self.columns_by_table.items():
            if name.lower() == lowered:
                return entries
        return []

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> SqlSchema:
        schema = cls()
        for table, columns in (payload.get("tables") or {}).items():
            schema.add_table(str(table), [str(c) for c in columns or []])
        return schema
