"""Export result grids to files and load files into tables."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Sequence

import pandas as pd

from .executor import ExecOptions, QueryResult, ScriptResult
from .plugins import DatabasePlugin, build_table_change_statements
from .types import (
    RowChangeKind,
    TableDataResponse,
    TableRowChange,
    TableSaveRequest,
    TableSaveResponse,
)

if TYPE_CHECKING:
    from .manager import GlobalDbState


EXPORT_FORMATS = ("csv", "json", "sql")


def result_frame(result: QueryResult | TableDataResponse) -> pd.DataFrame:
    if isinstance(result, TableDataResponse):
        columns = [c.name for c in result.columns]
    else:
        columns = list(result.columns)
    return pd.DataFrame(result.rows, columns=columns, dtype=object)


def insert_statements(
    plugin: DatabasePlugin,
    table: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[str | None]],
    database: str = "",
) -> list[str]:
    request = TableSaveRequest(
        database=database,
        table=table,
        column_names=list(columns),
        changes=[TableRowChange(RowChangeKind.ADDED, data=list(row)) for row in rows],
    )
    return build_table_change_statements(plugin, request)


def export_table_data(
    result: QueryResult | TableDataResponse,
    fmt: str,
    path: Path,
    plugin: DatabasePlugin | None = None,
    table: str | None = None,
) -> Path:
    """Write ``result`` as csv, json (records) or sql INSERTs and return the path."""
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format {fmt!r}; expected one of {', '.join(EXPORT_FORMATS)}")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame = result_frame(result)
    if fmt == "csv":
        frame.to_csv(path, index=False)
    elif fmt == "json":
        frame.to_json(path, orient="records", force_ascii=False)
    else:
        if plugin is None:
            raise ValueError("sql export needs the dialect plugin for identifier quoting")
        target = table or getattr(result, "table", None) or getattr(result, "table_name", None)
        if not target:
            raise ValueError("sql export needs a table name")
        statements = insert_statements(plugin, target, list(frame.columns), result.rows)
        path.write_text("".join(f"{stmt};\n" for stmt in statements), encoding="utf-8")
    return path


async def import_sql_file(
    state: GlobalDbState, connection_id: str, path: Path, opts: ExecOptions | None = None
) -> ScriptResult:
    sql = Path(path).read_text(encoding="utf-8")
    return await state.execute_script(connection_id, sql, opts)


async def import_csv(
    state: GlobalDbState,
    connection_id: str,
    table: str,
    path: Path,
    database: str = "",
    stop_on_error: bool = True,
) -> TableSaveResponse:
    """Insert every CSV row into ``table``; the header row names the columns.

    Cells are read verbatim as text; the literal ``NULL`` becomes SQL NULL.
    """
    frame = pd.read_csv(Path(path), dtype=str, keep_default_na=False)
    request = TableSaveRequest(
        database=database,
        table=table,
        column_names=[str(c) for c in frame.columns],
        changes=[
            TableRowChange(RowChangeKind.ADDED, data=list(row))
            for row in frame.itertuples(index=False, name=None)
        ],
    )
    return await state.apply_table_changes(connection_id, request, stop_on_error=stop_on_error)
