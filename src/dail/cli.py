from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import yaml

from dail.core.config import load_connection_configs
from dail.core.errors import DbError
from dail.core.executor import ErrorResult, ExecResult, QueryResult, ScriptResult
from dail.core.manager import GlobalDbState
from dail.core.plugins import get_plugin
from dail.core.sql_editor.completion import SqlCompletionProvider
from dail.core.sql_format import compress_sql, format_sql
from dail.core.types import SqlSchema
from dail.core.utils import json_dumps


def read_sql_arg(value: str) -> str:
    """``@path`` reads the SQL from a file; anything else is the SQL itself."""
    if value.startswith("@"):
        return Path(value[1:]).read_text(encoding="utf-8")
    return value


def load_schema(path: str | None) -> SqlSchema:
    if not path:
        return SqlSchema()
    content = Path(path).read_text(encoding="utf-8")
    if path.endswith(".json"):
        payload = json.loads(content)
    else:
        payload = yaml.safe_load(content)
    return SqlSchema.from_dict(payload or {})


def result_payload(result: QueryResult | ExecResult | ErrorResult) -> dict[str, Any]:
    if isinstance(result, QueryResult):
        kind = "query"
    elif isinstance(result, ExecResult):
        kind = "exec"
    else:
        kind = "error"
    payload = asdict(result)
    payload["type"] = kind
    return payload


def _state_for(config_path: str) -> GlobalDbState:
    state = GlobalDbState()
    for config in load_connection_configs(Path(config_path)):
        state.register_connection(config)
    return state


def cmd_connections(config_path: str) -> None:
    configs = load_connection_configs(Path(config_path))
    print(json_dumps([c.to_dict(redact=True) for c in configs]))


def cmd_exec(config_path: str, connection_id: str, sql: str) -> int:
    state = _state_for(config_path)

    async def _run() -> ScriptResult:
        try:
            return await state.execute_script(connection_id, read_sql_arg(sql))
        finally:
            await state.close()

    result = asyncio.run(_run())
    print(
        json_dumps(
            {
                "cancelled": result.cancelled,
                "errors": result.error_count,
                "results": [result_payload(r) for r in result.results],
            }
        )
    )
    return 1 if result.error_count else 0


def cmd_tables(config_path: str, connection_id: str, database: str | None) -> None:
    state = _state_for(config_path)

    async def _run() -> list[dict[str, Any]]:
        try:
            target = database or state.get_config(connection_id).database or ""
            if not target:
                databases = await state.list_databases(connection_id)
                target = databases[0] if databases else ""
            return [asdict(t) for t in await state.list_tables(connection_id, target)]
        finally:
            await state.close()

    print(json_dumps(asyncio.run(_run())))


def cmd_complete(dialect: str, sql: str, offset: int | None, schema_path: str | None) -> None:
    text = read_sql_arg(sql)
    cursor = len(text.encode("utf-8")) if offset is None else offset
    provider = SqlCompletionProvider(
        schema=load_schema(schema_path),
        dialect_info=get_plugin(dialect).get_completion_info(),
    )
    items = provider.completions(text, cursor)
    print(json_dumps([item.to_lsp(text) for item in items]))


def cmd_format(sql: str, compress: bool) -> None:
    text = read_sql_arg(sql)
    print(compress_sql(text) if compress else format_sql(text))


def main() -> None:
    parser = argparse.ArgumentParser(prog="dail")
    sub = parser.add_subparsers(dest="command", required=True)

    conns = sub.add_parser("connections")
    conns.add_argument("--config", required=True)

    exe = sub.add_parser("exec")
    exe.add_argument("connection_id")
    exe.add_argument("sql", help="SQL text, or @path to read it from a file")
    exe.add_argument("--config", required=True)

    tables = sub.add_parser("tables")
    tables.add_argument("connection_id")
    tables.add_argument("--database", default=None)
    tables.add_argument("--config", required=True)

    complete = sub.add_parser("complete")
    complete.add_argument("dialect")
    complete.add_argument("sql")
    complete.add_argument("--offset", type=int, default=None, help="cursor UTF-8 byte offset")
    complete.add_argument("--schema", default=None)

    fmt = sub.add_parser("format")
    fmt.add_argument("sql")
    fmt.add_argument("--compress", action="store_true")

    args = parser.parse_args()

    try:
        if args.command == "connections":
            cmd_connections(args.config)
        elif args.command == "exec":
            raise SystemExit(cmd_exec(args.config, args.connection_id, args.sql))
        elif args.command == "tables":
            cmd_tables(args.config, args.connection_id, args.database)
        elif args.command == "complete":
            cmd_complete(args.dialect, args.sql, args.offset, args.schema)
        elif args.command == "format":
            cmd_format(args.sql, bool(args.compress))
        else:
            raise SystemExit(2)
    except DbError as exc:
        print(json_dumps(asdict(exc.to_record())))
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
