from __future__ import annotations

import json
import os
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def json_dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True, default=str)


def escape_literal(value: str) -> str:
    """Double single quotes so ``value`` can sit inside a '...' literal."""
    return value.replace("'", "''")


def quote_literal(value: str) -> str:
    return f"'{escape_literal(value)}'"


def cell_to_text(value: Any) -> str | None:
    """Normalize a driver value to the display form used in result rows."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def truncate_sql(sql: str, limit: int = 200) -> str:
    flat = " ".join(sql.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3] + "..."
