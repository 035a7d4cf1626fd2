"""Connection records and runtime settings.

Connection records arrive from the persistence layer (or a YAML/JSON file when
scripting). They are validated once with JSON Schema and then frozen; settings
are a plain nested dict merged over ``DEFAULT_SETTINGS`` and the ``DAIL_*``
environment variables.
"""

from __future__ import annotations

import json
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validate

from .errors import ConfigError
from .types import DatabaseType
from .utils import env_int


DEFAULT_PORTS: dict[DatabaseType, int] = {
    DatabaseType.MYSQL: 3306,
    DatabaseType.POSTGRESQL: 5432,
    DatabaseType.MSSQL: 1433,
    DatabaseType.ORACLE: 1521,
    DatabaseType.SQLITE: 0,
}

DEFAULT_SETTINGS: dict[str, Any] = {
    "exec": {
        "max_rows": 1000,
        "stop_on_error": True,
        "transactional": False,
    },
    "table_data": {
        "page_size": 100,
    },
    "completion": {
        "max_items": 50,
    },
    "connect": {
        "timeout_s": 10,
    },
}

CONNECTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["id", "database_type"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "database_type": {"type": "string", "minLength": 1},
        "host": {"type": "string"},
        "port": {"type": "integer", "minimum": 0, "maximum": 65535},
        "username": {"type": "string"},
        "password": {"type": "string"},
        "database": {"type": ["string", "null"]},
        "workspace_id": {"type": ["string", "null"]},
        "extra_params": {
            "type": "object",
            "additionalProperties": {"type": ["string", "number", "boolean"]},
        },
    },
    "additionalProperties": False,
}


@dataclass(frozen=True)
class DbConnectionConfig:
    id: str
    name: str
    database_type: DatabaseType
    host: str = ""
    port: int = 0
    username: str = ""
    password: str = ""
    database: str | None = None
    workspace_id: str | None = None
    extra_params: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ConfigError("Connection id must not be empty")
        if self.database_type is DatabaseType.SQLITE:
            if not (self.host or self.database):
                raise ConfigError(f"{self.id}: SQLite connections need a file path")
        elif not self.host:
            raise ConfigError(f"{self.id}: host is required for {self.database_type.value}")

    @property
    def file_path(self) -> str:
        """SQLite file location; either field may carry it."""
        return self.host or self.database or ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> DbConnectionConfig:
        try:
            validate(instance=payload, schema=CONNECTION_SCHEMA)
        except ValidationError as exc:
            raise ConfigError(f"Invalid connection record: {exc.message}") from exc
        db_type = DatabaseType.parse(payload["database_type"])
        port = payload.get("port")
        if port in (None, 0):
            port = DEFAULT_PORTS[db_type]
        return cls(
            id=payload["id"],
            name=payload.get("name") or payload["id"],
            database_type=db_type,
            host=payload.get("host", ""),
            port=int(port),
            username=payload.get("username", ""),
            password=payload.get("password", ""),
            database=payload.get("database"),
            workspace_id=payload.get("workspace_id"),
            extra_params={
                str(k): str(v) for k, v in (payload.get("extra_params") or {}).items()
            },
        )

    def to_dict(self, redact: bool = False) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "database_type": self.database_type.value,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "password": "********" if redact and self.password else self.password,
            "database": self.database,
            "workspace_id": self.workspace_id,
            "extra_params": dict(self.extra_params),
        }


def load_connection_configs(path: Path) -> list[DbConnectionConfig]:
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unreadable connection file {path}: {exc}") from exc
    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("connections", []), list):
        raise ConfigError(f"{path}: expected a mapping with a 'connections' list")
    configs: list[DbConnectionConfig] = []
    seen: set[str] = set()
    for idx, record in enumerate(data.get("connections") or []):
        if not isinstance(record, dict):
            raise ConfigError(f"{path}: connection #{idx} is not a mapping")
        try:
            config = DbConnectionConfig.from_dict(record)
        except ConfigError as exc:
            raise ConfigError(f"{path}: connection #{idx}: {exc.message}") from exc
        if config.id in seen:
            raise ConfigError(f"{path}: duplicate connection id {config.id!r}")
        seen.add(config.id)
        configs.append(config)
    return configs


def merge_settings(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    merged = deepcopy(DEFAULT_SETTINGS)
    _apply_env(merged)
    if overrides:
        _deep_merge(merged, overrides)
    return merged


def _apply_env(settings: dict[str, Any]) -> None:
    settings["exec"]["max_rows"] = env_int("DAIL_MAX_ROWS", settings["exec"]["max_rows"])
    settings["table_data"]["page_size"] = env_int(
        "DAIL_PAGE_SIZE", settings["table_data"]["page_size"]
    )
    settings["connect"]["timeout_s"] = env_int(
        "DAIL_CONNECT_TIMEOUT", settings["connect"]["timeout_s"]
    )


def _deep_merge(target: dict[str, Any], incoming: dict[str, Any]) -> None:
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value
