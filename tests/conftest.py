from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import pytest

from dail.core.config import DbConnectionConfig
from dail.core.connections.base import Connection, RawResult, query_failed
from dail.core.errors import DbError
from dail.core.executor import is_query_statement
from dail.core.logs import null_logger
from dail.core.manager import GlobalDbState
from dail.core.types import DatabaseType


@pytest.fixture()
def sqlite_config(tmp_path: Path) -> DbConnectionConfig:
    return DbConnectionConfig(
        id="local",
        name="local",
        database_type=DatabaseType.SQLITE,
        host=str(tmp_path / "db" / "app.sqlite"),
    )


def make_state(*configs: DbConnectionConfig, **kwargs: Any) -> GlobalDbState:
    state = GlobalDbState(logger=kwargs.pop("logger", null_logger), **kwargs)
    for config in configs:
        state.register_connection(config)
    return state


def server_config(database_type: DatabaseType, connection_id: str = "srv") -> DbConnectionConfig:
    return DbConnectionConfig(
        id=connection_id,
        name=connection_id,
        database_type=database_type,
        host="db.example.test",
        port=1,
        username="app",
        password="secret",
    )


class FakeConnection(Connection):
    """Records every statement and answers from canned ``(needle, columns, rows)``."""

    def __init__(
        self,
        config: DbConnectionConfig,
        settings: dict[str, Any] | None = None,
        logger: Any = None,
        responses: Sequence[tuple[str, Sequence[str], Sequence[Sequence[Any]]]] = (),
        failures: dict[str, str] | None = None,
    ) -> None:
        super().__init__(config, settings=settings, logger=logger or null_logger)
        self.database_type = config.database_type
        self.executed: list[str] = []
        self.responses = list(responses)
        self.failures = dict(failures or {})
        self.opened = 0

    async def _open(self) -> object:
        self.opened += 1
        return object()

    async def _close(self, raw: Any) -> None:
        return None

    async def _run(
        self, sql: str, params: Sequence[Any] | dict[str, Any] | None, max_rows: int | None
    ) -> RawResult:
        self.executed.append(sql)
        for needle, message in self.failures.items():
            if needle in sql:
                raise RuntimeError(message)
        for needle, columns, rows in self.responses:
            if needle in sql:
                return list(columns), [list(row) for row in rows], -1
        if is_query_statement(sql):
            return [], [], -1
        return None, [], 1

    def _translate_error(self, exc: Exception) -> DbError:
        return query_failed(str(exc), code="E1")


def fake_factory(connections: dict[str, FakeConnection]):
    def _factory(config: DbConnectionConfig, settings: dict, logger: Any) -> Connection:
        return connections[config.id]

    return _factory
