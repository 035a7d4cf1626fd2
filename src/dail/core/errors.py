"""Error taxonomy shared by connections, plugins and the global state."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DbErrorRecord:
    kind: str
    message: str
    code: str | None = None


class DbError(Exception):
    kind = "InternalError"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def to_record(self) -> DbErrorRecord:
        return DbErrorRecord(kind=self.kind, message=self.message, code=self.code)


class ConfigError(DbError):
    kind = "ConfigError"


class ConnectFailedError(DbError):
    kind = "ConnectFailed"


class DisconnectedError(DbError):
    kind = "Disconnected"


class QueryFailedError(DbError):
    kind = "QueryFailed"

    def __init__(
        self, message: str, code: str | None = None, state: str | None = None
    ) -> None:
        super().__init__(message, code)
        self.state = state


class CancelledError(DbError):
    kind = "Cancelled"

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)


class UnsupportedOperationError(DbError):
    kind = "UnsupportedOperation"


class InternalError(DbError):
    kind = "InternalError"


def error_record(exc: BaseException) -> DbErrorRecord:
    """Structured record for any exception reaching the UI boundary."""
    if isinstance(exc, DbError):
        return exc.to_record()
    return DbErrorRecord(kind=InternalError.kind, message=f"{type(exc).__name__}: {exc}")
