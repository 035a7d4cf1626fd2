from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable

from .utils import env_flag, now_iso


Logger = Callable[[str], None]


def null_logger(msg: str) -> None:
    return None


def _stamp(msg: str) -> str:
    return f"{now_iso()} {msg}"


def file_logger(log_dir: Path, name: str) -> Logger:
    log_path = Path(log_dir) / f"{name}.log"

    def _write_log(msg: str) -> None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(_stamp(msg) + "\n")

    return _write_log


def stderr_logger(prefix: str) -> Logger:
    def _write(msg: str) -> None:
        print(f"[{prefix}] {_stamp(msg)}", file=sys.stderr, flush=True)

    return _write


def default_logger(name: str) -> Logger:
    log_dir = os.environ.get("DAIL_LOG_DIR", "").strip()
    if log_dir:
        return file_logger(Path(log_dir), name)
    if env_flag("DAIL_DEBUG"):
        return stderr_logger(name)
    return null_logger
