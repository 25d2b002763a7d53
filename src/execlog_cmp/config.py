from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "execlog-cmp"

_TRUE_VALUES = {"1", "true", "on", "yes"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return bool(default)
    return str(raw).strip().lower() in _TRUE_VALUES


def default_workers() -> int:
    return min(32, (os.cpu_count() or 1) + 4)


def worker_count() -> int:
    raw = os.environ.get("EXECLOG_CMP_WORKERS")
    if raw is None:
        return default_workers()
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default_workers()
    if value < 1:
        return default_workers()
    return value


def strict_boundaries() -> bool:
    return _env_flag("EXECLOG_CMP_STRICT_BOUNDARIES")


def trace_enabled() -> bool:
    return _env_flag("EXECLOG_CMP_TRACE")


def _app_dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False)


def default_trace_dir() -> Path:
    return Path(_app_dirs().user_log_path)


def trace_dir() -> Path:
    override = os.environ.get("EXECLOG_CMP_TRACE_DIR")
    if override:
        return Path(override).expanduser().resolve()
    return default_trace_dir().resolve()


__all__ = [
    "APP_NAME",
    "default_trace_dir",
    "default_workers",
    "strict_boundaries",
    "trace_dir",
    "trace_enabled",
    "worker_count",
]
