"""Opt-in trace log of load and walk events.

One file per command run, one line per event:

    2026-01-02T03:04:05.678+00:00 event=walk_node artifact=gen/a.o env=0 inputs=2 outputs=1

Values containing whitespace, quotes or `=` are written as JSON strings so
every line splits back into fields. Nothing is written until `init_trace_log`.
"""

from __future__ import annotations

import datetime as dt
import os
import re
from pathlib import Path
from threading import Lock
from typing import IO

import msgspec

_PLAIN_VALUE = re.compile(r'[^\s"=]*')


class _TraceState:
    def __init__(self) -> None:
        self.lock = Lock()
        self.path: Path | None = None
        self.handle: IO[str] | None = None


_STATE = _TraceState()


def _format_value(value: object) -> str:
    text = str(value)
    if _PLAIN_VALUE.fullmatch(text):
        return text
    return msgspec.json.encode(text).decode("utf-8")


def format_trace_line(event: str, fields: dict[str, object]) -> str:
    stamp = dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds")
    parts = [stamp, f"event={_format_value(str(event).strip())}"]
    parts.extend(f"{key}={_format_value(fields[key])}" for key in sorted(fields))
    return " ".join(parts) + "\n"


def trace_log_path() -> Path | None:
    with _STATE.lock:
        return _STATE.path


def init_trace_log(*, base_dir: Path, command: str, log_count: int, workers: int) -> Path:
    """Start tracing to a fresh file under `base_dir`, replacing any open trace."""

    command_name = str(command).strip().lower() or "unknown"
    stamp = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%dT%H%M%S.%fZ")
    path = Path(base_dir) / f"execlog-cmp-{command_name}-pid{os.getpid()}-{stamp}.log"
    path.parent.mkdir(parents=True, exist_ok=True)

    handle = path.open("a", encoding="utf-8")
    with _STATE.lock:
        previous = _STATE.handle
        _STATE.path = path
        _STATE.handle = handle
    if previous is not None:
        previous.close()

    trace_log("init", command=command_name, log_count=int(log_count), workers=int(workers))
    return path


def trace_log(event: str, **fields: object) -> None:
    with _STATE.lock:
        handle = _STATE.handle
        if handle is None:
            return
        handle.write(format_trace_line(event, fields))
        handle.flush()


def close_trace_log() -> None:
    with _STATE.lock:
        handle = _STATE.handle
        _STATE.path = None
        _STATE.handle = None
    if handle is not None:
        handle.close()


__all__ = [
    "close_trace_log",
    "format_trace_line",
    "init_trace_log",
    "trace_log",
    "trace_log_path",
]
