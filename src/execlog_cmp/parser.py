"""Split and decode execution logs.

Execution logs are concatenated JSON objects with no separator:

    {"listedOutputs": ["a"], ...}{"listedOutputs": ["b"], ...}

The default splitter treats every `}{` byte pair as a document boundary. It is
fast and matches what the build tool emits, but a string value containing a
literal `}{` (e.g. an odd artifact path) splits a record in two and the load
fails. `strict=True` switches to a tokenizer that tracks string/escape state
and brace depth instead.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator

import msgspec

from .schema import ActionRecord, decode_record

ProgressCallback = Callable[[int, int], None]

_BOUNDARY = b"}{"
_PROGRESS_STEP = 10_000
_STRUCTURAL_RE = re.compile(rb'[{}"]')
_STRING_END_RE = re.compile(rb'["\\]')


class LogParseError(ValueError):
    def __init__(self, message: str, *, source: str | None = None, index: int = -1, offset: int = -1) -> None:
        super().__init__(message)
        self.source = source
        self.index = int(index)
        self.offset = int(offset)


class _ProgressReporter:
    def __init__(self, total: int, callback: ProgressCallback | None) -> None:
        self.total = int(total)
        self.callback = callback
        self._next = _PROGRESS_STEP

    def advance(self, offset: int) -> None:
        if self.callback is None or offset < self._next:
            return
        self.callback(int(offset), self.total)
        self._next = (int(offset) // _PROGRESS_STEP + 1) * _PROGRESS_STEP

    def finish(self) -> None:
        if self.callback is not None:
            self.callback(self.total, self.total)


def _heuristic_spans(data: bytes, progress: _ProgressReporter) -> Iterator[tuple[int, int]]:
    prev = 0
    pos = data.find(_BOUNDARY)
    while pos != -1:
        yield prev, pos + 1
        prev = pos + 1
        progress.advance(prev)
        pos = data.find(_BOUNDARY, prev)
    yield prev, len(data)


def _skip_string(data: bytes, pos: int) -> int:
    # `pos` is just past the opening quote; returns the offset just past the closing one.
    while True:
        match = _STRING_END_RE.search(data, pos)
        if match is None:
            return len(data)
        pos = match.end()
        if match.group() == b"\\":
            pos += 1
            continue
        return pos


def _strict_spans(data: bytes, progress: _ProgressReporter) -> Iterator[tuple[int, int]]:
    total = len(data)
    start = 0
    depth = 0
    pos = 0
    emitted = False
    while True:
        match = _STRUCTURAL_RE.search(data, pos)
        if match is None:
            break
        token = match.group()
        pos = match.end()
        if token == b'"':
            pos = _skip_string(data, pos)
            continue
        if token == b"{":
            depth += 1
            continue
        depth -= 1
        if depth == 0:
            yield start, pos
            emitted = True
            start = pos
            progress.advance(pos)

    if not emitted or data[start:].strip():
        yield start, total


def document_spans(
    data: bytes,
    *,
    strict: bool = False,
    progress: ProgressCallback | None = None,
) -> Iterator[tuple[int, int]]:
    """Yield `(start, end)` byte offsets of each document in `data`."""

    reporter = _ProgressReporter(len(data), progress)
    spans = _strict_spans(data, reporter) if strict else _heuristic_spans(data, reporter)
    yield from spans
    reporter.finish()


def split_documents(
    data: bytes,
    *,
    strict: bool = False,
    progress: ProgressCallback | None = None,
) -> Iterator[bytes]:
    for start, end in document_spans(data, strict=strict, progress=progress):
        yield data[start:end]


def parse_log(
    data: bytes,
    *,
    strict: bool = False,
    progress: ProgressCallback | None = None,
    source: str | None = None,
) -> list[ActionRecord]:
    """Decode every action record in `data`.

    Raises `LogParseError` if any document fails to decode; no partial result
    is returned.
    """

    view = memoryview(data)
    records: list[ActionRecord] = []
    for index, (start, end) in enumerate(document_spans(data, strict=strict, progress=progress)):
        try:
            records.append(decode_record(view[start:end]))
        except (msgspec.DecodeError, msgspec.ValidationError) as exc:
            where = f"{source}: " if source else ""
            raise LogParseError(
                f"{where}invalid action record #{index} at byte {start}: {exc}",
                source=source,
                index=index,
                offset=start,
            ) from exc
    return records


__all__ = [
    "LogParseError",
    "ProgressCallback",
    "document_spans",
    "parse_log",
    "split_documents",
]
