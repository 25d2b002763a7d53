from __future__ import annotations

import gzip
import warnings
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from .config import strict_boundaries, worker_count
from .debug_log import trace_log
from .parser import parse_log
from .schema import ActionRecord

_GZIP_MAGIC = b"\x1f\x8b"
_LABEL_TRUNCATE_LEN = 20

LoadProgressCallback = Callable[[str, int, int], None]


class AmbiguousProducerWarning(UserWarning):
    """More than one action in a log declares the same output path."""


@dataclass(frozen=True, slots=True)
class LogIndex:
    source: str
    label: str
    outputs: Mapping[str, ActionRecord]
    ambiguous_outputs: frozenset[str] = frozenset()

    def get(self, artifact: str) -> ActionRecord | None:
        return self.outputs.get(artifact)

    def __contains__(self, artifact: object) -> bool:
        return artifact in self.outputs

    def __len__(self) -> int:
        return len(self.outputs)


def build_index(records: Iterable[ActionRecord], *, source: str = "", label: str = "") -> LogIndex:
    outputs: dict[str, ActionRecord] = {}
    ambiguous: set[str] = set()
    for record in records:
        for output in record.declared_outputs:
            if output in outputs:
                ambiguous.add(output)
            outputs[output] = record
    return LogIndex(
        source=str(source),
        label=str(label or source),
        outputs=MappingProxyType(outputs),
        ambiguous_outputs=frozenset(ambiguous),
    )


def warn_on_ambiguous_outputs(index: LogIndex) -> bool:
    """Warn if some outputs in `index` were produced by more than one action.

    Returns True if a warning was emitted.
    """

    if not index.ambiguous_outputs:
        return False
    listed = "\n".join(f"  - {path}" for path in sorted(index.ambiguous_outputs))
    warnings.warn(
        f"Some outputs in `{index.label}` appear to be produced by multiple actions:\n{listed}",
        category=AmbiguousProducerWarning,
        stacklevel=2,
    )
    return True


def log_labels(paths: Sequence[Path | str]) -> list[str]:
    """Display names for `paths`: basenames when some path is long and basenames are unique."""

    texts = [str(path) for path in paths]
    names = [Path(text).name for text in texts]
    truncate = any(len(text) > _LABEL_TRUNCATE_LEN for text in texts) and len(set(names)) == len(texts)
    return names if truncate else texts


def read_log_bytes(path: Path) -> bytes:
    raw = Path(path).read_bytes()
    if raw.startswith(_GZIP_MAGIC):
        raw = gzip.decompress(raw)
    return raw


def load_log(
    path: Path,
    *,
    label: str | None = None,
    strict: bool | None = None,
    progress: LoadProgressCallback | None = None,
) -> LogIndex:
    path = Path(path)
    label_text = str(label) if label is not None else str(path)
    use_strict = strict_boundaries() if strict is None else bool(strict)

    def _report(offset: int, total: int) -> None:
        if progress is not None:
            progress(label_text, offset, total)

    data = read_log_bytes(path)
    records = parse_log(data, strict=use_strict, progress=_report, source=str(path))
    index = build_index(records, source=str(path), label=label_text)
    trace_log(
        "log_loaded",
        label=label_text,
        size=len(data),
        records=len(records),
        outputs=len(index),
        ambiguous=len(index.ambiguous_outputs),
    )
    return index


def load_logs(
    paths: Sequence[Path | str],
    *,
    strict: bool | None = None,
    workers: int | None = None,
    progress: LoadProgressCallback | None = None,
    warn_ambiguous: bool = True,
) -> list[LogIndex]:
    """Load and index every log concurrently, preserving the order of `paths`.

    A parse failure in any log propagates; there is no partial session.
    """

    labels = log_labels(paths)
    if not paths:
        return []
    max_workers = max(1, min(int(workers or worker_count()), len(paths)))
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [
            pool.submit(load_log, Path(path), label=label, strict=strict, progress=progress)
            for path, label in zip(paths, labels)
        ]
        indexes = [future.result() for future in futures]

    if warn_ambiguous:
        for index in indexes:
            if index.ambiguous_outputs:
                trace_log("ambiguous_outputs", label=index.label, count=len(index.ambiguous_outputs))
                warn_on_ambiguous_outputs(index)
    return indexes


__all__ = [
    "AmbiguousProducerWarning",
    "LoadProgressCallback",
    "LogIndex",
    "build_index",
    "load_log",
    "load_logs",
    "log_labels",
    "read_log_bytes",
    "warn_on_ambiguous_outputs",
]
