from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .compare import MismatchKind, MismatchSets, find_mismatched, mismatch_frontier
from .config import worker_count
from .index import LoadProgressCallback, LogIndex, load_logs
from .schema import ActionRecord, Digest
from .walker import lookup_all, transitive_compare


class ArtifactNotFoundError(KeyError):
    def __init__(self, artifact: str, missing: Sequence[str] = ()) -> None:
        super().__init__(artifact)
        self.artifact = str(artifact)
        self.missing = tuple(missing)

    def __str__(self) -> str:
        if self.missing:
            return f"`{self.artifact}` not found in: {', '.join(self.missing)}"
        return f"`{self.artifact}` not found in 1 or more execution logs"


@dataclass(frozen=True, slots=True)
class FieldValue:
    label: str
    value: str | Digest | None


class ExecLogSession:
    """Queries over a fixed set of loaded execution logs.

    Indexes are read-only after construction and shared by every query,
    including concurrent walker tasks.
    """

    def __init__(self, indexes: Sequence[LogIndex], *, workers: int | None = None) -> None:
        if not indexes:
            raise ValueError("at least one execution log is required")
        self.indexes = tuple(indexes)
        self.workers = int(workers) if workers is not None else worker_count()

    @classmethod
    def from_paths(
        cls,
        paths: Sequence[Path | str],
        *,
        strict: bool | None = None,
        workers: int | None = None,
        progress: LoadProgressCallback | None = None,
    ) -> ExecLogSession:
        indexes = load_logs(paths, strict=strict, workers=workers, progress=progress)
        return cls(indexes, workers=workers)

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(index.label for index in self.indexes)

    def artifacts(self) -> list[str]:
        """Output paths present in every log, sorted."""

        common = set(self.indexes[0].outputs)
        for index in self.indexes[1:]:
            common.intersection_update(index.outputs)
        return sorted(common)

    def lookup(self, artifact: str) -> tuple[ActionRecord, ...]:
        records = lookup_all(self.indexes, artifact)
        if records is None:
            missing = [index.label for index in self.indexes if artifact not in index]
            raise ArtifactNotFoundError(artifact, missing)
        return records

    def compare(self, artifact: str) -> MismatchSets:
        return find_mismatched(self.lookup(artifact), artifact=artifact)

    def transitive_compare(self, artifact: str) -> MismatchSets:
        return transitive_compare(artifact, self.indexes, workers=self.workers)

    def edges(self, artifact: str) -> MismatchSets:
        return mismatch_frontier(self.transitive_compare(artifact))

    def equivalent(self, artifact: str) -> bool:
        records = self.lookup(artifact)
        return all(record == records[0] for record in records[1:])

    def field_values(self, kind: MismatchKind, key: str, artifact: str) -> list[FieldValue]:
        """What each log recorded for `key` in the action producing `artifact`."""

        out: list[FieldValue] = []
        for index, record in zip(self.indexes, self.lookup(artifact)):
            value: str | Digest | None = None
            if kind is MismatchKind.ENV:
                value = next((b.value for b in record.environment_bindings if b.name == key), None)
            else:
                files = record.inputs if kind is MismatchKind.INPUT else record.actual_outputs
                value = next((item.digest for item in files if item.path == key), None)
            out.append(FieldValue(label=index.label, value=value))
        return out


__all__ = [
    "ArtifactNotFoundError",
    "ExecLogSession",
    "FieldValue",
]
