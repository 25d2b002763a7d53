from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from .schema import ActionRecord, FileRecord


class MismatchKind(str, enum.Enum):
    ENV = "env"
    INPUT = "input"
    OUTPUT = "output"


OriginKey = tuple[MismatchKind, str]


@dataclass(frozen=True, slots=True)
class MismatchSets:
    env: frozenset[str] = frozenset()
    inputs: frozenset[str] = frozenset()
    outputs: frozenset[str] = frozenset()
    # Artifacts whose comparison reported each key; not part of equality.
    origins: Mapping[OriginKey, frozenset[str]] = field(default_factory=dict, compare=False)

    @property
    def is_empty(self) -> bool:
        return not (self.env or self.inputs or self.outputs)

    def keys(self, kind: MismatchKind) -> frozenset[str]:
        if kind is MismatchKind.ENV:
            return self.env
        if kind is MismatchKind.INPUT:
            return self.inputs
        return self.outputs

    def origins_of(self, kind: MismatchKind, key: str) -> frozenset[str]:
        return self.origins.get((kind, key), frozenset())


def _first_value_mismatches(rows: Iterable[Iterable[tuple[str, object]]], count: int) -> frozenset[str]:
    # key -> (first value seen, number of records whose value equals it)
    seen: dict[str, tuple[object, int]] = {}
    for row in rows:
        for key, value in row:
            first = seen.get(key)
            if first is None:
                seen[key] = (value, 1)
            elif first[0] == value:
                seen[key] = (first[0], first[1] + 1)
    return frozenset(key for key, (_value, matches) in seen.items() if matches != count)


def _first_per_key(pairs: Iterable[tuple[str, object]]) -> Iterator[tuple[str, object]]:
    # Actions sometimes repeat a key; the first occurrence stands for the record.
    seen: set[str] = set()
    for key, value in pairs:
        if key in seen:
            continue
        seen.add(key)
        yield key, value


def _env_row(record: ActionRecord) -> Iterator[tuple[str, object]]:
    return _first_per_key((binding.name, binding.value) for binding in record.environment_bindings)


def _file_row(files: Sequence[FileRecord]) -> Iterator[tuple[str, object]]:
    return _first_per_key((item.path, item.digest) for item in files)


def find_mismatched(records: Sequence[ActionRecord], *, artifact: str | None = None) -> MismatchSets:
    """Compare one artifact's action across logs.

    A key (env name or path) is mismatched unless every record carries it with
    the same value. When `artifact` is given it is recorded as the origin of
    every reported key.
    """

    count = len(records)
    env = _first_value_mismatches((_env_row(record) for record in records), count)
    inputs = _first_value_mismatches((_file_row(record.inputs) for record in records), count)
    outputs = _first_value_mismatches((_file_row(record.actual_outputs) for record in records), count)

    origins: dict[OriginKey, frozenset[str]] = {}
    if artifact is not None:
        owner = frozenset({str(artifact)})
        for kind, keys in ((MismatchKind.ENV, env), (MismatchKind.INPUT, inputs), (MismatchKind.OUTPUT, outputs)):
            for key in keys:
                origins[(kind, key)] = owner
    return MismatchSets(env=env, inputs=inputs, outputs=outputs, origins=origins)


def mismatch_frontier(result: MismatchSets) -> MismatchSets:
    """Drop paths that are both a mismatched input and a mismatched output.

    Such paths are intermediate nodes of the divergence; what remains
    approximates where it started. Heuristic, not a minimal cut.
    """

    inputs = result.inputs - result.outputs
    outputs = result.outputs - result.inputs
    kept = {
        MismatchKind.ENV: result.env,
        MismatchKind.INPUT: inputs,
        MismatchKind.OUTPUT: outputs,
    }
    origins = {key: value for key, value in result.origins.items() if key[1] in kept[key[0]]}
    return MismatchSets(env=result.env, inputs=inputs, outputs=outputs, origins=origins)


__all__ = [
    "MismatchKind",
    "MismatchSets",
    "OriginKey",
    "find_mismatched",
    "mismatch_frontier",
]
