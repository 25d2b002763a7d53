"""Follow mismatched inputs from one artifact across the whole action graph.

An output can differ between builds because one of its inputs differed. The
walker compares the root's action, then every action that produced one of its
mismatched inputs, and so on, folding everything into one aggregate.

Each artifact is a unit of work on a thread pool. The visited set and the
aggregate are the only shared mutable state; each check, insert or merge takes
the lock once. Two workers can both see an artifact as unvisited and compare
it twice. That only repeats a pure comparison whose findings are unioned into
sets, so results do not depend on scheduling.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from threading import Lock

from .compare import MismatchSets, OriginKey, find_mismatched
from .config import worker_count
from .debug_log import trace_log
from .index import LogIndex
from .schema import ActionRecord


def lookup_all(indexes: Sequence[LogIndex], artifact: str) -> tuple[ActionRecord, ...] | None:
    """The artifact's action from every log, or None if any log lacks it."""

    records: list[ActionRecord] = []
    for index in indexes:
        record = index.get(artifact)
        if record is None:
            return None
        records.append(record)
    return tuple(records)


class _WalkState:
    def __init__(self) -> None:
        self._lock = Lock()
        self._visited: set[str] = set()
        self._env: set[str] = set()
        self._inputs: set[str] = set()
        self._outputs: set[str] = set()
        self._origins: dict[OriginKey, set[str]] = {}
        self.compared = 0

    def is_visited(self, artifact: str) -> bool:
        with self._lock:
            return artifact in self._visited

    def mark_visited(self, artifact: str) -> None:
        with self._lock:
            self._visited.add(artifact)

    def merge(self, result: MismatchSets) -> None:
        with self._lock:
            self._env.update(result.env)
            self._outputs.update(result.outputs)
            self._inputs.update(result.inputs)
            for key, artifacts in result.origins.items():
                self._origins.setdefault(key, set()).update(artifacts)
            self.compared += 1

    def visited_count(self) -> int:
        with self._lock:
            return len(self._visited)

    def result(self) -> MismatchSets:
        with self._lock:
            return MismatchSets(
                env=frozenset(self._env),
                inputs=frozenset(self._inputs),
                outputs=frozenset(self._outputs),
                origins={key: frozenset(value) for key, value in self._origins.items()},
            )


class ProvenanceWalker:
    def __init__(self, indexes: Sequence[LogIndex], *, workers: int | None = None) -> None:
        self.indexes = tuple(indexes)
        self.workers = max(1, int(workers if workers is not None else worker_count()))

    def _visit(self, artifact: str, state: _WalkState) -> tuple[str, ...]:
        if state.is_visited(artifact):
            return ()

        records = lookup_all(self.indexes, artifact)
        if records is None:
            return ()

        state.mark_visited(artifact)
        result = find_mismatched(records, artifact=artifact)
        state.merge(result)
        trace_log(
            "walk_node",
            artifact=artifact,
            env=len(result.env),
            inputs=len(result.inputs),
            outputs=len(result.outputs),
        )
        return tuple(sorted(result.inputs))

    def walk(self, root: str) -> MismatchSets:
        state = _WalkState()
        trace_log("walk_start", root=root, workers=self.workers, logs=len(self.indexes))

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            pending: set[Future[tuple[str, ...]]] = {pool.submit(self._visit, root, state)}
            while pending:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    for child in future.result():
                        pending.add(pool.submit(self._visit, child, state))

        result = state.result()
        trace_log(
            "walk_done",
            root=root,
            visited=state.visited_count(),
            compared=state.compared,
            env=len(result.env),
            inputs=len(result.inputs),
            outputs=len(result.outputs),
        )
        return result


def transitive_compare(root: str, indexes: Sequence[LogIndex], *, workers: int | None = None) -> MismatchSets:
    return ProvenanceWalker(indexes, workers=workers).walk(root)


__all__ = [
    "ProvenanceWalker",
    "lookup_all",
    "transitive_compare",
]
