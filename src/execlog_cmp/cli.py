from __future__ import annotations

import contextlib
import warnings
from collections.abc import Iterator
from pathlib import Path

import msgspec
import typer

from .compare import MismatchKind, MismatchSets
from .config import strict_boundaries, trace_dir, trace_enabled, worker_count
from .debug_log import close_trace_log, init_trace_log
from .index import AmbiguousProducerWarning
from .parser import LogParseError
from .schema import Digest, encode_record
from .session import ArtifactNotFoundError, ExecLogSession

app = typer.Typer(add_completion=False, help="Compare build execution logs.")

_SECTION_TITLES: dict[MismatchKind, str] = {
    MismatchKind.ENV: "Environment Variable Mismatches",
    MismatchKind.INPUT: "Input Mismatches",
    MismatchKind.OUTPUT: "Output Mismatches",
}

_LOGS_ARGUMENT = typer.Argument(..., help="execution logs to compare (2 or more)")
_WORKERS_OPTION = typer.Option(None, "--workers", min=1, help="worker threads (default: $EXECLOG_CMP_WORKERS)")
_STRICT_OPTION = typer.Option(
    False,
    "--strict-boundaries",
    help="split records with a string-aware tokenizer instead of the `}{` heuristic",
)
_TRACE_OPTION = typer.Option(False, "--trace", help="write a trace log (see $EXECLOG_CMP_TRACE_DIR)")


@contextlib.contextmanager
def _trace_session(command: str, *, enabled: bool, log_count: int, workers: int) -> Iterator[None]:
    if not (enabled or trace_enabled()):
        yield
        return
    path = init_trace_log(base_dir=trace_dir(), command=command, log_count=log_count, workers=workers)
    typer.echo(f"trace log: {path}", err=True)
    try:
        yield
    finally:
        close_trace_log()


def _load_session(logs: list[Path], *, workers: int | None, strict: bool) -> ExecLogSession:
    if len(logs) < 2:
        typer.echo("specify 2 or more execution logs to compare!", err=True)
        raise typer.Exit(code=2)

    use_strict = bool(strict) or strict_boundaries()
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", AmbiguousProducerWarning)
        try:
            session = ExecLogSession.from_paths(logs, strict=use_strict, workers=workers)
        except LogParseError as exc:
            typer.echo(f"failed to parse execution log: {exc}", err=True)
            raise typer.Exit(code=1) from exc
        except OSError as exc:
            typer.echo(f"failed to read execution log: {exc}", err=True)
            raise typer.Exit(code=1) from exc

    for warning in caught:
        if issubclass(warning.category, AmbiguousProducerWarning):
            typer.echo(f"[WARNING] {warning.message}\n", err=True)
    return session


def _lookup_or_exit(session: ExecLogSession, artifact: str) -> None:
    try:
        session.lookup(artifact)
    except ArtifactNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _format_value(value: str | Digest | None) -> str:
    if value is None:
        return "<not present>"
    if isinstance(value, Digest):
        return f"{{Bytes: {int(value.size_bytes):10}, {value.hash_function_name}: {value.hash.hex()}}}"
    return str(value)


def _format_key(kind: MismatchKind, key: str) -> str:
    if kind is MismatchKind.ENV:
        return f"${key}"
    return f"`{key}`"


def render_mismatches(session: ExecLogSession, result: MismatchSets) -> str:
    lines: list[str] = []
    for kind in (MismatchKind.ENV, MismatchKind.INPUT, MismatchKind.OUTPUT):
        keys = sorted(result.keys(kind))
        if not keys:
            continue
        lines.append("")
        lines.append(f"{_SECTION_TITLES[kind]}:")
        for key in keys:
            lines.append(f"  {_format_key(kind, key)}")
            origins = sorted(result.origins_of(kind, key))
            if not origins:
                continue
            for row in session.field_values(kind, key, origins[0]):
                lines.append(f"    {row.label:>20.20}: {_format_value(row.value)}")
    if not lines:
        return "No mismatches!"
    return "\n".join(lines)


@app.command("cmp")
def cmp_command(
    artifact: str = typer.Argument(..., help="output path to compare"),
    logs: list[Path] = _LOGS_ARGUMENT,
    workers: int | None = _WORKERS_OPTION,
    strict: bool = _STRICT_OPTION,
    trace: bool = _TRACE_OPTION,
) -> None:
    """Compare the action that produced ARTIFACT in every log."""

    with _trace_session("cmp", enabled=trace, log_count=len(logs), workers=workers or worker_count()):
        session = _load_session(logs, workers=workers, strict=strict)
        try:
            result = session.compare(artifact)
        except ArtifactNotFoundError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
        typer.echo(render_mismatches(session, result))


def _transitive(
    command: str,
    artifact: str,
    logs: list[Path],
    *,
    workers: int | None,
    strict: bool,
    trace: bool,
    frontier: bool,
) -> None:
    with _trace_session(command, enabled=trace, log_count=len(logs), workers=workers or worker_count()):
        session = _load_session(logs, workers=workers, strict=strict)
        _lookup_or_exit(session, artifact)
        result = session.edges(artifact) if frontier else session.transitive_compare(artifact)
        typer.echo(render_mismatches(session, result))


@app.command("tcmp")
def tcmp_command(
    artifact: str = typer.Argument(..., help="output path to compare"),
    logs: list[Path] = _LOGS_ARGUMENT,
    workers: int | None = _WORKERS_OPTION,
    strict: bool = _STRICT_OPTION,
    trace: bool = _TRACE_OPTION,
) -> None:
    """Compare ARTIFACT and, recursively, every mismatched input."""

    _transitive("tcmp", artifact, logs, workers=workers, strict=strict, trace=trace, frontier=False)


app.command("transitive-cmp", help="Alias of `tcmp`.")(tcmp_command)


@app.command("edges")
def edges_command(
    artifact: str = typer.Argument(..., help="output path to compare"),
    logs: list[Path] = _LOGS_ARGUMENT,
    workers: int | None = _WORKERS_OPTION,
    strict: bool = _STRICT_OPTION,
    trace: bool = _TRACE_OPTION,
) -> None:
    """Attempt to find the inputs that made ARTIFACT diverge; may not be accurate."""

    _transitive("edges", artifact, logs, workers=workers, strict=strict, trace=trace, frontier=True)


@app.command("view")
def view_command(
    artifact: str = typer.Argument(..., help="output path to show"),
    logs: list[Path] = _LOGS_ARGUMENT,
    workers: int | None = _WORKERS_OPTION,
    strict: bool = _STRICT_OPTION,
) -> None:
    """Print the action record for ARTIFACT from every log."""

    session = _load_session(logs, workers=workers, strict=strict)
    try:
        records = session.lookup(artifact)
    except ArtifactNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    if session.equivalent(artifact):
        typer.echo(f"all executions of `{artifact}` were equivalent")
    for label, record in zip(session.labels, records):
        pretty = msgspec.json.format(encode_record(record), indent=2).decode("utf-8")
        typer.echo(f"`{label}`:\n{pretty}\n")


@app.command("list")
def list_command(
    logs: list[Path] = _LOGS_ARGUMENT,
    workers: int | None = _WORKERS_OPTION,
    strict: bool = _STRICT_OPTION,
) -> None:
    """List output paths present in every log."""

    session = _load_session(logs, workers=workers, strict=strict)
    for artifact in session.artifacts():
        typer.echo(artifact)


def main(argv: list[str] | None = None) -> None:
    app(prog_name="execlog-cmp", args=argv)


if __name__ == "__main__":
    main()
