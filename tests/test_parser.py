from __future__ import annotations

import msgspec
import pytest

from execlog_cmp.parser import LogParseError, document_spans, parse_log, split_documents

_HASH = "5e" * 32


def _action(output: str, *, input_path: str = "src/main.c") -> bytes:
    return msgspec.json.encode(
        {
            "environmentVariables": [{"name": "PATH", "value": "/usr/bin"}],
            "inputs": [
                {"path": input_path, "digest": {"hash": _HASH, "sizeBytes": "10", "hashFunctionName": "SHA-256"}}
            ],
            "listedOutputs": [output],
            "remotable": True,
            "cacheable": True,
            "actualOutputs": [
                {"path": output, "digest": {"hash": _HASH, "sizeBytes": "20", "hashFunctionName": "SHA-256"}}
            ],
        }
    )


def test_split_documents_at_brace_boundary() -> None:
    assert list(split_documents(b'{"a":1}{"b":2}')) == [b'{"a":1}', b'{"b":2}']


def test_split_documents_single_document_runs_to_end() -> None:
    assert list(split_documents(b'{"a":{"b":1}}')) == [b'{"a":{"b":1}}']


def test_split_documents_empty_input_is_one_empty_slice() -> None:
    assert list(split_documents(b"")) == [b""]


def test_parse_log_empty_input_fails() -> None:
    with pytest.raises(LogParseError) as excinfo:
        parse_log(b"")

    assert excinfo.value.index == 0
    assert excinfo.value.offset == 0


def test_parse_log_decodes_concatenated_records() -> None:
    data = _action("out/a.o") + _action("out/b.o") + _action("out/c.o")

    records = parse_log(data)

    assert [record.declared_outputs for record in records] == [("out/a.o",), ("out/b.o",), ("out/c.o",)]


def test_parse_log_aborts_on_malformed_record() -> None:
    first = _action("out/a.o")
    data = first + b'{"listedOutputs": ["x"],}' + _action("out/c.o")

    with pytest.raises(LogParseError) as excinfo:
        parse_log(data, source="run1.json")

    assert excinfo.value.index == 1
    assert excinfo.value.offset == len(first)
    assert excinfo.value.source == "run1.json"
    assert "run1.json" in str(excinfo.value)


def test_heuristic_splits_inside_string_values() -> None:
    data = _action("out/a.o", input_path="weird}{path") + _action("out/b.o")

    with pytest.raises(LogParseError):
        parse_log(data)


def test_strict_tokenizer_ignores_braces_inside_strings() -> None:
    data = _action("out/a.o", input_path='weird}{pa\\"th') + _action("out/b.o")

    records = parse_log(data, strict=True)

    assert len(records) == 2
    assert records[0].inputs[0].path == 'weird}{pa\\"th'


def test_strict_tokenizer_allows_whitespace_between_documents() -> None:
    data = b'{"listedOutputs": ["a"]}\n  {"listedOutputs": ["b"]}\n'

    records = parse_log(data, strict=True)

    assert [record.declared_outputs for record in records] == [("a",), ("b",)]


def test_strict_tokenizer_matches_heuristic_on_plain_logs() -> None:
    data = _action("out/a.o") + _action("out/b.o")

    assert list(document_spans(data, strict=True)) == list(document_spans(data))


def test_strict_tokenizer_empty_input_fails() -> None:
    assert list(split_documents(b"", strict=True)) == [b""]
    with pytest.raises(LogParseError):
        parse_log(b"", strict=True)


def test_strict_tokenizer_keeps_unterminated_tail() -> None:
    data = b'{"listedOutputs": ["a"]}{"listedOutputs": ['

    with pytest.raises(LogParseError) as excinfo:
        parse_log(data, strict=True)

    assert excinfo.value.index == 1


@pytest.mark.parametrize("strict", [False, True])
def test_progress_reports_offsets_and_finishes_at_total(strict: bool) -> None:
    data = b"".join(_action(f"out/{idx}.o") for idx in range(400))
    seen: list[tuple[int, int]] = []

    parse_log(data, strict=strict, progress=lambda offset, total: seen.append((offset, total)))

    assert len(seen) > 2
    assert seen[-1] == (len(data), len(data))
    offsets = [offset for offset, _total in seen]
    assert offsets == sorted(offsets)
    assert all(total == len(data) for _offset, total in seen)
