from __future__ import annotations

import msgspec
import pytest

from execlog_cmp.schema import (
    ActionRecord,
    ContentHash,
    Digest,
    decode_record,
    digest_to_builtins,
    encode_record,
    record_to_builtins,
)

_HASH_A = "0f" * 32
_HASH_B = "a1" * 32


def _record_json() -> bytes:
    return msgspec.json.encode(
        {
            "commandArgs": ["/usr/bin/gcc", "-c", "a.c"],
            "environmentVariables": [{"name": "PATH", "value": "/bin"}],
            "inputs": [
                {"path": "a.c", "digest": {"hash": _HASH_A, "sizeBytes": "12", "hashFunctionName": "SHA-256"}},
            ],
            "listedOutputs": ["a.o"],
            "remotable": True,
            "cacheable": True,
            "actualOutputs": [
                {"path": "a.o", "digest": {"hash": _HASH_B, "sizeBytes": "340", "hashFunctionName": "SHA-256"}},
            ],
        }
    )


def test_decode_record_reads_wire_names_and_string_sizes() -> None:
    record = decode_record(_record_json())

    assert record.environment_bindings[0].name == "PATH"
    assert record.environment_bindings[0].value == "/bin"
    assert record.declared_outputs == ("a.o",)
    assert record.remotable is True
    assert record.cacheable is True
    assert record.inputs[0].digest.size_bytes == 12
    assert record.actual_outputs[0].digest.hash.hex() == _HASH_B


def test_decode_record_defaults_missing_fields() -> None:
    record = decode_record(b'{"listedOutputs": ["out"]}')

    assert record == ActionRecord(declared_outputs=("out",))
    assert record.inputs == ()
    assert record.remotable is False


def test_decode_record_rejects_short_hash() -> None:
    payload = b'{"inputs": [{"path": "a", "digest": {"hash": "abcd", "sizeBytes": "1", "hashFunctionName": "SHA-256"}}]}'

    with pytest.raises(msgspec.ValidationError):
        decode_record(payload)


def test_decode_record_rejects_negative_size() -> None:
    payload = (
        b'{"inputs": [{"path": "a", "digest": {"hash": "' + _HASH_A.encode() + b'", '
        b'"sizeBytes": "-1", "hashFunctionName": "SHA-256"}}]}'
    )

    with pytest.raises(msgspec.ValidationError):
        decode_record(payload)


def test_content_hash_renders_64_lowercase_hex_chars() -> None:
    digest = ContentHash(bytes(range(32)))

    text = digest.hex()

    assert len(text) == 64
    assert text == text.lower()
    assert ContentHash.from_hex(text) == digest


def test_content_hash_accepts_uppercase_and_renders_lowercase() -> None:
    assert ContentHash.from_hex(_HASH_B.upper()).hex() == _HASH_B


def test_content_hash_requires_fixed_length() -> None:
    with pytest.raises(ValueError):
        ContentHash(b"\x00" * 31)
    with pytest.raises(ValueError):
        ContentHash.from_hex("zz" * 32)


def test_digest_round_trip_is_identity() -> None:
    wire = {"hash": _HASH_A, "sizeBytes": "4096", "hashFunctionName": "SHA-256"}

    record = decode_record(msgspec.json.encode({"inputs": [{"path": "a.c", "digest": wire}]}))
    digest = record.inputs[0].digest

    assert digest_to_builtins(digest) == wire
    assert decode_record(encode_record(record)).inputs[0].digest == digest


def test_digest_equality_covers_all_fields() -> None:
    base = Digest(hash=ContentHash.from_hex(_HASH_A), size_bytes=1, hash_function_name="SHA-256")

    assert base == Digest(hash=ContentHash.from_hex(_HASH_A), size_bytes=1, hash_function_name="SHA-256")
    assert base != Digest(hash=ContentHash.from_hex(_HASH_B), size_bytes=1, hash_function_name="SHA-256")
    assert base != Digest(hash=ContentHash.from_hex(_HASH_A), size_bytes=2, hash_function_name="SHA-256")
    assert base != Digest(hash=ContentHash.from_hex(_HASH_A), size_bytes=1, hash_function_name="BLAKE3")


def test_encode_record_uses_wire_format() -> None:
    record = decode_record(_record_json())

    obj = record_to_builtins(record)

    assert obj["listedOutputs"] == ["a.o"]
    assert obj["environmentVariables"] == [{"name": "PATH", "value": "/bin"}]
    assert obj["inputs"][0]["digest"]["sizeBytes"] == "12"
    assert obj["actualOutputs"][0]["digest"] == {"hash": _HASH_B, "sizeBytes": "340", "hashFunctionName": "SHA-256"}
    assert "commandArgs" not in obj
    assert decode_record(encode_record(record)) == record


def test_encode_record_writes_sizes_as_strings() -> None:
    record = decode_record(_record_json())

    encoded = encode_record(record)

    assert b'"sizeBytes":"12"' in encoded
    assert b'"sizeBytes":"340"' in encoded
    assert b'"sizeBytes":12' not in encoded


def test_records_are_immutable_and_hashable() -> None:
    record = decode_record(_record_json())

    with pytest.raises(AttributeError):
        record.remotable = False  # type: ignore[misc]
    assert hash(record) == hash(decode_record(_record_json()))
