from __future__ import annotations

from typing import Annotated, Any

import msgspec

HASH_SIZE = 32


class ContentHash:
    """Fixed-length binary content hash, rendered as lowercase hex."""

    __slots__ = ("_raw",)

    def __init__(self, raw: bytes) -> None:
        raw = bytes(raw)
        if len(raw) != HASH_SIZE:
            raise ValueError(f"content hash must be {HASH_SIZE} bytes, got {len(raw)}")
        self._raw = raw

    @classmethod
    def from_hex(cls, text: str) -> ContentHash:
        text = str(text)
        if len(text) != HASH_SIZE * 2:
            raise ValueError(f"content hash must be {HASH_SIZE * 2} hex characters: {text!r}")
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise ValueError(f"invalid content hash hex: {text!r}") from exc
        return cls(raw)

    @property
    def raw(self) -> bytes:
        return self._raw

    def hex(self) -> str:
        return self._raw.hex()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContentHash):
            return NotImplemented
        return self._raw == other._raw

    def __hash__(self) -> int:
        return hash(self._raw)

    def __repr__(self) -> str:
        return f"ContentHash({self.hex()})"

    def __str__(self) -> str:
        return self.hex()


class Digest(msgspec.Struct, frozen=True, rename="camel"):
    hash: ContentHash
    size_bytes: Annotated[int, msgspec.Meta(ge=0)]
    hash_function_name: str


class FileRecord(msgspec.Struct, frozen=True):
    path: str
    digest: Digest


class EnvironmentBinding(msgspec.Struct, frozen=True):
    name: str
    value: str


class ActionRecord(msgspec.Struct, frozen=True):
    # Protobuf JSON output drops default-valued fields, so every field has a default.
    environment_bindings: tuple[EnvironmentBinding, ...] = msgspec.field(default=(), name="environmentVariables")
    inputs: tuple[FileRecord, ...] = ()
    declared_outputs: tuple[str, ...] = msgspec.field(default=(), name="listedOutputs")
    remotable: bool = False
    cacheable: bool = False
    actual_outputs: tuple[FileRecord, ...] = msgspec.field(default=(), name="actualOutputs")


def _dec_hook(type_: type, obj: Any) -> Any:
    if type_ is ContentHash:
        if not isinstance(obj, str):
            raise TypeError(f"expected hex string, got {type(obj).__name__}")
        return ContentHash.from_hex(obj)
    raise NotImplementedError(f"unsupported type: {type_!r}")


def _enc_hook(obj: Any) -> Any:
    if isinstance(obj, ContentHash):
        return obj.hex()
    raise NotImplementedError(f"unsupported type: {type(obj)!r}")


def decode_record(data: bytes) -> ActionRecord:
    # `strict=False` lets `sizeBytes` arrive as a numeric string.
    return msgspec.json.decode(data, type=ActionRecord, dec_hook=_dec_hook, strict=False)


def digest_to_builtins(digest: Digest) -> dict[str, object]:
    obj = msgspec.to_builtins(digest, enc_hook=_enc_hook)
    # int64 fields travel as strings in protobuf JSON.
    obj["sizeBytes"] = str(obj["sizeBytes"])
    return obj


def _files_to_builtins(files: tuple[FileRecord, ...]) -> list[dict[str, object]]:
    return [{"path": item.path, "digest": digest_to_builtins(item.digest)} for item in files]


def record_to_builtins(record: ActionRecord) -> dict[str, object]:
    """Render `record` in the execution log wire format (camelCase, hex hashes, string sizes)."""

    return {
        "environmentVariables": [
            {"name": binding.name, "value": binding.value} for binding in record.environment_bindings
        ],
        "inputs": _files_to_builtins(record.inputs),
        "listedOutputs": list(record.declared_outputs),
        "remotable": record.remotable,
        "cacheable": record.cacheable,
        "actualOutputs": _files_to_builtins(record.actual_outputs),
    }


def encode_record(record: ActionRecord) -> bytes:
    return msgspec.json.encode(record_to_builtins(record))


__all__ = [
    "HASH_SIZE",
    "ActionRecord",
    "ContentHash",
    "Digest",
    "EnvironmentBinding",
    "FileRecord",
    "decode_record",
    "digest_to_builtins",
    "encode_record",
    "record_to_builtins",
]
