"""Protocol-buffer wire encoding for dataclass-based messages.

A message is a dataclass whose fields are declared with :func:`proto_field`.
Encoding follows proto3 rules: scalar fields holding their default value
are omitted, repeated numeric fields are packed, and decoding accepts both
packed and unpacked forms while skipping unknown fields.
"""

from __future__ import annotations

import dataclasses
import functools
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Iterator, TypeVar

__all__ = [
    "FieldType",
    "EncodeError",
    "DecodeError",
    "proto_field",
    "encode",
    "decode",
    "encoded_len",
]

M = TypeVar("M")

_MASK32 = (1 << 32) - 1
_MASK64 = (1 << 64) - 1
_MAX_TAG = (1 << 29) - 1
_METADATA_KEY = "proto"


class _WireType(IntEnum):
    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    START_GROUP = 3
    END_GROUP = 4
    FIXED32 = 5


class FieldType(Enum):
    """Scalar kinds a message field may hold."""

    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    BOOL = "bool"
    ENUM = "enum"
    STRING = "string"
    BYTES = "bytes"

    @property
    def is_varint(self) -> bool:
        return self not in (FieldType.STRING, FieldType.BYTES)

    @property
    def default(self) -> Any:
        if self is FieldType.STRING:
            return ""
        if self is FieldType.BYTES:
            return b""
        if self is FieldType.BOOL:
            return False
        return 0


class _CodecError(Exception):
    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.args == other.args  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class EncodeError(_CodecError):
    """A message could not be encoded."""


class DecodeError(_CodecError):
    """A byte string is not a valid encoding of the requested message."""


@dataclass(frozen=True)
class _FieldSpec:
    name: str
    tag: int
    kind: FieldType
    repeated: bool


def proto_field(tag: int, kind: FieldType, repeated: bool = False) -> Any:
    """Declare a dataclass field carried on the wire under ``tag``."""
    if not 1 <= tag <= _MAX_TAG:
        raise ValueError(f"field tag {tag} is out of range")
    metadata = {_METADATA_KEY: (tag, kind, repeated)}
    if repeated:
        return dataclasses.field(default_factory=list, metadata=metadata)
    return dataclasses.field(default=kind.default, metadata=metadata)


@functools.lru_cache(maxsize=None)
def _fields_of(message_type: type) -> tuple[_FieldSpec, ...]:
    if not (isinstance(message_type, type) and dataclasses.is_dataclass(message_type)):
        raise TypeError(f"{message_type!r} is not a message class")
    specs = []
    for field in dataclasses.fields(message_type):
        declared = field.metadata.get(_METADATA_KEY)
        if declared is not None:
            tag, kind, repeated = declared
            specs.append(_FieldSpec(field.name, tag, kind, repeated))
    return tuple(specs)


# ---------------------------------------------------------------- encoding


def _write_varint(value: int, out: bytearray) -> None:
    while value > 0x7F:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)


def _write_key(tag: int, wire_type: _WireType, out: bytearray) -> None:
    _write_varint((tag << 3) | wire_type, out)


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if not low <= value <= high:
        raise EncodeError(f"{name}: value {value} does not fit the field type")


def _varint_value(name: str, kind: FieldType, value: Any) -> int:
    if kind is FieldType.BOOL:
        if not isinstance(value, bool):
            raise EncodeError(f"{name}: expected bool, got {type(value).__name__}")
        return int(value)
    if not isinstance(value, int) or isinstance(value, bool):
        raise EncodeError(f"{name}: expected int, got {type(value).__name__}")
    value = int(value)
    if kind in (FieldType.INT32, FieldType.ENUM):
        _check_range(name, value, -(1 << 31), (1 << 31) - 1)
        return value & _MASK64
    if kind is FieldType.INT64:
        _check_range(name, value, -(1 << 63), (1 << 63) - 1)
        return value & _MASK64
    if kind is FieldType.UINT32:
        _check_range(name, value, 0, _MASK32)
        return value
    if kind is FieldType.UINT64:
        _check_range(name, value, 0, _MASK64)
        return value
    if kind is FieldType.SINT32:
        _check_range(name, value, -(1 << 31), (1 << 31) - 1)
        return ((value << 1) ^ (value >> 31)) & _MASK32
    _check_range(name, value, -(1 << 63), (1 << 63) - 1)
    return ((value << 1) ^ (value >> 63)) & _MASK64


def _length_delimited_value(name: str, kind: FieldType, value: Any) -> bytes:
    if kind is FieldType.STRING:
        if not isinstance(value, str):
            raise EncodeError(f"{name}: expected str, got {type(value).__name__}")
        return value.encode("utf-8")
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise EncodeError(f"{name}: expected bytes, got {type(value).__name__}")
    return bytes(value)


def _encode_field(spec: _FieldSpec, value: Any, out: bytearray) -> None:
    if spec.repeated:
        if isinstance(value, (str, bytes, bytearray)):
            raise EncodeError(f"{spec.name}: expected a sequence of values")
        try:
            items = list(value)
        except TypeError:
            raise EncodeError(f"{spec.name}: expected a sequence of values") from None
        if not items:
            return
        if spec.kind.is_varint:
            packed = bytearray()
            for item in items:
                _write_varint(_varint_value(spec.name, spec.kind, item), packed)
            _write_key(spec.tag, _WireType.LENGTH_DELIMITED, out)
            _write_varint(len(packed), out)
            out += packed
        else:
            for item in items:
                data = _length_delimited_value(spec.name, spec.kind, item)
                _write_key(spec.tag, _WireType.LENGTH_DELIMITED, out)
                _write_varint(len(data), out)
                out += data
        return

    if spec.kind.is_varint:
        raw = _varint_value(spec.name, spec.kind, value)
        if raw == 0:
            return
        _write_key(spec.tag, _WireType.VARINT, out)
        _write_varint(raw, out)
    else:
        data = _length_delimited_value(spec.name, spec.kind, value)
        if not data:
            return
        _write_key(spec.tag, _WireType.LENGTH_DELIMITED, out)
        _write_varint(len(data), out)
        out += data


def encode(message: Any) -> bytes:
    """Encode a message to its wire representation."""
    out = bytearray()
    for spec in _fields_of(type(message)):
        _encode_field(spec, getattr(message, spec.name), out)
    return bytes(out)


def encoded_len(message: Any) -> int:
    """Return the number of bytes :func:`encode` produces for ``message``."""
    return len(encode(message))


# ---------------------------------------------------------------- decoding


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self._data)

    def varint(self) -> int:
        result = 0
        for shift in range(0, 70, 7):
            if self._pos >= len(self._data):
                raise DecodeError("buffer underflow while reading varint")
            byte = self._data[self._pos]
            self._pos += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                if result > _MASK64:
                    raise DecodeError("invalid varint")
                return result
        raise DecodeError("invalid varint")

    def take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise DecodeError("buffer underflow")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def key(self) -> tuple[int, int]:
        key = self.varint()
        if key > 0xFFFFFFFF:
            raise DecodeError(f"invalid key value: {key}")
        tag, wire_type = key >> 3, key & 0x7
        if tag == 0:
            raise DecodeError("invalid tag value: 0")
        return tag, wire_type


def _skip_field(reader: _Reader, tag: int, wire_type: int) -> None:
    if wire_type == _WireType.VARINT:
        reader.varint()
    elif wire_type == _WireType.FIXED64:
        reader.take(8)
    elif wire_type == _WireType.LENGTH_DELIMITED:
        reader.take(reader.varint())
    elif wire_type == _WireType.FIXED32:
        reader.take(4)
    elif wire_type == _WireType.START_GROUP:
        while True:
            inner_tag, inner_type = reader.key()
            if inner_type == _WireType.END_GROUP:
                if inner_tag != tag:
                    raise DecodeError("unexpected end group tag")
                return
            _skip_field(reader, inner_tag, inner_type)
    elif wire_type == _WireType.END_GROUP:
        raise DecodeError("unexpected end group tag")
    else:
        raise DecodeError(f"invalid wire type value: {wire_type}")


def _to_signed(value: int, bits: int) -> int:
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _scalar_from_varint(kind: FieldType, raw: int) -> Any:
    if kind is FieldType.BOOL:
        return raw != 0
    if kind in (FieldType.INT32, FieldType.ENUM):
        return _to_signed(raw & _MASK32, 32)
    if kind is FieldType.INT64:
        return _to_signed(raw, 64)
    if kind is FieldType.UINT32:
        return raw & _MASK32
    if kind is FieldType.UINT64:
        return raw
    if kind is FieldType.SINT32:
        raw &= _MASK32
    return (raw >> 1) ^ -(raw & 1)


def _iter_packed(data: bytes) -> Iterator[int]:
    reader = _Reader(data)
    while not reader.at_end:
        yield reader.varint()


def _scalar_from_bytes(spec: _FieldSpec, data: bytes) -> Any:
    if spec.kind is FieldType.STRING:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            raise DecodeError(f"{spec.name}: invalid string value: data is not UTF-8 encoded") from None
    return data


def decode(message_type: type[M], data: bytes) -> M:
    """Decode ``data`` into a new instance of ``message_type``."""
    specs = _fields_of(message_type)
    by_tag = {spec.tag: spec for spec in specs}
    values: dict[str, Any] = {spec.name: [] for spec in specs if spec.repeated}
    reader = _Reader(bytes(data))

    while not reader.at_end:
        tag, wire_type = reader.key()
        spec = by_tag.get(tag)
        if spec is None:
            _skip_field(reader, tag, wire_type)
            continue

        if spec.kind.is_varint:
            if wire_type == _WireType.VARINT:
                decoded = [_scalar_from_varint(spec.kind, reader.varint())]
            elif wire_type == _WireType.LENGTH_DELIMITED and spec.repeated:
                chunk = reader.take(reader.varint())
                decoded = [_scalar_from_varint(spec.kind, raw) for raw in _iter_packed(chunk)]
            else:
                raise DecodeError(f"{spec.name}: invalid wire type {wire_type}")
        else:
            if wire_type != _WireType.LENGTH_DELIMITED:
                raise DecodeError(f"{spec.name}: invalid wire type {wire_type}")
            decoded = [_scalar_from_bytes(spec, reader.take(reader.varint()))]

        if spec.repeated:
            values[spec.name].extend(decoded)
        else:
            values[spec.name] = decoded[-1]

    return message_type(**values)