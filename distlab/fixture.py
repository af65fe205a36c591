"""A small sample message used to exercise the codec."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .codec import FieldType, proto_field

__all__ = ["MsgType", "Msg"]


class MsgType(IntEnum):
    """Kinds of operation a :class:`Msg` may describe."""

    UNKNOWN = 0
    PUT = 1
    GET = 2
    DEL = 3

    @classmethod
    def is_valid(cls, value: int) -> bool:
        """Return whether ``value`` names a member of this enumeration."""
        return value in cls._value2member_map_

    @classmethod
    def from_int(cls, value: int) -> Optional["MsgType"]:
        """Return the member for ``value``, or ``None`` if there is none."""
        return cls._value2member_map_.get(value)  # type: ignore[return-value]


@dataclass
class Msg:
    """A simple protobuf message."""

    type: int = proto_field(1, FieldType.ENUM)
    id: int = proto_field(2, FieldType.UINT64)
    name: str = proto_field(3, FieldType.STRING)
    payload: list = proto_field(4, FieldType.BYTES, repeated=True)

    def message_type(self) -> MsgType:
        """Return the type field as a member, or the default if it is invalid."""
        member = MsgType.from_int(self.type)
        return MsgType.UNKNOWN if member is None else member

    def set_type(self, value: MsgType) -> None:
        """Set the type field from an enumeration member."""
        self.type = int(value)