import pytest

from distlab.codec import decode, encode
from distlab.fixture import Msg, MsgType


def test_basic_encode_decode():
    msg = Msg(type=MsgType.PUT, id=42, name="the answer", payload=[bytes([7] * 3)] * 2)
    buf = encode(msg)
    msg1 = decode(Msg, buf)
    assert msg == msg1


def test_default():
    msg = Msg()
    msg1 = decode(Msg, b"")
    assert msg == msg1


@pytest.mark.parametrize("value", [0, 1, 2, 3])
def test_valid_values(value):
    assert MsgType.is_valid(value)
    assert MsgType.from_int(value) == value


@pytest.mark.parametrize("value", [-1, 4, 100])
def test_invalid_values(value):
    assert not MsgType.is_valid(value)
    assert MsgType.from_int(value) is None


def test_from_int_returns_members():
    assert MsgType.from_int(3) is MsgType.DEL
    assert MsgType.from_int(0) is MsgType.UNKNOWN


def test_message_type_falls_back_to_default():
    assert Msg(type=2).message_type() is MsgType.GET
    assert Msg(type=9).message_type() is MsgType.UNKNOWN


def test_set_type():
    msg = Msg()
    msg.set_type(MsgType.DEL)
    assert msg.type == 3
    assert msg.message_type() is MsgType.DEL
    assert decode(Msg, encode(msg)).message_type() is MsgType.DEL


def test_unknown_enum_value_survives_round_trip():
    msg = Msg(type=77, id=1)
    again = decode(Msg, encode(msg))
    assert again.type == 77
    assert again.message_type() is MsgType.UNKNOWN