import time
from dataclasses import dataclass

import pytest

from distlab.checker import check_events, check_operations
from distlab.model import Event, EventKind, Model, Operation


@dataclass
class RegInput:
    op: str
    value: int = 0


class Register(Model):
    def init(self):
        return 0

    def step(self, state, input, output):
        if input.op == "put":
            return True, input.value
        return output == state, state


@dataclass
class KeyInput:
    key: str
    op: str
    value: int = 0


class KeyedRegister(Model):
    def partition(self, history):
        parts = {}
        for op in history:
            parts.setdefault(op.input.key, []).append(op)
        return list(parts.values())

    def init(self):
        return 0

    def step(self, state, input, output):
        if input.op == "put":
            return True, input.value
        return output == state, state


class SlowRejecting(Model):
    def init(self):
        return 0

    def step(self, state, input, output):
        time.sleep(0.3)
        return False, state


class Broken(Model):
    def init(self):
        return 0

    def step(self, state, input, output):
        raise RuntimeError("boom")


def put(value, call, finish):
    return Operation(RegInput("put", value), call, None, finish)


def get(value, call, finish):
    return Operation(RegInput("get"), call, value, finish)


def test_empty_history_is_linearizable():
    assert check_operations(Register(), []) is True
    assert check_events(Register(), []) is True


def test_sequential_history_ok():
    history = [put(1, 0, 1), get(1, 2, 3), put(2, 4, 5), get(2, 6, 7)]
    assert check_operations(Register(), history) is True


def test_sequential_history_bad():
    history = [put(1, 0, 1), get(2, 2, 3)]
    assert check_operations(Register(), history) is False


def test_stale_read_after_write_bad():
    history = [put(1, 0, 1), put(2, 2, 3), get(1, 4, 5)]
    assert check_operations(Register(), history) is False


def test_concurrent_overlap_ok():
    history = [put(1, 0, 10), get(1, 5, 15)]
    assert check_operations(Register(), history) is True


def test_concurrent_either_order_ok():
    history = [put(1, 0, 10), get(0, 5, 15)]
    assert check_operations(Register(), history) is True


def test_read_before_write_cannot_see_it():
    history = [get(1, 0, 2), put(1, 3, 4)]
    assert check_operations(Register(), history) is False


def test_needs_backtracking():
    history = [put(1, 0, 10), put(2, 0, 10), get(2, 11, 12), get(2, 13, 14)]
    assert check_operations(Register(), history) is True
    history = [put(1, 0, 10), put(2, 0, 10), get(2, 11, 12), get(1, 13, 14)]
    assert check_operations(Register(), history) is False


def test_events_ok():
    events = [
        Event(EventKind.CALL, RegInput("put", 1), 0),
        Event(EventKind.CALL, RegInput("get"), 1),
        Event(EventKind.RETURN, None, 0),
        Event(EventKind.RETURN, 1, 1),
    ]
    assert check_events(Register(), events) is True


def test_events_bad():
    events = [
        Event(EventKind.CALL, RegInput("put", 1), 0),
        Event(EventKind.RETURN, None, 0),
        Event(EventKind.CALL, RegInput("get"), 1),
        Event(EventKind.RETURN, 0, 1),
    ]
    assert check_events(Register(), events) is False


def test_events_with_arbitrary_ids():
    events = [
        Event(EventKind.CALL, RegInput("put", 3), 100),
        Event(EventKind.RETURN, None, 100),
        Event(EventKind.CALL, RegInput("get"), 7),
        Event(EventKind.RETURN, 3, 7),
    ]
    assert check_events(Register(), events) is True


def test_partitions_checked_independently():
    good = [
        Operation(KeyInput("a", "put", 1), 0, None, 1),
        Operation(KeyInput("b", "put", 2), 0, None, 1),
        Operation(KeyInput("a", "get"), 2, 1, 3),
        Operation(KeyInput("b", "get"), 2, 2, 3),
    ]
    assert check_operations(KeyedRegister(), good) is True
    bad = good + [Operation(KeyInput("b", "get"), 4, 1, 5)]
    assert check_operations(KeyedRegister(), bad) is False


def test_timeout_gives_positive_answer():
    history = [get(5, 0, 1)]
    assert check_operations(SlowRejecting(), history, 0.05) is True
    assert check_operations(SlowRejecting(), history) is False


def test_model_error_propagates():
    with pytest.raises(RuntimeError, match="boom"):
        check_operations(Broken(), [get(0, 0, 1)])