import pytest

from distlab.model import Event, EventKind, Model, Operation


class Counter(Model):
    def init(self):
        return 0

    def step(self, state, input, output):
        return output == state + input, state + input


def test_model_requires_init_and_step():
    with pytest.raises(TypeError):
        Model()


def test_default_partition_keeps_history_whole():
    history = [Operation(1, 0, 1, 1), Operation(2, 2, 3, 3)]
    parts = Counter().partition(history)
    assert parts == [history]
    assert parts[0] is not history


def test_default_partition_event_keeps_history_whole():
    events = [Event(EventKind.CALL, 1, 0), Event(EventKind.RETURN, 1, 0)]
    assert Counter().partition_event(events) == [events]


def test_default_partition_of_empty_history():
    assert Model.partition(Counter(), []) == [[]]
    assert Model.partition_event(Counter(), []) == [[]]


def test_default_equal_uses_value_equality():
    model = Counter()
    assert Model.equal(model, 3, 3)
    assert not Model.equal(model, 3, 4)
    assert Model.equal(model, "abc", "abc")


def test_step_contract():
    model = Counter()
    state = model.init()
    ok, new_state = model.step(state, 5, 5)
    assert ok
    assert Model.equal(model, new_state, 5)
    ok, after = model.step(new_state, 1, 7)
    assert not ok
    assert Model.equal(model, after, 6)


def test_event_and_operation_fields():
    event = Event(EventKind.RETURN, "x", 4)
    assert (event.kind, event.value, event.id) == (EventKind.RETURN, "x", 4)
    op = Operation(input="in", call=1, output="out", finish=2)
    assert op.call < op.finish
    assert op == Operation("in", 1, "out", 2)