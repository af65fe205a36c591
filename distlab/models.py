"""A key-value store model and a reader for its recorded histories."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from .model import Event, EventKind, Model, Operation

__all__ = ["Op", "KvInput", "KvOutput", "KvModel", "parse_kv_log"]


class Op(Enum):
    """Operations a key-value store client may perform."""

    GET = "get"
    PUT = "put"
    APPEND = "append"


@dataclass(frozen=True)
class KvInput:
    """The arguments of one key-value operation."""

    op: Op
    key: str
    value: str = ""


@dataclass(frozen=True)
class KvOutput:
    """The result of one key-value operation."""

    value: str = ""


class KvModel(Model[str, KvInput, KvOutput]):
    """A store of string values supporting get, put and append.

    Histories are partitioned by key, so a state holds the value of one key.
    """

    def partition(self, history: Sequence[Operation]) -> list[list[Operation]]:
        """Group operations by the key they touch."""
        by_key: dict[str, list[Operation]] = {}
        for op in history:
            by_key.setdefault(op.input.key, []).append(op)
        return list(by_key.values())

    def partition_event(self, history: Sequence[Event]) -> list[list[Event]]:
        """Group events by key; a return goes with the call of the same id."""
        by_key: dict[str, list[Event]] = {}
        call_keys: dict[int, str] = {}
        for event in history:
            if event.kind is EventKind.CALL:
                key = event.value.key
                call_keys[event.id] = key
            else:
                try:
                    key = call_keys[event.id]
                except KeyError:
                    raise ValueError(f"return event {event.id} has no matching call") from None
            by_key.setdefault(key, []).append(event)
        return list(by_key.values())

    def init(self) -> str:
        return ""

    def step(self, state: str, input: KvInput, output: KvOutput) -> tuple[bool, str]:
        if input.op is Op.GET:
            return output.value == state, state
        if input.op is Op.PUT:
            return True, input.value
        return True, state + input.value


_INVOKE_GET = re.compile(r'\{:process (\d+), :type :invoke, :f :get, :key "(.*)", :value nil\}')
_INVOKE_PUT = re.compile(r'\{:process (\d+), :type :invoke, :f :put, :key "(.*)", :value "(.*)"\}')
_INVOKE_APPEND = re.compile(
    r'\{:process (\d+), :type :invoke, :f :append, :key "(.*)", :value "(.*)"\}'
)
_RETURN_GET = re.compile(r'\{:process (\d+), :type :ok, :f :get, :key ".*", :value "(.*)"\}')
_RETURN_PUT = re.compile(r'\{:process (\d+), :type :ok, :f :put, :key ".*", :value ".*"\}')
_RETURN_APPEND = re.compile(r'\{:process (\d+), :type :ok, :f :append, :key ".*", :value ".*"\}')

_INVOCATIONS = ((_INVOKE_GET, Op.GET), (_INVOKE_PUT, Op.PUT), (_INVOKE_APPEND, Op.APPEND))


def parse_kv_log(lines: Iterable[str]) -> list[Event]:
    """Read a key-value history log into events.

    Operations that were invoked but never returned get a return event with
    an empty value at the end of the history.
    """
    events: list[Event] = []
    pending: dict[int, int] = {}
    next_id = 0

    def finish(process: str, value: str) -> None:
        try:
            match_id = pending.pop(int(process))
        except KeyError:
            raise ValueError(f"process {process} returned without an invocation") from None
        events.append(Event(EventKind.RETURN, KvOutput(value), match_id))

    for raw in lines:
        line = raw.rstrip("\r\n")
        for pattern, op in _INVOCATIONS:
            found = pattern.search(line)
            if found:
                value = found.group(3) if op is not Op.GET else ""
                events.append(Event(EventKind.CALL, KvInput(op, found.group(2), value), next_id))
                pending[int(found.group(1))] = next_id
                next_id += 1
                break
        else:
            found = _RETURN_GET.search(line)
            if found:
                finish(found.group(1), found.group(2))
                continue
            found = _RETURN_PUT.search(line) or _RETURN_APPEND.search(line)
            if found:
                finish(found.group(1), "")
                continue
            raise ValueError(f"unrecognised log line: {line!r}")

    for match_id in pending.values():
        events.append(Event(EventKind.RETURN, KvOutput(""), match_id))
    return events