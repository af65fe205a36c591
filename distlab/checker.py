"""Linearizability checking of operation and event histories.

Each partition of a history is searched on its own thread for an order of
its operations that the model accepts and that respects real time.
"""

from __future__ import annotations

import queue
import threading
from typing import Any, Optional, Sequence

from .bitset import Bitset
from .model import Event, EventKind, Model, Operation

__all__ = ["check_operations", "check_events"]


class _Node:
    __slots__ = ("value", "id", "matched", "next", "prev")

    def __init__(self, value: Any, id: int, matched: Optional[_Node] = None) -> None:
        self.value = value
        self.id = id
        self.matched = matched
        self.next: Optional[_Node] = None
        self.prev: Optional[_Node] = None


def _timed_events(history: Sequence[Operation]) -> list[Event]:
    timed = []
    for op_id, op in enumerate(history):
        timed.append((op.call, Event(EventKind.CALL, op.input, op_id)))
        timed.append((op.finish, Event(EventKind.RETURN, op.output, op_id)))
    timed.sort(key=lambda pair: pair[0])
    return [event for _, event in timed]


def _renumber(events: Sequence[Event]) -> list[Event]:
    numbers: dict[int, int] = {}
    return [Event(e.kind, e.value, numbers.setdefault(e.id, len(numbers))) for e in events]


def _link(events: Sequence[Event]) -> _Node:
    """Build a doubly linked list behind a sentinel; calls point at their returns."""
    head = _Node(None, -1)
    returns: dict[int, _Node] = {}
    first: Optional[_Node] = None
    for event in reversed(events):
        if event.kind is EventKind.RETURN:
            node = _Node(event.value, event.id)
            returns[event.id] = node
        else:
            node = _Node(event.value, event.id, returns.get(event.id))
        node.next = first
        if first is not None:
            first.prev = node
        first = node
    head.next = first
    if first is not None:
        first.prev = head
    return head


def _lift(entry: _Node) -> None:
    entry.prev.next = entry.next
    entry.next.prev = entry.prev
    matched = entry.matched
    matched.prev.next = matched.next
    if matched.next is not None:
        matched.next.prev = matched.prev


def _unlift(entry: _Node) -> None:
    matched = entry.matched
    matched.prev.next = matched
    if matched.next is not None:
        matched.next.prev = matched
    entry.prev.next = entry
    entry.next.prev = entry


def _check_single(model: Model, events: list[Event], kill: threading.Event) -> bool:
    head = _link(events)
    linearized = Bitset(len(events) // 2)
    cache: dict[int, list[tuple[Bitset, Any]]] = {}
    calls: list[tuple[_Node, Any]] = []
    state = model.init()

    def seen(bits: Bitset, candidate: Any) -> bool:
        return any(
            bits == other and model.equal(candidate, other_state)
            for other, other_state in cache.get(hash(bits), ())
        )

    entry = head.next
    while head.next is not None:
        if kill.is_set():
            return False
        if entry is not None and entry.matched is not None:
            ok, new_state = model.step(state, entry.value, entry.matched.value)
            if ok:
                new_linearized = linearized.copy()
                new_linearized.set(entry.id)
                if not seen(new_linearized, new_state):
                    cache.setdefault(hash(new_linearized), []).append((new_linearized, new_state))
                    calls.append((entry, state))
                    state = new_state
                    linearized.set(entry.id)
                    _lift(entry)
                    entry = head.next
                    continue
            entry = entry.next
        else:
            if not calls:
                return False
            entry, state = calls.pop()
            linearized.clear(entry.id)
            _unlift(entry)
            entry = entry.next
    return True


def _check_partitions(model: Model, partitions: list[list[Event]], timeout: Optional[float]) -> bool:
    if not partitions:
        return True
    results: queue.Queue = queue.Queue()
    kill = threading.Event()

    def work(events: list[Event]) -> None:
        try:
            results.put(_check_single(model, events, kill))
        except BaseException as error:  # reported to the waiting caller
            results.put(error)

    threads = [threading.Thread(target=work, args=(part,), daemon=True) for part in partitions]
    for thread in threads:
        thread.start()

    wait = timeout if timeout else None
    ok = True
    failure: Optional[BaseException] = None
    remaining = len(threads)
    try:
        while remaining:
            try:
                result = results.get(timeout=wait)
            except queue.Empty:
                break
            if isinstance(result, BaseException):
                failure = result
                break
            ok = ok and result
            if not ok:
                break
            remaining -= 1
    finally:
        kill.set()
        for thread in threads:
            thread.join()
    if failure is not None:
        raise failure
    return ok


def check_operations(model: Model, history: Sequence[Operation], timeout: Optional[float] = None) -> bool:
    """Return whether ``history`` is linearizable under ``model``.

    ``timeout`` is in seconds; ``None`` or 0 waits for ever. When waiting for a
    partition's verdict times out the result is ``True``, which may be wrong.
    """
    partitions = [_timed_events(part) for part in model.partition(history)]
    return _check_partitions(model, partitions, timeout)


def check_events(model: Model, history: Sequence[Event], timeout: Optional[float] = None) -> bool:
    """Return whether the event ``history`` is linearizable under ``model``.

    Events are taken in the order given; ``timeout`` behaves as in
    :func:`check_operations`.
    """
    partitions = [_renumber(part) for part in model.partition_event(history)]
    return _check_partitions(model, partitions, timeout)