"""Histories of operations and the models that judge them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Sequence, TypeVar

__all__ = ["EventKind", "Event", "Operation", "Model"]

S = TypeVar("S")
I = TypeVar("I")
O = TypeVar("O")


class EventKind(Enum):
    """Whether an event is the call or the return of an operation."""

    CALL = "call"
    RETURN = "return"


@dataclass
class Event:
    """One half of an operation: a call carries its input, a return its output."""

    kind: EventKind
    value: Any
    id: int


@dataclass
class Operation:
    """A complete operation with its invocation and response times."""

    input: Any
    call: int
    output: Any
    finish: int


class Model(ABC, Generic[S, I, O]):
    """A sequential specification against which histories are checked."""

    def partition(self, history: Sequence[Operation]) -> list[list[Operation]]:
        """Split a history into parts that are linearizable independently."""
        return [list(history)]

    def partition_event(self, history: Sequence[Event]) -> list[list[Event]]:
        """Split an event history into parts that are linearizable independently."""
        return [list(history)]

    @abstractmethod
    def init(self) -> S:
        """Return the initial state of the system."""

    @abstractmethod
    def step(self, state: S, input: I, output: O) -> tuple[bool, S]:
        """Return whether the step is allowed, and the new state; never mutates ``state``."""

    def equal(self, state1: S, state2: S) -> bool:
        """Return whether two states are the same."""
        return state1 == state2