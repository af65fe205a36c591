"""Errors raised by remote procedure calls."""

from __future__ import annotations

from .codec import DecodeError, EncodeError

__all__ = [
    "RpcError",
    "Unimplemented",
    "EncodeFailed",
    "DecodeFailed",
    "Canceled",
    "Timeout",
    "Stopped",
    "Other",
]


class RpcError(Exception):
    """Base class of every RPC failure; compares equal by kind and arguments."""

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.args == other.args  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self.args))

    def __str__(self) -> str:
        name = type(self).__name__
        if not self.args:
            return name
        return f"{name}({', '.join(repr(arg) for arg in self.args)})"

    __repr__ = __str__


class Unimplemented(RpcError):
    """The requested service or method does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EncodeFailed(RpcError):
    """A request or reply could not be encoded."""

    def __init__(self, error: EncodeError) -> None:
        super().__init__(error)
        self.error = error
        self.__cause__ = error


class DecodeFailed(RpcError):
    """A request or reply could not be decoded."""

    def __init__(self, error: DecodeError) -> None:
        super().__init__(error)
        self.error = error
        self.__cause__ = error


class Canceled(RpcError):
    """The reply was abandoned before it was sent."""

    def __init__(self) -> None:
        super().__init__()


class Timeout(RpcError):
    """The call received no reply."""

    def __init__(self) -> None:
        super().__init__()


class Stopped(RpcError):
    """The network or server handling the call has gone away."""

    def __init__(self) -> None:
        super().__init__()


class Other(RpcError):
    """Any other failure, described by a message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message