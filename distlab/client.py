"""Client end-points that send encoded requests through an RPC channel."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Coroutine, Optional, Union

from .codec import DecodeError, EncodeError, decode, encode
from .errors import Canceled, DecodeFailed, EncodeFailed, RpcError, Stopped

__all__ = ["Rpc", "RpcHooks", "RpcChannel", "Client"]


class RpcHooks:
    """Interceptors run around the dispatch of each call from a client."""

    def before_dispatch(self, fq_name: str, request: bytes) -> None:
        """Called before the request reaches the server; raise to reject it."""

    def after_dispatch(self, fq_name: str, response: Union[bytes, RpcError]) -> bytes:
        """Called with the reply or the error; return the reply or raise."""
        if isinstance(response, RpcError):
            raise response
        return response


@dataclass
class _HookSlot:
    hooks: Optional[RpcHooks] = None


@dataclass(eq=False, repr=False)
class Rpc:
    """A request in flight, with the future that receives its reply."""

    client_name: str
    fq_name: str
    request: Optional[bytes]
    response: Optional[asyncio.Future]
    _hook_slot: _HookSlot = field(default_factory=_HookSlot)

    @property
    def hooks(self) -> Optional[RpcHooks]:
        """The hooks installed on the sending client at this moment."""
        return self._hook_slot.hooks

    def take_response(self) -> Optional[asyncio.Future]:
        """Remove and return the reply future; later calls return ``None``."""
        response, self.response = self.response, None
        return response

    def __repr__(self) -> str:
        return f"Rpc(client_name={self.client_name!r}, fq_name={self.fq_name!r})"


class RpcChannel:
    """An unbounded queue of requests from clients to a network."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[Rpc]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, rpc: Rpc) -> None:
        """Queue ``rpc``; raise :class:`Stopped` once the channel is closed."""
        if self._closed:
            raise Stopped()
        self._queue.put_nowait(rpc)

    async def receive(self) -> Optional[Rpc]:
        """Wait for the next request; ``None`` once the channel is closed."""
        if self._closed:
            return None
        rpc = await self._queue.get()
        if rpc is None:
            self._queue.put_nowait(None)
        return rpc

    def close(self) -> None:
        """Stop accepting requests and abandon the ones still queued."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            rpc = self._queue.get_nowait()
            if rpc is None:
                continue
            response = rpc.take_response()
            if response is not None and not response.done():
                response.cancel()
        self._queue.put_nowait(None)

    def __aiter__(self) -> RpcChannel:
        return self

    async def __anext__(self) -> Rpc:
        rpc = await self.receive()
        if rpc is None:
            raise StopAsyncIteration
        return rpc


async def _await_reply(reply: asyncio.Future, response_type: type) -> Any:
    await asyncio.wait((reply,))
    if reply.cancelled():
        raise Canceled()
    payload = reply.result()
    try:
        return decode(response_type, payload)
    except DecodeError as error:
        raise DecodeFailed(error) from error


class Client:
    """A named end-point that sends calls through an :class:`RpcChannel`."""

    def __init__(self, name: str, sender: RpcChannel) -> None:
        self.name = name
        self._sender = sender
        self._hook_slot = _HookSlot()
        self._tasks: set[asyncio.Task] = set()

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def call(self, fq_name: str, request: Any, response_type: type) -> asyncio.Task:
        """Send ``request`` now and return a task resolving to the decoded reply."""
        try:
            payload = encode(request)
        except EncodeError as error:
            raise EncodeFailed(error) from error
        loop = asyncio.get_running_loop()
        reply = loop.create_future()
        self._sender.send(Rpc(self.name, fq_name, payload, reply, self._hook_slot))
        return self._track(loop.create_task(_await_reply(reply, response_type)))

    def set_hooks(self, hooks: RpcHooks) -> None:
        self._hook_slot.hooks = hooks

    def clear_hooks(self) -> None:
        self._hook_slot.hooks = None

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run ``coro`` in the background and return its task."""
        return self._track(asyncio.get_running_loop().create_task(coro))