"""A simulated network that carries RPCs between named clients and servers.

The network can drop, delay and reorder requests and replies, disconnect
clients, and kill servers, so that distributed algorithms can be tested
under hostile conditions.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Coroutine, Optional, Union

from .client import Client, Rpc, RpcChannel
from .errors import RpcError, Stopped, Timeout
from .server import Server

__all__ = ["Network"]

_log = logging.getLogger(__name__)

_DEAD_CHECK_INTERVAL = 0.1


@dataclass(frozen=True)
class _EndInfo:
    enabled: bool
    reliable: bool
    long_reordering: bool
    server: Optional[Server]


class Network:
    """Routes calls from client end-points to servers, with fault injection.

    Use it as an async context manager, or call :meth:`start` from inside a
    running event loop, to begin delivering requests.
    """

    def __init__(self) -> None:
        self._reliable = True
        # pause a long time on send on a disabled connection
        self._long_delays = False
        # sometimes delay replies a long time
        self._long_reordering = False
        self._enabled: dict[str, bool] = {}
        self._servers: dict[str, Optional[Server]] = {}
        self._connections: dict[str, Optional[str]] = {}
        self._count = 0
        self._channel = RpcChannel()
        self._poller: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._rng = random.Random()

    @classmethod
    def create(cls) -> tuple[Network, RpcChannel]:
        """Return a network that is not started, with the channel of its requests."""
        net = cls()
        return net, net._channel

    # ------------------------------------------------------------ lifecycle

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def start(self) -> None:
        """Begin delivering requests; must be called inside a running event loop."""
        if self._poller is None:
            self._poller = asyncio.get_running_loop().create_task(self._poll())

    def stop(self) -> None:
        """Stop delivering requests; calls in flight and later calls fail."""
        if self._poller is not None:
            self._poller.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._channel.close()

    async def __aenter__(self) -> Network:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        pending = list(self._tasks)
        if self._poller is not None:
            pending.append(self._poller)
        self.stop()
        await asyncio.gather(*pending, return_exceptions=True)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run ``coro`` in the background alongside the network."""
        return self._track(asyncio.get_running_loop().create_task(coro))

    # ------------------------------------------------------------ topology

    def add_server(self, server: Server) -> None:
        self._servers[server.name] = server

    def delete_server(self, name: str) -> None:
        """Kill the server called ``name``; calls it is serving fail with Stopped."""
        if name in self._servers:
            self._servers[name] = None

    def create_client(self, name: str) -> Client:
        """Create a client end-point, disabled and not connected."""
        self._enabled[name] = False
        self._connections[name] = None
        return Client(name, self._channel)

    def connect(self, client_name: str, server_name: str) -> None:
        """Connect a client to a server."""
        self._connections[client_name] = server_name

    def enable(self, client_name: str, enabled: bool) -> None:
        """Enable or disable a client."""
        _log.debug("client %s is %s", client_name, "enabled" if enabled else "disabled")
        self._enabled[client_name] = enabled

    def set_reliable(self, yes: bool) -> None:
        self._reliable = yes

    def set_long_reordering(self, yes: bool) -> None:
        self._long_reordering = yes

    def set_long_delays(self, yes: bool) -> None:
        self._long_delays = yes

    def count(self, server_name: str) -> int:
        """Return how many requests the named server has been asked to dispatch."""
        server = self._servers[server_name]
        if server is None:
            raise KeyError(f"server {server_name} has been deleted")
        return server.count()

    def total_count(self) -> int:
        """Return how many requests the network has handled."""
        return self._count

    # ------------------------------------------------------------ delivery

    def _end_info(self, client_name: str) -> _EndInfo:
        server = None
        server_name = self._connections.get(client_name)
        if server_name is not None:
            server = self._servers[server_name]
        return _EndInfo(
            enabled=self._enabled[client_name],
            reliable=self._reliable,
            long_reordering=self._long_reordering,
            server=server,
        )

    def _is_server_dead(self, client_name: str, server_name: str, server_id: int) -> bool:
        if not self._enabled[client_name]:
            return True
        server = self._servers.get(server_name)
        return server is None or server.id != server_id

    async def _poll(self) -> None:
        async for rpc in self._channel:
            reply = rpc.take_response()
            if reply is None:
                continue
            self._track(asyncio.get_running_loop().create_task(self._serve(rpc, reply)))

    async def _serve(self, rpc: Rpc, reply: asyncio.Future) -> None:
        try:
            result = await self._process_rpc(rpc)
        except asyncio.CancelledError:
            if not reply.done():
                reply.cancel()
            raise
        except Exception as error:
            if reply.done():
                _log.error("fail to send resp: %r", error)
            else:
                reply.set_exception(error)
            return
        if reply.done():
            _log.error("fail to send resp: %r", rpc)
        else:
            reply.set_result(result)

    async def _process_rpc(self, rpc: Rpc) -> bytes:
        self._count += 1
        info = self._end_info(rpc.client_name)
        _log.debug("%r process with %r", rpc, info)

        if info.enabled and info.server is not None:
            short_delay = None if info.reliable else self._rng.randrange(27)

            if not info.reliable and self._rng.randrange(1000) < 100:
                # drop the request, return as if timeout
                await asyncio.sleep(short_delay / 1000)
                raise Timeout()

            drop_reply = not info.reliable and self._rng.randrange(1000) < 100
            reordering = None
            if info.long_reordering and self._rng.randrange(900) < 600:
                # delay the response for a while
                upper_bound = 1 + self._rng.randrange(2000)
                reordering = 200 + self._rng.randrange(upper_bound)

            return await self._dispatch(short_delay, drop_reply, reordering, rpc, info.server)

        # simulate no reply and eventual timeout.
        if self._long_delays:
            # lets tests check that a leader doesn't send RPCs synchronously
            ms = self._rng.randrange(7000)
        else:
            # many tests require the client to try each server in fairly rapid succession
            ms = self._rng.randrange(100)
        _log.debug("%r delay %sms then timeout", rpc, ms)
        await asyncio.sleep(ms / 1000)
        raise Timeout()

    async def _dispatch(
        self,
        delay: Optional[int],
        drop_reply: bool,
        reordering: Optional[int],
        rpc: Rpc,
        server: Server,
    ) -> bytes:
        if delay is not None:
            await asyncio.sleep(delay / 1000)

        fq_name = rpc.fq_name
        request, rpc.request = rpc.request or b"", None
        hooks = rpc.hooks
        if hooks is not None:
            hooks.before_dispatch(fq_name, request)

        # Run the handler while watching for the server being killed; a killed
        # server must not reply, so that no client sees a positive answer from it.
        loop = asyncio.get_running_loop()
        dispatch_task = loop.create_task(server.dispatch(fq_name, request))
        dead_task = loop.create_task(self._server_dead(rpc.client_name, server.name, server.id))
        try:
            await asyncio.wait((dispatch_task, dead_task), return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (dispatch_task, dead_task):
                if not task.done():
                    task.cancel()

        response: Union[bytes, RpcError]
        if dispatch_task.done() and not dispatch_task.cancelled():
            try:
                response = dispatch_task.result()
            except RpcError as error:
                response = error
        else:
            response = Stopped()

        hooks = rpc.hooks
        if hooks is not None:
            payload = hooks.after_dispatch(fq_name, response)
        elif isinstance(response, RpcError):
            raise response
        else:
            payload = response

        if self._is_server_dead(rpc.client_name, server.name, server.id):
            raise Stopped()
        if drop_reply:
            # drop the reply, return as if timeout
            raise Timeout()

        if reordering is not None:
            _log.debug("%r next long reordering %sms", rpc, reordering)
            await asyncio.sleep(reordering / 1000)
        return payload

    async def _server_dead(self, client_name: str, server_name: str, server_id: int) -> None:
        while True:
            await asyncio.sleep(_DEAD_CHECK_INTERVAL)
            if self._is_server_dead(client_name, server_name, server_id):
                _log.debug("%r is dead", server_name)
                return