"""RPC servers: named collections of services that dispatch encoded requests."""

from __future__ import annotations

import itertools
from types import MappingProxyType
from typing import Awaitable, Callable, Mapping

from .errors import Other, Unimplemented

__all__ = ["Handler", "HandlerFactory", "ServerBuilder", "Server"]

Handler = Callable[[bytes], Awaitable[bytes]]
"""Takes an encoded request and produces an encoded reply."""

HandlerFactory = Callable[[str], Handler]
"""Given a method name, returns the handler serving it."""

_server_ids = itertools.count()


class ServerBuilder:
    """Collects services under a server name before building a :class:`Server`."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._services: dict[str, HandlerFactory] = {}

    @property
    def services(self) -> Mapping[str, HandlerFactory]:
        """The registered services, by name."""
        return MappingProxyType(self._services)

    def add_service(self, service_name: str, factory: HandlerFactory) -> None:
        """Register ``factory`` under ``service_name``; each name may be used once."""
        if service_name in self._services:
            raise Other(f"{service_name} has already registered")
        self._services[service_name] = factory

    def build(self) -> Server:
        """Create a server with a fresh identifier from the registered services."""
        return Server(self.name, self._services, next(_server_ids))


class Server:
    """A named server that routes ``service.method`` calls to handlers."""

    def __init__(self, name: str, services: Mapping[str, HandlerFactory], server_id: int) -> None:
        self._name = name
        self._services = MappingProxyType(dict(services))
        self._id = server_id
        self._count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def id(self) -> int:
        return self._id

    def count(self) -> int:
        """Return how many requests this server has been asked to dispatch."""
        return self._count

    async def dispatch(self, fq_name: str, request: bytes) -> bytes:
        """Run the handler named by ``fq_name`` on ``request`` and return its reply."""
        self._count += 1
        service_name, separator, rest = fq_name.partition(".")
        if not separator:
            raise Unimplemented(f"unknown {fq_name}")
        method_name = rest.split(".", 1)[0]
        factory = self._services.get(service_name)
        if factory is None:
            raise Unimplemented(f"unknown {fq_name}")
        handler = factory(method_name)
        return await handler(request)

    def __repr__(self) -> str:
        return f"Server(name={self._name!r}, id={self._id})"