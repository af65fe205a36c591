"""Typed services: definitions that bind method names to message types."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from .client import Client
from .codec import DecodeError, EncodeError, decode, encode
from .errors import DecodeFailed, EncodeFailed, Unimplemented
from .server import Handler, ServerBuilder

__all__ = ["Method", "ServiceDefinition", "ServiceClient"]


@dataclass(frozen=True)
class Method:
    """One remote method with its request and response message types."""

    name: str
    request_type: type
    response_type: type


class ServiceDefinition:
    """A named set of methods, served by an object with matching async methods."""

    def __init__(self, name: str, methods: Iterable[Method]) -> None:
        self.name = name
        self._methods: dict[str, Method] = {}
        for method in methods:
            if method.name in self._methods:
                raise ValueError(f"duplicate method {method.name} in {name}")
            self._methods[method.name] = method
        if not self._methods:
            raise ValueError("empty service is not allowed")

    @property
    def methods(self) -> tuple[Method, ...]:
        return tuple(self._methods.values())

    def __contains__(self, method_name: object) -> bool:
        return method_name in self._methods

    def method(self, name: str) -> Method:
        """Return the method called ``name``."""
        try:
            return self._methods[name]
        except KeyError:
            raise Unimplemented(f"unknown {name} in {self.name}") from None

    def _handler_factory(self, implementation: Any) -> Callable[[str], Handler]:
        def handler_for(method_name: str) -> Handler:
            method = self._methods.get(method_name)

            async def handle(request: bytes) -> bytes:
                if method is None:
                    raise Unimplemented(f"unknown {method_name} in {self.name}")
                try:
                    arguments = decode(method.request_type, request)
                except DecodeError as error:
                    raise DecodeFailed(error) from error
                reply = await getattr(implementation, method.name)(arguments)
                try:
                    return encode(reply)
                except EncodeError as error:
                    raise EncodeFailed(error) from error

            return handle

        return handler_for

    def add_service(self, implementation: Any, builder: ServerBuilder) -> None:
        """Register ``implementation`` with ``builder`` under this service's name."""
        missing = [name for name in self._methods if not callable(getattr(implementation, name, None))]
        if missing:
            raise TypeError(f"{type(implementation).__name__} lacks methods: {', '.join(missing)}")
        builder.add_service(self.name, self._handler_factory(implementation))

    def client(self, client: Client) -> ServiceClient:
        """Wrap ``client`` to call this service's methods."""
        return ServiceClient(self, client)


class ServiceClient:
    """Calls the methods of one service; each method is also an attribute."""

    def __init__(self, definition: ServiceDefinition, client: Client) -> None:
        self.definition = definition
        self.client = client

    def call(self, method: str, request: Any) -> Any:
        """Send ``request`` to ``method`` and return an awaitable of the reply."""
        spec = self.definition.method(method)
        return self.client.call(f"{self.definition.name}.{spec.name}", request, spec.response_type)

    def spawn(self, coro: Any) -> Any:
        return self.client.spawn(coro)

    def __getattr__(self, name: str) -> Callable[[Any], Any]:
        definition = self.__dict__.get("definition")
        if definition is not None and name in definition:
            return functools.partial(self.call, name)
        raise AttributeError(name)