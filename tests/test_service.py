import asyncio
from dataclasses import dataclass

import pytest

from distlab.client import Client, RpcChannel
from distlab.codec import FieldType, decode, encode, proto_field
from distlab.errors import Canceled, DecodeFailed, Other, RpcError, Stopped, Unimplemented
from distlab.server import ServerBuilder
from distlab.service import Method, ServiceDefinition


@dataclass
class JunkArgs:
    x: int = proto_field(1, FieldType.INT64)


@dataclass
class JunkReply:
    x: str = proto_field(1, FieldType.STRING)


JUNK = ServiceDefinition(
    "junk",
    [
        Method("handler2", JunkArgs, JunkReply),
        Method("handler3", JunkArgs, JunkReply),
        Method("handler4", JunkArgs, JunkReply),
    ],
)


class JunkService:
    def __init__(self):
        self.log2 = []

    async def handler2(self, args):
        self.log2.append(args.x)
        return JunkReply(x=f"handler2-{args.x}")

    async def handler3(self, args):
        await asyncio.sleep(20)
        return JunkReply(x=f"handler3-{-args.x}")

    async def handler4(self, args):
        return JunkReply(x="pointer")


@dataclass
class Echo:
    x: int = proto_field(1, FieldType.INT64)


ECHO = ServiceDefinition("echo", [Method("ping", Echo, Echo)])


class EchoService:
    async def ping(self, message):
        return message


async def _serve(channel, server):
    async for rpc in channel:
        reply = rpc.take_response()
        try:
            reply.set_result(await server.dispatch(rpc.fq_name, rpc.request))
        except RpcError as error:
            reply.set_exception(error)


def _junk_server(junk):
    builder = ServerBuilder("test")
    JUNK.add_service(junk, builder)
    return builder.build()


@pytest.mark.asyncio
async def test_service_dispatch():
    builder = ServerBuilder("test")
    junk = JunkService()
    JUNK.add_service(junk, builder)
    prev_len = len(builder.services)
    with pytest.raises(Other):
        JUNK.add_service(junk, builder)
    assert len(builder.services) == prev_len
    server = builder.build()

    buf = await server.dispatch("junk.handler4", b"")
    assert decode(JunkReply, buf) == JunkReply(x="pointer")

    with pytest.raises(DecodeFailed):
        await server.dispatch("junk.handler4", b"bad message")
    with pytest.raises(Unimplemented):
        await server.dispatch("badjunk.handler4", b"")
    with pytest.raises(Unimplemented) as info:
        await server.dispatch("junk.badhandler", b"")
    assert info.value == Unimplemented("unknown badhandler in junk")


@pytest.mark.asyncio
async def test_client_rpc_with_manual_replies():
    channel = RpcChannel()
    client = JUNK.client(Client("test_client", channel))

    pending = client.handler4(JunkArgs(x=777))
    rpc = await channel.receive()
    reply = JunkReply(x="boom!!!")
    rpc.take_response().set_result(encode(reply))
    assert rpc.client_name == "test_client"
    assert rpc.fq_name == "junk.handler4"
    assert rpc.request
    assert await pending == reply

    pending = client.handler4(JunkArgs(x=777))
    rpc = await channel.receive()
    rpc.take_response().cancel()
    with pytest.raises(Canceled):
        await pending

    channel.close()
    with pytest.raises(Stopped):
        client.handler4(JunkArgs())


@pytest.mark.asyncio
async def test_calls_through_served_channel():
    junk = JunkService()
    server = _junk_server(junk)
    channel = RpcChannel()
    serving = asyncio.get_running_loop().create_task(_serve(channel, server))
    client = JUNK.client(Client("test_client", channel))

    for i in range(17):
        reply = await client.call("handler2", JunkArgs(x=i))
        assert reply.x == f"handler2-{i}"
    assert await client.handler4(JunkArgs()) == JunkReply(x="pointer")
    assert junk.log2 == list(range(17))
    assert server.count() == 18

    channel.close()
    await serving


@pytest.mark.asyncio
async def test_echo_round_trip():
    builder = ServerBuilder("echo_server")
    ECHO.add_service(EchoService(), builder)
    server = builder.build()
    channel = RpcChannel()
    serving = asyncio.get_running_loop().create_task(_serve(channel, server))
    client = ECHO.client(Client("client", channel))

    assert await client.ping(Echo(x=777)) == Echo(x=777)

    channel.close()
    await serving


@pytest.mark.asyncio
async def test_spawn_runs_on_client():
    client = JUNK.client(Client("c", RpcChannel()))

    async def work():
        return 5

    assert await client.spawn(work()) == 5


def test_unknown_method_attribute():
    client = JUNK.client(Client("c", RpcChannel()))
    with pytest.raises(AttributeError):
        client.handler9
    with pytest.raises(Unimplemented):
        client.call("handler9", JunkArgs())


def test_empty_service_rejected():
    with pytest.raises(ValueError):
        ServiceDefinition("empty", [])


def test_duplicate_method_rejected():
    with pytest.raises(ValueError):
        ServiceDefinition("dup", [Method("a", JunkArgs, JunkReply), Method("a", JunkArgs, JunkReply)])


def test_implementation_missing_methods():
    builder = ServerBuilder("test")
    with pytest.raises(TypeError):
        JUNK.add_service(EchoService(), builder)
    assert len(builder.services) == 0


def test_definition_lists_methods():
    assert [method.name for method in JUNK.methods] == ["handler2", "handler3", "handler4"]
    assert "handler2" in JUNK
    assert JUNK.method("handler4").response_type is JunkReply