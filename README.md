# distlab

Building blocks for writing and testing distributed systems in Python:

- **`distlab.codec`**: a protobuf-compatible wire codec for dataclass
  messages. Declare fields with `proto_field(tag, kind, repeated=False)`, where
  `kind` is a `FieldType` (`INT32`, `INT64`, `UINT32`, `UINT64`, `SINT32`,
  `SINT64`, `BOOL`, `ENUM`, `STRING`, `BYTES`). `encode`, `decode` and
  `encoded_len` work on the wire format. Scalars holding their default value are
  left out, repeated numeric fields are written packed, and unknown fields are
  skipped when decoding. Failures raise `EncodeError` or `DecodeError`.
- **`distlab.fixture`**: a small sample message, `Msg`, with a `MsgType`
  enumeration.
- **`distlab.server`, `distlab.client`, `distlab.service`**: an in-process
  asyncio RPC layer. Describe a service with `ServiceDefinition` and its
  `Method`s, register an implementation (an object with matching async methods)
  on a `ServerBuilder`, and call it through a `ServiceClient`, either with
  `call("method", request)` or as `client.method(request)`. A `Client` can carry
  `RpcHooks`: `before_dispatch` may raise to reject a request, and
  `after_dispatch` receives the reply bytes or the `RpcError` and returns the
  reply or raises.
- **`distlab.network`**: a simulated `Network` that routes calls from client
  end-points to servers through an `RpcChannel`. Clients start disabled and
  unconnected; `enable` and `connect` them. The network can delete servers
  (calls in flight then fail with `Stopped`), drop or delay messages
  (`set_reliable`, `set_long_delays`, `set_long_reordering`), and count the
  requests each server was asked to dispatch (`count`, `total_count`). It
  delivers requests once started, either as an async context manager or with
  `start()` inside a running event loop; `stop()` ends delivery.
- **`distlab.errors`**: the RPC failures, all subclasses of `RpcError`:
  `Unimplemented`, `EncodeFailed`, `DecodeFailed`, `Canceled`, `Timeout`,
  `Stopped` and `Other`. They compare equal by kind and arguments.
- **`distlab.checker`, `distlab.model`, `distlab.models`, `distlab.bitset`**:
  a linearizability checker for histories of `Operation`s or `Event`s against a
  `Model`. Each partition of a history is checked on its own thread. It comes
  with a key/value `KvModel` and `parse_kv_log` for reading key/value history
  logs.

## Installing

```
pip install .
```

The package has no runtime dependencies. To run the tests:

```
pip install ".[test]"
pytest
```

## Example: an echo service

```python
import asyncio
from dataclasses import dataclass

from distlab.codec import FieldType, proto_field
from distlab.network import Network
from distlab.server import ServerBuilder
from distlab.service import Method, ServiceDefinition


@dataclass
class Echo:
    x: int = proto_field(1, FieldType.INT64)


echo = ServiceDefinition("echo", [Method("ping", Echo, Echo)])


class EchoService:
    async def ping(self, request: Echo) -> Echo:
        return request


async def main() -> None:
    async with Network() as net:
        builder = ServerBuilder("echo_server")
        echo.add_service(EchoService(), builder)
        net.add_server(builder.build())

        client = echo.client(net.create_client("client"))
        net.enable("client", True)
        net.connect("client", "echo_server")

        reply = await client.ping(Echo(x=777))
        print(reply)


asyncio.run(main())
```

A call through a disabled or unconnected client waits a short random time and
then fails with `Timeout`.

## Example: checking linearizability

```python
from distlab.checker import check_operations
from distlab.model import Operation
from distlab.models import KvInput, KvModel, KvOutput, Op

history = [
    Operation(KvInput(Op.PUT, "x", "1"), 0, KvOutput(""), 10),
    Operation(KvInput(Op.GET, "x", ""), 20, KvOutput("1"), 30),
]
assert check_operations(KvModel(), history)
```

`check_events` takes a list of `Event`s instead, in the order given. Both accept
a `timeout` in seconds; `None` or 0 waits for ever. If the check runs out of
time, the result is the verdict reached so far and may be a false positive.

## What it does not do

Everything runs inside one process and one asyncio event loop: there is no
real network transport, no socket server and no command-line tool. The package
provides no storage or transaction layer of its own; the RPC layer and the
checker are meant to be used to build and test such systems.