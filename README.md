# a2akit

This package provides building blocks for agent-to-agent (A2A) communication in Python. It uses only the standard library.

- `a2akit.jsonrpc2` implements JSON-RPC 2.0:
  - `wire`: messages and errors
  - `frame`: framers
  - `handlers`: handlers and contexts
  - `calls` and `connection`: bidirectional connections
  - `net`: listeners and dialers
  - `serve`: the server and the idle listener
- `a2akit.protocol` holds the A2A paths and the standard and A2A-specific error values.
- `a2akit.auth` holds the `User` abstraction and `UnauthenticatedUser`.

## Installation

```
pip install a2akit
```

## Wire messages

```python
from a2akit.jsonrpc2.wire import new_call, encode_message, decode_message

call = new_call(1, "ping", None)
data = encode_message(call)          # b'{"jsonrpc":"2.0","id":1,"method":"ping"}'
message = decode_message(data)
assert message.is_call()
```

`decode_message` returns a `Request` or a `Response`. It raises an error in these cases:

- Invalid JSON, a wrong `jsonrpc` version tag, or a malformed `error` member raises `ValueError`.
- An identifier of an invalid type raises `WireError` with the parse-error code.
- A response without an id raises `WireError` with the invalid-request code.

Errors match by code: use `error_is(err, target)` or `WireError.matches`. `error_is` also follows the `__cause__` chain.

## Protocol constants and errors

```python
from a2akit.protocol import AGENT_CARD_WELL_KNOWN_PATH, agent_card_url, new_error, TASK_NOT_FOUND

agent_card_url("https://agent.example.com")
# 'https://agent.example.com/.well-known/agent.json'

err = new_error(-32001, "task not found")
assert err.matches(TASK_NOT_FOUND)
```

## Framing

- `raw_framer()` sends bare, concatenated JSON values.
- `header_framer()` puts a `Content-Length` header block before each message.

When a binder supplies no framer, connections use the header framer.

## Connections and servers

A `Server` accepts streams from a `Listener`. It runs a `Connection` over each stream, bound through a `Binder` or a `ConnectionOptions`. The binder supplies the handler, the preempter and the framer.

A request first goes to the preempter, if there is one. The preempter can raise `NotHandled` to pass the request to the handler. Requests reach the handler one at a time, in order. A handler can raise `AsyncResponse` and answer later with `Connection.respond`.

```python
from a2akit.jsonrpc2.handlers import Context, FuncHandler
from a2akit.jsonrpc2.calls import ConnectionOptions
from a2akit.jsonrpc2.net import net_pipe_listener
from a2akit.jsonrpc2.serve import Server, dial

def handle(ctx, request):
    return "pong"

ctx = Context()
listener = net_pipe_listener()
server = Server(ctx, listener, ConnectionOptions(handler=FuncHandler(handle)))

conn = dial(ctx, listener.dialer(), ConnectionOptions(), None)
print(conn.call(ctx, "ping", None).wait(ctx))   # 'pong'

conn.close()
server.shutdown()   # closes the listener
server.wait()
```

If the listener is closed without `shutdown`, `server.wait()` raises the error that `accept` raised.

`net_listener("tcp", "localhost:0")` listens on a socket. The `tcp4`, `tcp6` and `unix` networks also work.

`new_idle_listener(timeout, listener)` wraps a listener. The wrapper closes itself once it has had no active connections for `timeout` seconds. After that, `accept` and `close` raise `IdleTimeout`.

## Authentication

`UnauthenticatedUser` is a null-object `User`. It is never authenticated, and its user name is empty.

## What is not included

This package does not include:

- A2A task, message or artifact types
- an agent card resolver
- an HTTP transport
- a ready-made A2A client or agent server

It provides the JSON-RPC layer and the protocol constants that such components would build on.

## Tests

```
pip install -e ".[test]"
pytest
```