"""A minimal JSON-RPC 2.0 implementation: wire format, framing, connections, listeners and servers."""