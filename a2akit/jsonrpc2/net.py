"""Listeners and dialers over sockets and in-process pipes."""

from __future__ import annotations

import os
import socket
import threading
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import CancelledError
from typing import Any

from .handlers import Context

_ACCEPT_POLL = 0.1
_TCP_FAMILIES = {
    "tcp": socket.AF_UNSPEC,
    "tcp4": socket.AF_INET,
    "tcp6": socket.AF_INET6,
}


class ListenerClosed(OSError):
    """Raised when using a listener that has been closed."""

    def __init__(self, message: str = "use of closed network connection") -> None:
        super().__init__(message)


class _SocketStream:
    """A connected socket presented as a closable byte stream."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def recv(self, size: int) -> bytes:
        return self._sock.recv(size)

    def sendall(self, data: bytes) -> None:
        self._sock.sendall(data)

    def fileno(self) -> int:
        return self._sock.fileno()

    def close(self) -> None:
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()

    def __enter__(self) -> _SocketStream:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class Dialer(ABC):
    """Opens new byte streams to a listening server."""

    @abstractmethod
    def dial(self, ctx: Context | None) -> Any:
        """Return a new connected byte stream."""


class Listener(ABC):
    """Accepts inbound byte streams."""

    @abstractmethod
    def accept(self, ctx: Context | None) -> Any:
        """Block until a stream connects or the listener is closed."""

    @abstractmethod
    def close(self) -> None:
        """Stop listening; blocked accept and dial calls fail."""

    @abstractmethod
    def dialer(self) -> Dialer | None:
        """Return a dialer that connects to this listener, if there is one."""

    def __enter__(self) -> Listener:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _split_host_port(address: str) -> tuple[str, int]:
    if address.startswith("["):
        host, bracket, rest = address[1:].partition("]")
        if not bracket or not rest.startswith(":"):
            raise ValueError(f"address {address}: missing port in address")
        port_text = rest[1:]
    else:
        host, colon, port_text = address.rpartition(":")
        if not colon:
            raise ValueError(f"address {address}: missing port in address")
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"address {address}: invalid port") from None
    return host, port


def _join_host_port(host: str, port: int) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def _check_unix() -> None:
    if not hasattr(socket, "AF_UNIX"):
        raise ValueError("unix sockets are not supported on this platform")


class NetDialer(Dialer):
    """Dials a network address."""

    def __init__(self, network: str, address: str, timeout: float | None = None) -> None:
        if network not in _TCP_FAMILIES and network != "unix":
            raise ValueError(f"unknown network {network}")
        self.network = network
        self.address = address
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"NetDialer({self.network!r}, {self.address!r})"

    def dial(self, ctx: Context | None) -> _SocketStream:
        if ctx is not None and ctx.is_cancelled():
            raise CancelledError()
        if self.network == "unix":
            _check_unix()
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.settimeout(self.timeout)
                sock.connect(self.address)
                sock.settimeout(None)
            except OSError:
                sock.close()
                raise
            return _SocketStream(sock)

        host, port = _split_host_port(self.address)
        infos = socket.getaddrinfo(host or None, port, _TCP_FAMILIES[self.network], socket.SOCK_STREAM)
        last_error: OSError | None = None
        for family, kind, proto, _, sockaddr in infos:
            sock = socket.socket(family, kind, proto)
            try:
                sock.settimeout(self.timeout)
                sock.connect(sockaddr)
                sock.settimeout(None)
            except OSError as exc:
                sock.close()
                last_error = exc
                continue
            return _SocketStream(sock)
        if last_error is not None:
            raise last_error
        raise OSError(f"dial {self.network} {self.address}: no addresses found")


class NetListener(Listener):
    """Listens on a socket for inbound connections."""

    def __init__(self, sock: socket.socket, network: str) -> None:
        self._sock = sock
        self._network = network
        self._closed = threading.Event()
        self._sock.settimeout(_ACCEPT_POLL)
        self._path = sock.getsockname() if network == "unix" else None

    def accept(self, ctx: Context | None) -> _SocketStream:
        while True:
            if self._closed.is_set():
                raise ListenerClosed()
            try:
                conn, _ = self._sock.accept()
            except TimeoutError:
                continue
            except OSError as exc:
                if self._closed.is_set():
                    raise ListenerClosed() from exc
                raise
            conn.setblocking(True)
            return _SocketStream(conn)

    def close(self) -> None:
        """Stop listening; connections already accepted stay open."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._sock.close()
        if self._path:
            os.remove(self._path)

    def dialer(self) -> NetDialer:
        if self._network == "unix":
            return NetDialer("unix", self._path)
        host, port = self._sock.getsockname()[:2]
        return NetDialer(self._network, _join_host_port(host, port))


def net_listener(network: str, address: str) -> NetListener:
    """Listen on ``address`` over ``network`` (tcp, tcp4, tcp6 or unix)."""
    if network == "unix":
        _check_unix()
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(address)
            sock.listen()
        except OSError:
            sock.close()
            raise
        return NetListener(sock, network)
    if network not in _TCP_FAMILIES:
        raise ValueError(f"unknown network {network}")
    host, port = _split_host_port(address)
    infos = socket.getaddrinfo(
        host or None, port, _TCP_FAMILIES[network], socket.SOCK_STREAM, 0, socket.AI_PASSIVE
    )
    family, _, _, _, sockaddr = infos[0]
    return NetListener(socket.create_server(sockaddr, family=family), network)


class _Offer:
    def __init__(self, server: _SocketStream) -> None:
        self.server = server
        self.taken = False


class PipeListener(Listener, Dialer):
    """An in-process listener; each dial makes a new connected pair of streams."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._closed = False
        self._offers: deque[_Offer] = deque()

    def accept(self, ctx: Context | None) -> _SocketStream:
        with self._cond:
            while True:
                if self._closed:
                    raise ListenerClosed()
                if self._offers:
                    offer = self._offers.popleft()
                    offer.taken = True
                    self._cond.notify_all()
                    return offer.server
                self._cond.wait()

    def close(self) -> None:
        """Stop accepting and fail any pending dial."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def dialer(self) -> PipeListener:
        return self

    def dial(self, ctx: Context | None) -> _SocketStream:
        """Return the client end of a new pipe once the server end is accepted."""
        client_sock, server_sock = socket.socketpair()
        client, server = _SocketStream(client_sock), _SocketStream(server_sock)
        with self._cond:
            if not self._closed:
                offer = _Offer(server)
                self._offers.append(offer)
                self._cond.notify_all()
                while not offer.taken and not self._closed:
                    self._cond.wait()
                if offer.taken:
                    return client
                self._offers.remove(offer)
        client.close()
        server.close()
        raise ListenerClosed()


def net_pipe_listener() -> PipeListener:
    """Return a listener that can only be reached through its own dialer."""
    return PipeListener()