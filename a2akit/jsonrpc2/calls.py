"""Outgoing call handles and the options used to bind a connection."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from concurrent.futures import CancelledError
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from .handlers import Context, Handler, Preempter
from .wire import RequestID, Response

if TYPE_CHECKING:
    from .connection import Connection
    from .frame import Framer, Reader, Writer

_POLL_INTERVAL = 0.05


class AsyncCall:
    """The pending result of an outgoing call."""

    def __init__(self, id: RequestID) -> None:
        self.id = id
        self._ready = threading.Event()
        self._lock = threading.Lock()
        self._response: Response | None = None

    def __repr__(self) -> str:
        state = "ready" if self.is_ready() else "pending"
        return f"AsyncCall(id={self.id!r}, {state})"

    def is_ready(self) -> bool:
        """Report whether the response has arrived (or the call failed to send)."""
        return self._ready.is_set()

    def _retire(self, response: Response) -> None:
        """Deliver the response; a call may be retired only once."""
        with self._lock:
            if self._ready.is_set():
                raise RuntimeError(f"jsonrpc2: retire called twice for ID {self.id!r}")
            self._response = response
            self._ready.set()

    def wait(self, ctx: Context | None = None) -> Any:
        """Block for the response and return its result, or raise its error.

        Raises CancelledError if ``ctx`` is cancelled before the response arrives.
        """
        while not self._ready.wait(_POLL_INTERVAL):
            if ctx is not None and ctx.is_cancelled():
                raise CancelledError()
        response = self._response
        assert response is not None
        if response.error is not None:
            raise response.error
        return response.result


@dataclass
class ConnectionOptions:
    """Options for a new connection; bound unchanged to every connection."""

    framer: Optional[Framer] = None
    preempter: Optional[Preempter] = None
    handler: Optional[Handler] = None
    on_internal_error: Optional[Callable[[BaseException], None]] = None

    def bind(self, ctx: Context | None, conn: Connection) -> ConnectionOptions:
        """Return these options unmodified."""
        return self


class Binder(ABC):
    """Builds the options for each new connection."""

    @abstractmethod
    def bind(self, ctx: Context | None, conn: Connection) -> ConnectionOptions:
        """Return the options to use for ``conn``, which is not yet ready to use."""


@dataclass(frozen=True)
class FuncBinder(Binder):
    """A binder backed by a plain function."""

    func: Callable[[Optional[Context], "Connection"], ConnectionOptions]

    def bind(self, ctx: Context | None, conn: Connection) -> ConnectionOptions:
        return self.func(ctx, conn)


@dataclass
class ConnectionConfig:
    """Configuration of a bidirectional connection over an existing reader and writer."""

    reader: Reader
    writer: Writer
    closer: Any
    bind: Callable[["Connection"], Handler]
    preempter: Optional[Preempter] = None
    on_done: Optional[Callable[[], None]] = None
    on_internal_error: Optional[Callable[[BaseException], None]] = None