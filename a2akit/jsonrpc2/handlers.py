"""Handler interfaces, cancellation contexts and sentinel exceptions."""

from __future__ import annotations

import threading
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from .wire import Request


class NotHandled(Exception):
    """Raised by a handler or preempter that did not handle a request."""

    def __init__(self, message: str = "JSON RPC not handled") -> None:
        super().__init__(message)


class AsyncResponse(Exception):
    """Raised by a handler that will respond to a call later."""

    def __init__(self, message: str = "JSON RPC asynchronous response") -> None:
        super().__init__(message)


class IdleTimeout(Exception):
    """Raised when serving timed out waiting for new connections."""

    def __init__(self, message: str = "timed out waiting for new connections") -> None:
        super().__init__(message)


class Context:
    """A cancellation signal; cancelling a context cancels every child of it."""

    def __init__(self, parent: Context | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()
        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: Context) -> None:
        with self._lock:
            cancelled = self._event.is_set()
            if not cancelled:
                self._children.add(child)
        if cancelled:
            child.cancel()

    def child(self) -> Context:
        """Return a new context that is cancelled along with this one."""
        return Context(self)

    def cancel(self) -> None:
        """Cancel this context and all contexts derived from it."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            children = list(self._children)
            self._children.clear()
        for child in children:
            child.cancel()

    def is_cancelled(self) -> bool:
        """Report whether the context has been cancelled."""
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or the timeout passes; return whether cancelled."""
        return self._event.wait(timeout)


class Handler(ABC):
    """Handles requests that no preempter took."""

    @abstractmethod
    def handle(self, ctx: Context, request: Request) -> Any:
        """Return a result, raise an error, NotHandled, or AsyncResponse for a call."""


class Preempter(ABC):
    """Sees each incoming request before it is queued for the handler."""

    @abstractmethod
    def preempt(self, ctx: Context, request: Request) -> Any:
        """Handle the request now, or raise NotHandled to queue it. Must not block."""


class DefaultHandler(Handler, Preempter):
    """Handles nothing."""

    def preempt(self, ctx: Context, request: Request) -> Any:
        raise NotHandled()

    def handle(self, ctx: Context, request: Request) -> Any:
        raise NotHandled()


@dataclass(frozen=True)
class FuncHandler(Handler):
    """A handler backed by a plain function."""

    func: Callable[[Context, Request], Any]

    def handle(self, ctx: Context, request: Request) -> Any:
        return self.func(ctx, request)


@dataclass(frozen=True)
class FuncPreempter(Preempter):
    """A preempter backed by a plain function."""

    func: Callable[[Context, Request], Any]

    def preempt(self, ctx: Context, request: Request) -> Any:
        return self.func(ctx, request)


class AsyncResult:
    """Completion of a background operation that remembers its first error."""

    def __init__(self) -> None:
        self._ready = threading.Event()
        self._lock = threading.Lock()
        self._error: BaseException | None = None

    def done(self) -> None:
        """Mark the operation finished."""
        self._ready.set()

    def wait(self) -> None:
        """Block until finished, then raise the first recorded error, if any."""
        self._ready.wait()
        with self._lock:
            error = self._error
        if error is not None:
            raise error

    def set_error(self, error: BaseException | None) -> None:
        """Record an error unless one was already recorded."""
        with self._lock:
            if self._error is None:
                self._error = error