"""Serving connections from listeners, dialing servers, and idle shutdown."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from .calls import Binder
from .connection import Connection, bind_connection
from .handlers import AsyncResult, Context, IdleTimeout
from .net import Dialer, Listener


def dial(
    ctx: Context | None,
    dialer: Dialer,
    binder: Binder,
    on_done: Optional[Callable[[], None]] = None,
) -> Connection:
    """Open a stream with ``dialer`` and run a connection over it.

    The connection releases its own resources when the stream breaks; the
    caller may close it earlier. ``on_done`` is called once it is closed.
    """
    stream = dialer.dial(ctx)
    return bind_connection(ctx, stream, binder, on_done)


class Server:
    """Accepts connections from a listener in the background until it stops."""

    def __init__(self, ctx: Context | None, listener: Listener, binder: Binder) -> None:
        self._listener = listener
        self._binder = binder
        self._result = AsyncResult()
        self._shutdown_lock = threading.Lock()
        self._closing = False
        self._active_cond = threading.Condition()
        self._active = 0
        threading.Thread(
            target=self._run, args=(ctx,), name="jsonrpc2-server", daemon=True
        ).start()

    def __enter__(self) -> Server:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()
        self.wait()

    def wait(self) -> None:
        """Block until the server has stopped; raise the error that stopped it, if any."""
        self._result.wait()

    def shutdown(self) -> None:
        """Stop accepting new connections."""
        with self._shutdown_lock:
            if self._closing:
                return
            self._closing = True
        try:
            self._listener.close()
        except Exception:
            # The accept loop notices the closed listener; its close error is of no use here.
            pass

    def _connection_done(self) -> None:
        with self._active_cond:
            self._active -= 1
            self._active_cond.notify_all()

    def _run(self, ctx: Context | None) -> None:
        try:
            while True:
                try:
                    stream = self._listener.accept(ctx)
                except Exception as exc:
                    with self._shutdown_lock:
                        closing = self._closing
                    if not closing:
                        self._result.set_error(exc)
                    break
                with self._active_cond:
                    self._active += 1
                try:
                    bind_connection(ctx, stream, self._binder, self._connection_done)
                except Exception as exc:
                    self._connection_done()
                    self._result.set_error(exc)
                    try:
                        stream.close()
                    except Exception:
                        pass
            with self._active_cond:
                self._active_cond.wait_for(lambda: self._active == 0)
        finally:
            self._result.done()


class _IdleConn:
    """A stream accepted through an idle listener; closing it is counted once."""

    def __init__(self, wrapped: Any, listener: IdleListener) -> None:
        self._wrapped = wrapped
        self._listener = listener
        self._lock = threading.Lock()
        self._closed = False

    def __getattr__(self, name: str) -> Any:
        if name in ("_wrapped", "_listener", "_lock", "_closed"):
            raise AttributeError(name)
        return getattr(self._wrapped, name)

    def __enter__(self) -> _IdleConn:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        try:
            self._wrapped.close()
        finally:
            with self._lock:
                first = not self._closed
                self._closed = True
            if first:
                self._listener._conn_closed()


class IdleListener(Listener):
    """A listener that closes itself after a period with no active connections.

    Once that happens, accept and close raise IdleTimeout.
    """

    def __init__(self, timeout: float, wrapped: Listener) -> None:
        self._wrapped = wrapped
        self._timeout = timeout
        self._lock = threading.Lock()
        self._active = 0
        self._closed = False
        self._timed_out = False
        self._timer: threading.Timer | None = None
        with self._lock:
            self._start_timer()

    def _start_timer(self) -> None:
        timer = threading.Timer(self._timeout, lambda: self._expired(timer))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _expired(self, timer: threading.Timer) -> None:
        with self._lock:
            if self._timer is not timer:
                return
            self._timer = None
            try:
                self._wrapped.close()
            finally:
                self._timed_out = True

    def accept(self, ctx: Context | None) -> Any:
        """Accept a connection; a connection that races with the idle timeout is dropped."""
        stream: Any = None
        error: BaseException | None = None
        try:
            stream = self._wrapped.accept(ctx)
        except Exception as exc:
            error = exc

        with self._lock:
            if self._timed_out:
                if stream is not None:
                    stream.close()
                raise IdleTimeout()
            if error is not None:
                raise error
            if self._closed:
                return _IdleConn(stream, self)
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
                self._active = 1
            else:
                self._active += 1
            return _IdleConn(stream, self)

    def close(self) -> None:
        """Close the wrapped listener; raise IdleTimeout if it already timed out."""
        with self._lock:
            if self._timed_out:
                raise IdleTimeout()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._closed = True
        self._wrapped.close()

    def dialer(self) -> Dialer | None:
        return self._wrapped.dialer()

    def _conn_closed(self) -> None:
        with self._lock:
            if self._closed:
                return
            if self._timed_out:
                raise RuntimeError("jsonrpc2: idle timer fired before the last active connection was closed")
            if self._timer is not None:
                raise RuntimeError("jsonrpc2: idle timer running before the last active connection was closed")
            self._active -= 1
            if self._active == 0:
                self._start_timer()


def new_idle_listener(timeout: float, wrapped: Listener) -> IdleListener:
    """Wrap ``wrapped`` so it closes after ``timeout`` seconds with no active connections."""
    return IdleListener(timeout, wrapped)