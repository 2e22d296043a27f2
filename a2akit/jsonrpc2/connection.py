"""Bidirectional JSON-RPC connections that match responses to their calls."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Iterator
from concurrent.futures import CancelledError
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .calls import AsyncCall, Binder, ConnectionConfig
from .frame import Reader, Writer, header_framer
from .handlers import AsyncResponse, Context, DefaultHandler, Handler, NotHandled, Preempter
from .state import InFlightState
from .wire import (
    CLIENT_CLOSING,
    INTERNAL_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    SERVER_CLOSING,
    UNKNOWN_ERROR,
    Message,
    Request,
    RequestID,
    Response,
    WireError,
    error_is,
    new_call,
    new_notification,
    new_response,
)


def _wrap(base: WireError, detail: str) -> WireError:
    """Return an error with the code of ``base`` and a more detailed message."""
    error = WireError(base.code, f"{base.message}: {detail}")
    error.__cause__ = base
    return error


@dataclass
class _IncomingRequest:
    request: Request
    ctx: Context

    @property
    def id(self) -> RequestID:
        return self.request.id

    @property
    def method(self) -> str:
        return self.request.method

    def is_call(self) -> bool:
        return self.request.is_call()


class Connection:
    """One end of a JSON-RPC stream; it both sends and serves calls."""

    def __init__(
        self,
        closer: Any,
        on_done: Optional[Callable[[], None]] = None,
        on_internal_error: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        self._seq = itertools.count(1)
        self._state_lock = threading.Lock()
        self._state = InFlightState(closer=closer)
        self._done = threading.Event()
        self._writer_lock = threading.Lock()
        self._writer: Writer | None = None
        self._handler: Handler = DefaultHandler()
        self._on_done = on_done
        self._on_internal_error = on_internal_error

    def __repr__(self) -> str:
        return f"Connection({'done' if self._done.is_set() else 'open'})"

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @contextmanager
    def _in_flight(self) -> Iterator[InFlightState]:
        """Lock the in-flight state, then close the stream if it became idle and is shutting down."""
        with self._state_lock:
            state = self._state
            yield state
            if self._done.is_set():
                if not state.idle():
                    raise RuntimeError("jsonrpc2: state became non-idle after the connection was done")
                return
            if state.idle() and state.shutting_down(UNKNOWN_ERROR) is not None:
                if state.closer is not None:
                    closer, state.closer = state.closer, None
                    try:
                        closer.close()
                    except Exception as exc:
                        state.close_error = exc
                if not state.reading:
                    if self._on_done is not None:
                        self._on_done()
                    self._done.set()

    def _start(self, reader: Reader, preempter: Preempter | None) -> None:
        with self._in_flight() as state:
            if not self._done.is_set():
                state.reading = True
                threading.Thread(
                    target=self._read_incoming,
                    args=(reader, preempter),
                    name="jsonrpc2-reader",
                    daemon=True,
                ).start()

    def notify(self, ctx: Context | None, method: str, params: Any) -> None:
        """Send a notification; no response is awaited."""
        error: BaseException | None = None
        with self._in_flight() as state:
            if not state.outgoing_calls and not state.incoming_by_id:
                error = state.shutting_down(CLIENT_CLOSING)
            if error is None:
                state.outgoing_notifications += 1
        if error is not None:
            raise error
        try:
            try:
                notification = new_notification(method, params)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"marshaling notify parameters: {exc}") from exc
            self._write(ctx, notification)
        finally:
            with self._in_flight() as state:
                state.outgoing_notifications -= 1

    def call(self, ctx: Context | None, method: str, params: Any) -> AsyncCall:
        """Send a call and return a handle to await its response.

        If sending fails, the handle is already ready and holds the error.
        """
        call_id = next(self._seq)
        pending = AsyncCall(call_id)
        try:
            request = new_call(call_id, method, params)
        except (TypeError, ValueError) as exc:
            error = ValueError(f"marshaling call parameters: {exc}")
            error.__cause__ = exc
            pending._retire(Response(id=call_id, error=error))
            return pending

        closing: BaseException | None = None
        with self._in_flight() as state:
            closing = state.shutting_down(CLIENT_CLOSING)
            if closing is None:
                state.outgoing_calls[call_id] = pending
        if closing is not None:
            pending._retire(Response(id=call_id, error=closing))
            return pending

        try:
            self._write(ctx, request)
        except Exception as exc:
            with self._in_flight() as state:
                if state.outgoing_calls.get(call_id) is pending:
                    del state.outgoing_calls[call_id]
                    pending._retire(Response(id=call_id, error=exc))
        return pending

    def respond(self, id: RequestID, result: Any, error: BaseException | None) -> None:
        """Deliver the response to a call whose handler raised AsyncResponse."""
        with self._in_flight() as state:
            request = state.incoming_by_id.get(id)
        if request is None:
            raise self._internal_error(f"Request not found for ID {id!r}")
        if isinstance(error, AsyncResponse):
            error = self._internal_error(f"Respond called with AsyncResponse for {request.method!r}")
        failure = self._process_result("respond", request, result, error)
        if failure is not None:
            raise failure

    def cancel(self, id: RequestID) -> None:
        """Cancel the context of the incoming call with this id, if it is active."""
        with self._in_flight() as state:
            request = state.incoming_by_id.get(id)
        if request is not None:
            request.ctx.cancel()

    def wait(self) -> None:
        """Block until the connection is fully closed; raise the stream's close error, if any."""
        self._done.wait()
        with self._in_flight() as state:
            error = state.close_error
        if error is not None:
            raise error

    def close(self) -> None:
        """Stop taking new work, let in-flight work finish, then close the stream."""
        with self._in_flight() as state:
            state.conn_closing = True
        self.wait()

    def _read_incoming(self, reader: Reader, preempter: Preempter | None) -> None:
        error: BaseException
        while True:
            try:
                msg: Message = reader.read(None)
            except Exception as exc:
                error = exc
                break
            if isinstance(msg, Request):
                self._accept_request(msg, preempter)
            elif isinstance(msg, Response):
                with self._in_flight() as state:
                    pending = state.outgoing_calls.pop(msg.id, None)
                    if pending is not None:
                        pending._retire(msg)
            else:
                self._internal_error(f"Read returned an unexpected message of type {type(msg).__name__}")

        with self._in_flight() as state:
            state.reading = False
            state.read_error = error
            for call_id, pending in state.outgoing_calls.items():
                pending._retire(Response(id=call_id, error=error))
            state.outgoing_calls = {}

    def _accept_request(self, msg: Request, preempter: Preempter | None) -> None:
        request = _IncomingRequest(request=msg, ctx=Context())
        error: BaseException | None = None
        with self._in_flight() as state:
            state.incoming += 1
            if request.is_call():
                if state.incoming_by_id.get(request.id) is not None:
                    error = _wrap(INVALID_REQUEST, f"request ID {request.id!r} already in use")
                    request.request.id = None
                else:
                    state.incoming_by_id[request.id] = request
                    error = state.shutting_down(SERVER_CLOSING)
        if error is not None:
            self._process_result("accept_request", request, None, error)
            return

        if preempter is not None:
            result: Any = None
            preempt_error: BaseException | None = None
            try:
                result = preempter.preempt(request.ctx, request.request)
            except Exception as exc:
                preempt_error = exc
            if request.is_call() and error_is(preempt_error, AsyncResponse):
                return
            if not error_is(preempt_error, NotHandled):
                self._process_result(preempter, request, result, preempt_error)
                return

        with self._in_flight() as state:
            error = state.shutting_down(SERVER_CLOSING)
            if error is None:
                state.handler_queue.append(request)
                if not state.handler_running:
                    state.handler_running = True
                    threading.Thread(
                        target=self._handle_async, name="jsonrpc2-handler", daemon=True
                    ).start()
        if error is not None:
            self._process_result("accept_request", request, None, error)

    def _handle_async(self) -> None:
        while True:
            request: _IncomingRequest | None = None
            with self._in_flight() as state:
                if state.handler_queue:
                    request = state.handler_queue.popleft()
                else:
                    state.handler_running = False
            if request is None:
                return

            if request.ctx.is_cancelled():
                error: BaseException = CancelledError()
                with self._in_flight() as state:
                    if state.write_error is not None:
                        error = _wrap(SERVER_CLOSING, str(state.write_error))
                self._process_result("handle_async", request, None, error)
                continue

            result: Any = None
            handle_error: BaseException | None = None
            try:
                result = self._handler.handle(request.ctx, request.request)
            except Exception as exc:
                handle_error = exc
            self._process_result(self._handler, request, result, handle_error)

    def _process_result(
        self,
        source: Any,
        request: _IncomingRequest,
        result: Any,
        error: BaseException | None,
    ) -> BaseException | None:
        """Send the response for a finished request and retire it."""
        if isinstance(error, AsyncResponse):
            if not request.is_call():
                return self._internal_error(
                    f"{source!r} raised AsyncResponse for a {request.method!r} Request without an ID"
                )
            return None
        if isinstance(error, NotHandled) or error is METHOD_NOT_FOUND:
            error = _wrap(METHOD_NOT_FOUND, f'"{request.method}"')

        if result is not None and error is not None:
            self._internal_error(
                f"{source!r} returned a result with an error for {request.method}:\n{error}\n{result!r}"
            )
            result = None

        if request.is_call():
            if result is None and error is None:
                error = self._internal_error(
                    f"{source!r} returned no result and no error for a {request.method!r} "
                    "Request that requires a Response"
                )
            response: Response | None = None
            try:
                response = new_response(request.id, result, error)
            except (TypeError, ValueError) as exc:
                response_error: BaseException = exc
            with self._in_flight() as state:
                state.incoming_by_id.pop(request.id, None)
            if response is not None:
                try:
                    self._write(None, response)
                except Exception as exc:
                    if error is None:
                        error = exc
            else:
                error = self._internal_error(
                    f"{source!r} returned a malformed result for {request.method!r}: {response_error}"
                )

        request.ctx.cancel()
        with self._in_flight() as state:
            if state.incoming == 0:
                raise RuntimeError("jsonrpc2: result processed when the incoming count is already zero")
            state.incoming -= 1
        return None

    def _write(self, ctx: Context | None, msg: Message) -> None:
        """Write one message; writes never interleave."""
        with self._writer_lock:
            writer = self._writer
            if writer is None:
                raise RuntimeError("jsonrpc2: connection has no writer")
            try:
                writer.write(ctx, msg)
            except Exception as exc:
                if ctx is None or not ctx.is_cancelled():
                    with self._in_flight() as state:
                        if state.write_error is None:
                            state.write_error = exc
                            for incoming in state.incoming_by_id.values():
                                incoming.ctx.cancel()
                raise

    def _internal_error(self, message: str) -> WireError:
        """Report an internal error to the callback, or raise if there is none."""
        if self._on_internal_error is None:
            raise RuntimeError(f"jsonrpc2: {message}")
        self._on_internal_error(RuntimeError(message))
        return _wrap(INTERNAL_ERROR, message)


def new_connection(ctx: Context | None, config: ConnectionConfig) -> Connection:
    """Create a connection over the configured reader and writer and start reading."""
    conn = Connection(
        closer=config.closer,
        on_done=config.on_done,
        on_internal_error=config.on_internal_error,
    )
    conn._handler = config.bind(conn)
    conn._writer = config.writer
    conn._start(config.reader, config.preempter)
    return conn


def bind_connection(
    ctx: Context | None,
    stream: Any,
    binder: Binder,
    on_done: Optional[Callable[[], None]] = None,
) -> Connection:
    """Create a connection over a byte stream using the options from ``binder``.

    The connection closes itself once the stream breaks and in-flight work ends.
    """
    conn = Connection(closer=stream, on_done=on_done)
    options = binder.bind(ctx, conn)
    framer = options.framer if options.framer is not None else header_framer()
    conn._handler = options.handler if options.handler is not None else DefaultHandler()
    conn._on_internal_error = options.on_internal_error
    conn._writer = framer.writer(stream)
    conn._start(framer.reader(stream), options.preempter)
    return conn