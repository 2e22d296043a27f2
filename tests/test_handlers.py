import threading

import pytest

from a2akit.jsonrpc2.handlers import (
    AsyncResult,
    Context,
    DefaultHandler,
    FuncHandler,
    FuncPreempter,
    Handler,
    IdleTimeout,
    NotHandled,
    Preempter,
)
from a2akit.jsonrpc2.wire import Request


def test_default_handler_handles_nothing():
    handler = DefaultHandler()
    req = Request(id=1, method="ping")
    with pytest.raises(NotHandled, match="JSON RPC not handled"):
        handler.handle(Context(), req)
    with pytest.raises(NotHandled):
        handler.preempt(Context(), req)


def test_idle_timeout_message():
    assert "timed out waiting for new connections" in str(IdleTimeout())


def test_func_handler_passes_arguments_and_result():
    seen = []

    def func(ctx, req):
        seen.append((ctx, req))
        return req.method

    ctx = Context()
    req = Request(id=1, method="ping")
    assert FuncHandler(func).handle(ctx, req) == "ping"
    assert seen == [(ctx, req)]


def test_func_preempter_propagates_errors():
    def func(ctx, req):
        raise NotHandled()

    with pytest.raises(NotHandled):
        FuncPreempter(func).preempt(Context(), Request(method="x"))


def test_abstract_interfaces_cannot_be_instantiated():
    with pytest.raises(TypeError):
        Handler()
    with pytest.raises(TypeError):
        Preempter()


def test_context_cancel_propagates_to_children():
    parent = Context()
    child = parent.child()
    grandchild = child.child()
    assert not grandchild.is_cancelled()
    parent.cancel()
    assert child.is_cancelled()
    assert grandchild.is_cancelled()


def test_child_cancel_does_not_affect_parent():
    parent = Context()
    child = parent.child()
    child.cancel()
    assert child.is_cancelled()
    assert not parent.is_cancelled()


def test_child_of_cancelled_context_starts_cancelled():
    parent = Context()
    parent.cancel()
    assert parent.child().is_cancelled()


def test_context_wait_times_out_when_not_cancelled():
    assert Context().wait(0.01) is False


def test_context_wait_wakes_on_cancel_from_other_thread():
    ctx = Context()
    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    try:
        assert ctx.wait(5) is True
    finally:
        timer.join()


def test_async_result_without_error():
    result = AsyncResult()
    result.done()
    assert result.wait() is None


def test_async_result_keeps_first_error():
    result = AsyncResult()
    first = RuntimeError("first")
    result.set_error(None)
    result.set_error(first)
    result.set_error(RuntimeError("second"))
    result.done()
    with pytest.raises(RuntimeError) as info:
        result.wait()
    assert info.value is first


def test_async_result_wait_blocks_until_done():
    result = AsyncResult()
    finished = threading.Event()
    box = {}

    def waiter():
        box["value"] = result.wait()
        finished.set()

    thread = threading.Thread(target=waiter)
    thread.start()
    assert not finished.wait(0.05)
    assert "value" not in box
    result.done()
    thread.join(5)
    assert finished.is_set()
    assert box == {"value": None}
    assert result.wait() is None