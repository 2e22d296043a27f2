from a2akit.jsonrpc2.calls import AsyncCall
from a2akit.jsonrpc2.state import InFlightState
from a2akit.jsonrpc2.wire import (
    CLIENT_CLOSING,
    SERVER_CLOSING,
    UNKNOWN_ERROR,
    error_is,
)


def test_fresh_state_is_idle_and_running():
    state = InFlightState()
    assert state.idle() is True
    assert state.shutting_down(SERVER_CLOSING) is None


def test_outgoing_call_makes_state_busy():
    state = InFlightState()
    state.outgoing_calls[1] = AsyncCall(1)
    assert state.idle() is False
    del state.outgoing_calls[1]
    assert state.idle() is True


def test_counters_and_handler_make_state_busy():
    for changes in ({"outgoing_notifications": 1}, {"incoming": 2}, {"handler_running": True}):
        state = InFlightState(**changes)
        assert state.idle() is False


def test_closing_returns_the_closing_error_itself():
    state = InFlightState(conn_closing=True, read_error=EOFError("eof"))
    assert state.shutting_down(CLIENT_CLOSING) is CLIENT_CLOSING


def test_read_error_wraps_closing_error():
    state = InFlightState(read_error=EOFError("eof"))
    err = state.shutting_down(SERVER_CLOSING)
    assert error_is(err, SERVER_CLOSING)
    assert str(err) == f"{SERVER_CLOSING}: eof"
    assert err.__cause__ is SERVER_CLOSING


def test_write_error_wraps_closing_error():
    state = InFlightState(write_error=OSError("broken pipe"))
    err = state.shutting_down(UNKNOWN_ERROR)
    assert error_is(err, UNKNOWN_ERROR)
    assert str(err).endswith("broken pipe")


def test_read_error_takes_precedence_over_write_error():
    state = InFlightState(read_error=EOFError("read side"), write_error=OSError("write side"))
    err = state.shutting_down(SERVER_CLOSING)
    assert "read side" in str(err)
    assert "write side" not in str(err)


def test_non_wire_closing_error_is_chained():
    closing = ValueError("stop")
    state = InFlightState(read_error=EOFError("eof"))
    err = state.shutting_down(closing)
    assert error_is(err, ValueError)
    assert str(err) == "stop: eof"


def test_states_do_not_share_containers():
    first = InFlightState()
    second = InFlightState()
    first.incoming_by_id[1] = object()
    first.handler_queue.append(object())
    assert second.incoming_by_id == {}
    assert len(second.handler_queue) == 0