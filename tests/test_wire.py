import json
from dataclasses import dataclass

import pytest

from a2akit.jsonrpc2.wire import (
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    Request,
    Response,
    WireError,
    decode_message,
    encode_indent,
    encode_message,
    error_is,
    make_id,
    new_call,
    new_error,
    new_notification,
    new_response,
)


def _compact(text: str) -> bytes:
    return json.dumps(json.loads(text), separators=(",", ":")).encode()


WIRE_CASES = [
    ("notification", new_notification("alive", None), '{"jsonrpc":"2.0","method":"alive"}'),
    ("call", new_call("msg1", "ping", None), '{"jsonrpc":"2.0","id":"msg1","method":"ping"}'),
    ("response", new_response("msg2", "pong", None), '{"jsonrpc":"2.0","id":"msg2","result":"pong"}'),
    ("numerical id", new_call(1, "poke", None), '{"jsonrpc":"2.0","id":1,"method":"poke"}'),
    (
        "computing fix edits",
        new_response(3, None, new_error(0, "computing fix edits")),
        """{
        "jsonrpc":"2.0",
        "id":3,
        "error":{
            "code":0,
            "message":"computing fix edits"
        }
    }""",
    ),
]


@pytest.mark.parametrize("name,msg,encoded", WIRE_CASES, ids=[c[0] for c in WIRE_CASES])
def test_wire_message_encodes(name, msg, encoded):
    assert encode_message(msg) == _compact(encoded)


@pytest.mark.parametrize("name,msg,encoded", WIRE_CASES, ids=[c[0] for c in WIRE_CASES])
def test_wire_message_decodes(name, msg, encoded):
    assert decode_message(encoded.encode()) == msg


def test_request_is_call():
    assert new_call(1, "ping", None).is_call() is True
    assert new_notification("alive", None).is_call() is False


def test_make_id_values():
    assert make_id(None) is None
    assert make_id(1.0) == 1
    assert make_id(7) == 7
    assert make_id("abc") == "abc"


@pytest.mark.parametrize("value", [[1], {"a": 1}, True])
def test_make_id_rejects_invalid_types(value):
    with pytest.raises(WireError) as info:
        make_id(value)
    assert error_is(info.value, PARSE_ERROR)


def test_decode_rejects_bad_version():
    with pytest.raises(ValueError, match="invalid message version tag"):
        decode_message(b'{"jsonrpc":"1.0","method":"x"}')


def test_decode_rejects_malformed_json():
    with pytest.raises(ValueError, match="unmarshaling jsonrpc message"):
        decode_message(b'{"jsonrpc":')


def test_decode_response_without_id_is_invalid_request():
    with pytest.raises(WireError) as info:
        decode_message(b'{"jsonrpc":"2.0","result":1}')
    assert error_is(info.value, INVALID_REQUEST)


def test_decode_float_id_becomes_int():
    msg = decode_message(b'{"jsonrpc":"2.0","id":4.0,"method":"m"}')
    assert msg == Request(id=4, method="m")


def test_decode_keeps_params():
    msg = decode_message(b'{"jsonrpc":"2.0","method":"join","params":["a","b"]}')
    assert msg.params == ["a", "b"]


def test_params_are_normalised_to_json_values():
    @dataclass
    class Cancel:
        ID: int

    assert new_call(1, "join", ("a", "b")).params == ["a", "b"]
    assert new_notification("cancel", Cancel(5)).params == {"ID": 5}


def test_unserialisable_params_raise():
    with pytest.raises(TypeError):
        new_call(1, "m", object())


def test_round_trip_call_with_params():
    msg = new_call("x", "one_string", "fish")
    assert decode_message(encode_message(msg)) == msg


def test_plain_exception_encodes_with_zero_code():
    data = json.loads(encode_message(Response(id=1, error=RuntimeError("boom"))))
    assert data["error"] == {"code": 0, "message": "boom"}


def test_wrapped_wire_error_keeps_code():
    err = RuntimeError('JSON RPC method not found: "ping"')
    err.__cause__ = METHOD_NOT_FOUND
    data = json.loads(encode_message(Response(id=2, error=err)))
    assert data["error"] == {"code": -32601, "message": 'JSON RPC method not found: "ping"'}


def test_encode_indent():
    out = encode_indent(new_call(1, "poke", None), ">", "  ")
    assert out == b'{\n>  "jsonrpc": "2.0",\n>  "id": 1,\n>  "method": "poke"\n>}'


def test_error_is_semantics():
    assert error_is(new_error(-32700, "different"), PARSE_ERROR)
    assert not error_is(new_error(-32600, "JSON RPC parse error"), PARSE_ERROR)
    assert not error_is(PARSE_ERROR, None)
    assert not error_is(ValueError("x"), PARSE_ERROR)
    wrapped = RuntimeError("outer")
    wrapped.__cause__ = PARSE_ERROR
    assert error_is(wrapped, PARSE_ERROR)


def test_wire_error_str_and_dict_round_trip():
    err = WireError(-32602, "Invalid params", "additional info")
    assert str(err) == "Invalid params"
    assert err.to_dict() == {"code": -32602, "message": "Invalid params", "data": "additional info"}
    assert WireError.from_dict(err.to_dict()) == err
    assert new_error(100, "").to_dict() == {"code": 100, "message": ""}


def test_wire_error_from_dict_defaults_and_errors():
    assert WireError.from_dict({"message": "test"}) == WireError(0, "test")
    assert WireError.from_dict({"code": -32000}) == WireError(-32000, "")
    with pytest.raises(ValueError):
        WireError.from_dict({"code": "invalid", "message": "test"})


def test_decode_response_with_error_and_data():
    msg = decode_message(b'{"jsonrpc":"2.0","id":9,"error":{"code":-32602,"message":"bad","data":[1]}}')
    assert msg == Response(id=9, error=WireError(-32602, "bad", [1]))