"""JSON-RPC 2.0 wire forms: identifiers, messages and structured errors."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from typing import Any, Union

WIRE_VERSION = "2.0"

RequestID = Union[str, int, None]


class WireError(Exception):
    """A structured JSON-RPC error, as carried in the error member of a response."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        extra = "" if self.data is None else f", data={self.data!r}"
        return f"WireError(code={self.code}, message={self.message!r}{extra})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WireError):
            return NotImplemented
        return (self.code, self.message, self.data) == (other.code, other.message, other.data)

    def __hash__(self) -> int:
        return hash((self.code, self.message))

    def matches(self, other: object) -> bool:
        """Report whether ``other`` is a wire error with the same code."""
        return isinstance(other, WireError) and self.code == other.code

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object form of the error."""
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result

    @classmethod
    def from_dict(cls, data: Any) -> WireError:
        """Build an error from its JSON object form."""
        if not isinstance(data, Mapping):
            raise ValueError(f"wire error must be a JSON object, not {type(data).__name__}")
        code = data.get("code")
        if code is None:
            code = 0
        if (
            isinstance(code, bool)
            or not isinstance(code, (int, float))
            or (isinstance(code, float) and not code.is_integer())
        ):
            raise ValueError(f"invalid error code {code!r}")
        message = data.get("message")
        if message is None:
            message = ""
        if not isinstance(message, str):
            raise ValueError(f"invalid error message {message!r}")
        return cls(int(code), message, data.get("data"))


def new_error(code: int, message: str) -> WireError:
    """Return an error that encodes on the wire with the given code and message."""
    return WireError(code, message)


PARSE_ERROR = new_error(-32700, "JSON RPC parse error")
INVALID_REQUEST = new_error(-32600, "JSON RPC invalid request")
METHOD_NOT_FOUND = new_error(-32601, "JSON RPC method not found")
INVALID_PARAMS = new_error(-32602, "JSON RPC invalid params")
INTERNAL_ERROR = new_error(-32603, "JSON RPC internal error")
SERVER_OVERLOADED = new_error(-32000, "JSON RPC overloaded")
UNKNOWN_ERROR = new_error(-32001, "JSON RPC unknown error")
SERVER_CLOSING = new_error(-32004, "JSON RPC server is closing")
CLIENT_CLOSING = new_error(-32003, "JSON RPC client is closing")


def error_is(err: BaseException | None, target: Any) -> bool:
    """Report whether ``err`` or anything in its cause chain matches ``target``.

    Wire errors match by code; a class target matches by instance check.
    """
    if err is None or target is None:
        return err is target
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if current is target:
            return True
        if isinstance(target, type) and isinstance(current, target):
            return True
        if isinstance(current, WireError) and current.matches(target):
            return True
        current = current.__cause__
    return False


def make_id(value: Any) -> RequestID:
    """Coerce a decoded JSON value to a request identifier."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise new_error(PARSE_ERROR.code, f"{PARSE_ERROR.message}: invalid ID type bool")
    if isinstance(value, float):
        return int(value)
    if isinstance(value, (int, str)):
        return value
    raise new_error(PARSE_ERROR.code, f"{PARSE_ERROR.message}: invalid ID type {type(value).__name__}")


@dataclasses.dataclass
class Request:
    """A call (with an id) or a notification (without one)."""

    id: RequestID = None
    method: str = ""
    params: Any = None

    def is_call(self) -> bool:
        """Report whether this request expects a response."""
        return self.id is not None


@dataclasses.dataclass
class Response:
    """A reply to a call, carrying either a result or an error."""

    id: RequestID = None
    result: Any = None
    error: BaseException | None = None


Message = Union[Request, Response]


def _encode_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _to_json_value(obj: Any) -> Any:
    if obj is None:
        return None
    return json.loads(json.dumps(obj, default=_encode_default, allow_nan=False))


def new_notification(method: str, params: Any) -> Request:
    """Build a notification; params are normalised to their JSON form."""
    return Request(method=method, params=_to_json_value(params))


def new_call(id: RequestID, method: str, params: Any) -> Request:
    """Build a call with the given identifier."""
    return Request(id=id, method=method, params=_to_json_value(params))


def new_response(id: RequestID, result: Any, error: BaseException | None) -> Response:
    """Build a response to the call with the given identifier."""
    return Response(id=id, result=_to_json_value(result), error=error)


def _wire_error(err: BaseException | None) -> WireError | None:
    if err is None:
        return None
    if isinstance(err, WireError):
        return err
    code = 0
    cause = err.__cause__
    while cause is not None:
        if isinstance(cause, WireError):
            code = cause.code
            break
        cause = cause.__cause__
    return WireError(code, str(err))


def _wire_dict(msg: Message) -> dict[str, Any]:
    if not isinstance(msg, (Request, Response)):
        raise TypeError(f"not a JSON-RPC message: {type(msg).__name__}")
    wire: dict[str, Any] = {"jsonrpc": WIRE_VERSION}
    if msg.id is not None and msg.id != "":
        wire["id"] = msg.id
    if isinstance(msg, Request):
        if msg.method:
            wire["method"] = msg.method
        if msg.params is not None:
            wire["params"] = msg.params
    else:
        if msg.result is not None:
            wire["result"] = msg.result
        error = _wire_error(msg.error)
        if error is not None:
            wire["error"] = error.to_dict()
    return wire


def encode_message(msg: Message) -> bytes:
    """Encode a message in compact JSON."""
    return json.dumps(
        _wire_dict(msg),
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
        default=_encode_default,
    ).encode("utf-8")


def encode_indent(msg: Message, prefix: str, indent: str) -> bytes:
    """Encode a message with each nested line starting with prefix and indent."""
    text = json.dumps(
        _wire_dict(msg),
        indent=indent,
        separators=(",", ": "),
        ensure_ascii=False,
        allow_nan=False,
        default=_encode_default,
    )
    return text.replace("\n", "\n" + prefix).encode("utf-8")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def decode_message(data: bytes | str) -> Message:
    """Decode one wire message into a Request or a Response."""
    try:
        wire = json.loads(data, parse_constant=_reject_constant)
    except ValueError as exc:
        raise ValueError(f"unmarshaling jsonrpc message: {exc}") from exc
    if not isinstance(wire, dict):
        raise ValueError("unmarshaling jsonrpc message: expected a JSON object")

    version = wire.get("jsonrpc", "")
    if version != WIRE_VERSION:
        raise ValueError(f'invalid message version tag "{version}"; expected "{WIRE_VERSION}"')

    method = wire.get("method", "")
    if method is None:
        method = ""
    if not isinstance(method, str):
        raise ValueError(f"unmarshaling jsonrpc message: invalid method {method!r}")

    raw_error = wire.get("error")
    error: WireError | None = None
    if raw_error is not None:
        try:
            error = WireError.from_dict(raw_error)
        except ValueError as exc:
            raise ValueError(f"unmarshaling jsonrpc message: {exc}") from exc

    id_value = make_id(wire.get("id"))
    if method:
        return Request(id=id_value, method=method, params=wire.get("params"))
    if id_value is None:
        raise new_error(INVALID_REQUEST.code, INVALID_REQUEST.message)
    return Response(id=id_value, result=wire.get("result"), error=error)