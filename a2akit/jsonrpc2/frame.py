"""Message framing: turning byte streams into streams of JSON-RPC messages."""

from __future__ import annotations

import codecs
import re
from abc import ABC, abstractmethod
from concurrent.futures import CancelledError
from typing import Any

from .handlers import Context
from .wire import Message, decode_message, encode_message

_CHUNK_SIZE = 4096
_JSON_WHITESPACE = " \t\n\r"
_SCALAR_END = re.compile(r'[\s,:\[\]{}"]')
_CONTENT_LENGTH = re.compile(r"[+-]?[0-9]+")
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


def _check_context(ctx: Context | None) -> None:
    if ctx is not None and ctx.is_cancelled():
        raise CancelledError()


def _read_some(stream: Any, size: int) -> bytes:
    """Read whatever is available, up to ``size`` bytes; empty means end of stream."""
    if hasattr(stream, "read1"):
        data = stream.read1(size)
    elif hasattr(stream, "recv"):
        data = stream.recv(size)
    else:
        data = stream.read(size)
    return bytes(data or b"")


def _write_all(stream: Any, data: bytes) -> None:
    if hasattr(stream, "sendall"):
        stream.sendall(data)
        return
    view = memoryview(data)
    while view:
        written = stream.write(view)
        if written is None:
            break
        view = view[written:]
    flush = getattr(stream, "flush", None)
    if callable(flush):
        flush()


def _encode(msg: Message) -> bytes:
    try:
        return encode_message(msg)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"marshaling message: {exc}") from exc


class Reader(ABC):
    """Reads one whole message per call."""

    @abstractmethod
    def read(self, ctx: Context | None) -> Message:
        """Return the next message; raise EOFError at the end of the stream."""


class Writer(ABC):
    """Writes one whole message per call."""

    @abstractmethod
    def write(self, ctx: Context | None, msg: Message) -> None:
        """Send a message to the stream."""


class Framer(ABC):
    """Wraps byte streams into message readers and writers."""

    @abstractmethod
    def reader(self, stream: Any) -> Reader:
        """Wrap a byte reader into a message reader."""

    @abstractmethod
    def writer(self, stream: Any) -> Writer:
        """Wrap a byte writer into a message writer."""


def _value_end(text: str, start: int, final: bool) -> int | None:
    """Return the index just past the JSON value at ``start``, or None if incomplete."""
    first = text[start]
    if first in "{[":
        depth = 0
        in_string = False
        escaped = False
        for index, char in enumerate(text[start:], start):
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char in "{[":
                depth += 1
            elif char in "}]":
                depth -= 1
                if depth == 0:
                    return index + 1
        return len(text) if final else None
    if first == '"':
        escaped = False
        for index, char in enumerate(text[start + 1 :], start + 1):
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                return index + 1
        return len(text) if final else None
    match = _SCALAR_END.search(text, start)
    if match is None:
        return len(text) if final else None
    return max(match.start(), start + 1)


class RawReader(Reader):
    """Reads bare JSON values, relying on their syntax for boundaries."""

    def __init__(self, stream: Any) -> None:
        self._stream = stream
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._text = ""
        self._eof = False

    def _fill(self) -> None:
        chunk = _read_some(self._stream, _CHUNK_SIZE)
        if not chunk:
            self._eof = True
        self._text += self._decoder.decode(chunk, final=not chunk)

    def read(self, ctx: Context | None) -> Message:
        _check_context(ctx)
        while True:
            text = self._text
            start = len(text) - len(text.lstrip(_JSON_WHITESPACE))
            if start < len(text):
                end = _value_end(text, start, self._eof)
                if end is not None:
                    self._text = text[end:]
                    return decode_message(text[start:end])
                if self._eof:
                    raise EOFError("unexpected EOF")
            elif self._eof:
                self._text = ""
                raise EOFError()
            self._fill()


class RawWriter(Writer):
    """Writes messages as bare JSON with no framing."""

    def __init__(self, stream: Any) -> None:
        self._stream = stream

    def write(self, ctx: Context | None, msg: Message) -> None:
        _check_context(ctx)
        _write_all(self._stream, _encode(msg))


class RawFramer(Framer):
    """Frames messages as concatenated JSON values."""

    def reader(self, stream: Any) -> Reader:
        return RawReader(stream)

    def writer(self, stream: Any) -> Writer:
        return RawWriter(stream)


class _ByteBuffer:
    def __init__(self, stream: Any) -> None:
        self._stream = stream
        self._buffer = bytearray()
        self._eof = False

    def _fill(self) -> bool:
        if self._eof:
            return False
        chunk = _read_some(self._stream, _CHUNK_SIZE)
        if not chunk:
            self._eof = True
            return False
        self._buffer.extend(chunk)
        return True

    def readline(self) -> bytes:
        """Return bytes up to and including a newline, or what is left at the end."""
        while True:
            index = self._buffer.find(b"\n")
            if index >= 0:
                line = bytes(self._buffer[: index + 1])
                del self._buffer[: index + 1]
                return line
            if not self._fill():
                line = bytes(self._buffer)
                self._buffer.clear()
                return line

    def read_exact(self, size: int) -> bytes:
        while len(self._buffer) < size:
            if not self._fill():
                raise EOFError("unexpected EOF")
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data


class HeaderReader(Reader):
    """Reads messages preceded by a Content-Length header block."""

    def __init__(self, stream: Any) -> None:
        self._input = _ByteBuffer(stream)

    def read(self, ctx: Context | None) -> Message:
        _check_context(ctx)
        first_read = True
        content_length = 0
        while True:
            raw_line = self._input.readline()
            if not raw_line.endswith(b"\n"):
                if first_read and not raw_line:
                    raise EOFError()
                raise EOFError("failed reading header line: unexpected EOF")
            first_read = False
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line:
                break
            name, colon, value = line.partition(":")
            if not colon:
                raise ValueError(f'invalid header line "{line}"')
            value = value.strip()
            if name == "Content-Length":
                if not _CONTENT_LENGTH.fullmatch(value):
                    raise ValueError(f"failed parsing Content-Length: {value}")
                content_length = int(value)
                if not _INT32_MIN <= content_length <= _INT32_MAX:
                    raise ValueError(f"failed parsing Content-Length: {value}")
                if content_length <= 0:
                    raise ValueError(f"invalid Content-Length: {content_length}")
        if content_length == 0:
            raise ValueError("missing Content-Length header")
        return decode_message(self._input.read_exact(content_length))


class HeaderWriter(Writer):
    """Writes messages preceded by a Content-Length header block."""

    def __init__(self, stream: Any) -> None:
        self._stream = stream

    def write(self, ctx: Context | None, msg: Message) -> None:
        _check_context(ctx)
        data = _encode(msg)
        header = f"Content-Length: {len(data)}\r\n\r\n".encode("ascii")
        _write_all(self._stream, header + data)


class HeaderFramer(Framer):
    """Frames messages with HTTP-style content length headers."""

    def reader(self, stream: Any) -> Reader:
        return HeaderReader(stream)

    def writer(self, stream: Any) -> Writer:
        return HeaderWriter(stream)


def raw_framer() -> Framer:
    """Return a framer that sends bare JSON values."""
    return RawFramer()


def header_framer() -> Framer:
    """Return a framer that prefixes each message with a Content-Length header."""
    return HeaderFramer()