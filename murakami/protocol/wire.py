"""Reading and writing of the individual frames of the wire format."""

from __future__ import annotations

import re
from typing import BinaryIO, Union

from .constants import (
    CRLF,
    SYMBOL_ARRAY,
    SYMBOL_BULK_STRING,
    SYMBOL_ERROR,
    SYMBOL_SIMPLE_STRING,
)
from .errors import (
    ErrorCode,
    ProtocolError,
    ReplyFormatError,
    bad_format_error,
    limits_error,
    non_monotonic_id_error,
    stream_exists_error,
    unknown_stream_error,
)

_ID_RE = re.compile(r"[0-9]{1,20}-[0-9]{1,20}")
_ID_MILLIS_RE = re.compile(r"[0-9]{1,20}")
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_ENCODING = "utf-8"
_ENCODING_ERRORS = "surrogateescape"

_ERROR_FACTORIES = {
    ErrorCode.BAD_FORMAT: bad_format_error,
    ErrorCode.LIMITS: limits_error,
    ErrorCode.STREAM_EXISTS: stream_exists_error,
    ErrorCode.UNKNOWN_STREAM: unknown_stream_error,
    ErrorCode.NON_MONOTONIC_ID: non_monotonic_id_error,
}

ByteLike = Union[bytes, bytearray, memoryview]


def _eof() -> EOFError:
    return EOFError("EOF")


def _unexpected_eof() -> EOFError:
    return EOFError("unexpected EOF")


def _decode(data: bytes) -> str:
    return data.decode(_ENCODING, _ENCODING_ERRORS)


def _encode(text: str) -> bytes:
    return text.encode(_ENCODING, _ENCODING_ERRORS)


def _as_symbol(expected: Union[bytes, int, str]) -> bytes:
    if isinstance(expected, int):
        return bytes([expected])
    if isinstance(expected, str):
        return expected.encode("latin-1")
    return bytes(expected)


def _read_up_to(reader: BinaryIO, n: int) -> bytes:
    """Read until ``n`` bytes are gathered or the stream ends."""
    chunks = []
    remaining = n
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _read_full(reader: BinaryIO, n: int) -> bytes:
    """Read exactly ``n`` bytes: EOF if none came, unexpected EOF if some did."""
    data = _read_up_to(reader, n)
    if len(data) < n:
        raise _eof() if not data else _unexpected_eof()
    return data


def _check_limit(limit: int) -> None:
    if limit <= 0:
        raise ValueError("limit must be greater than 0")


def _check_bulk_length(length: int, limit: int) -> None:
    if length < 1:
        raise limits_error(f"bulk string length must be greater than 0, got {length}")
    if length > limit:
        raise limits_error(
            f"bulk string length must be less than or equal to {limit}, got {length}"
        )


def expect_next_byte(reader: BinaryIO, expected: Union[bytes, int, str]) -> None:
    """Consume one byte and raise unless it is ``expected``."""
    symbol = _as_symbol(expected)
    actual = reader.read(1)
    if not actual:
        raise _eof()
    if actual != symbol:
        raise bad_format_error(
            f"found unexpected byte({chr(actual[0])}) in stream "
            f"while expecting byte({chr(symbol[0])})"
        )


def read_line(reader: BinaryIO) -> str:
    """Read the rest of a CRLF-terminated line, without the terminator."""
    raw = reader.readline()
    if not raw.endswith(b"\n"):
        raise _eof()
    if len(raw) - len(CRLF) < 1:
        raise bad_format_error("unexpected empty line")
    return _decode(raw[: -len(CRLF)])


def read_length(reader: BinaryIO) -> int:
    """Read a line holding a non-negative integer."""
    line = read_line(reader)
    if _INTEGER_RE.fullmatch(line):
        value = int(line)
        if _INT64_MIN <= value <= _INT64_MAX and value >= 0:
            return value
    raise bad_format_error(f"invalid length: {line}")


def read_array_length(reader: BinaryIO) -> int:
    """Read an array header and return its length."""
    expect_next_byte(reader, SYMBOL_ARRAY)
    return read_length(reader)


def read_bulk_string_length(reader: BinaryIO) -> int:
    """Read a bulk string header and return its length (zero allowed)."""
    expect_next_byte(reader, SYMBOL_BULK_STRING)
    return read_length(reader)


def read_bulk_bytes_length_with_limit(reader: BinaryIO, limit: int) -> int:
    """Read a bulk string header whose length must be in ``1..limit``."""
    _check_limit(limit)
    expect_next_byte(reader, SYMBOL_BULK_STRING)
    length = read_length(reader)
    _check_bulk_length(length, limit)
    return length


def read_n_bulk_bytes(reader: BinaryIO, buf: bytearray, n: int) -> int:
    """Read exactly ``n`` bytes into the start of ``buf`` and return ``n``."""
    if n <= 0:
        raise ValueError("n must be greater than 0")
    if len(buf) < n:
        raise ValueError(f"buffer of {len(buf)} bytes cannot hold {n} bytes")
    buf[:n] = _read_full(reader, n)
    return n


def read_bytes(reader: BinaryIO, n: int) -> bytes:
    """Read exactly ``n`` bytes."""
    return _read_full(reader, n)


def consume_crlf(reader: BinaryIO) -> None:
    """Consume a CRLF separator."""
    for symbol in CRLF:
        expect_next_byte(reader, symbol)


def read_bulk_string(reader: BinaryIO, limit: int) -> str:
    """Read a bulk string of ``1..limit`` bytes followed by CRLF."""
    _check_limit(limit)
    expect_next_byte(reader, SYMBOL_BULK_STRING)
    length = read_length(reader)
    _check_bulk_length(length, limit)
    data = _read_up_to(reader, length)
    if len(data) < length:
        raise _eof()
    consume_crlf(reader)
    return _decode(data)


def read_bulk_bytes(reader: BinaryIO, buf: bytearray, limit: int) -> int:
    """Read a bulk string of ``1..limit`` bytes into ``buf``; return its length."""
    _check_limit(limit)
    expect_next_byte(reader, SYMBOL_BULK_STRING)
    length = read_length(reader)
    _check_bulk_length(length, limit)
    if len(buf) < length:
        raise ValueError(f"buffer of {len(buf)} bytes cannot hold {length} bytes")
    buf[:length] = _read_full(reader, length)
    consume_crlf(reader)
    return length


def read_simple_string(reader: BinaryIO) -> str:
    """Read a ``+text`` line."""
    expect_next_byte(reader, SYMBOL_SIMPLE_STRING)
    return read_line(reader)


def read_error(reader: BinaryIO) -> ProtocolError:
    """Read a ``-CODE message`` line and return it as a protocol error."""
    expect_next_byte(reader, SYMBOL_ERROR)
    line = read_line(reader)
    code, sep, message = line.partition(" ")
    if not sep:
        raise ReplyFormatError(
            "bad server reply format: expected error code and message "
            f"separated by space, got: {line}"
        )
    try:
        error_code = ErrorCode(code)
    except ValueError:
        raise ReplyFormatError(f"unrecognized error code: {code}") from None
    return _ERROR_FACTORIES[error_code](message)


def is_valid_id(id_: str) -> bool:
    """Whether ``id_`` has the form ``<millis>-<seq>`` of unsigned decimals."""
    return _ID_RE.fullmatch(id_) is not None


def is_valid_id_millis(millis: str) -> bool:
    """Whether ``millis`` is an unsigned decimal of up to 20 digits."""
    return _ID_MILLIS_RE.fullmatch(millis) is not None


def write_array_header(writer: BinaryIO, length: int) -> None:
    """Write ``*<length>\\r\\n``."""
    writer.write(SYMBOL_ARRAY + str(length).encode("ascii") + CRLF)


def write_bulk_string(writer: BinaryIO, value: str) -> None:
    """Write ``value`` as a bulk string; the length counts encoded bytes."""
    write_bulk_bytes(writer, _encode(value))


def write_bulk_bytes(writer: BinaryIO, value: ByteLike) -> None:
    """Write ``value`` as a bulk string."""
    data = bytes(value)
    writer.write(SYMBOL_BULK_STRING + str(len(data)).encode("ascii") + CRLF + data + CRLF)