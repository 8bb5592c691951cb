import io

import pytest

from murakami.protocol.errors import (
    ErrorCode,
    ProtocolError,
    ReplyFormatError,
    bad_format_error,
    limits_error,
)
from murakami.protocol.wire import (
    consume_crlf,
    expect_next_byte,
    is_valid_id,
    is_valid_id_millis,
    read_array_length,
    read_bulk_bytes,
    read_bulk_bytes_length_with_limit,
    read_bulk_string,
    read_bulk_string_length,
    read_bytes,
    read_error,
    read_length,
    read_line,
    read_n_bulk_bytes,
    read_simple_string,
    write_array_header,
    write_bulk_bytes,
    write_bulk_string,
)


def reader(data: bytes) -> io.BufferedReader:
    return io.BufferedReader(io.BytesIO(data))


def unexpected(actual: str, expected: str) -> ProtocolError:
    return bad_format_error(
        f"found unexpected byte({actual}) in stream while expecting byte({expected})"
    )


class FailingWriter:
    def write(self, data):
        raise OSError("short write")


# expect_next_byte


def test_expect_next_byte_consumes_expected_byte():
    r = reader(b"*3")
    expect_next_byte(r, b"*")
    assert r.read() == b"3"


def test_expect_next_byte_rejects_other_byte():
    with pytest.raises(ProtocolError) as info:
        expect_next_byte(reader(b"$3"), b"*")
    assert info.value == unexpected("$", "*")


def test_expect_next_byte_on_empty_stream():
    with pytest.raises(EOFError) as info:
        expect_next_byte(reader(b""), b"*")
    assert str(info.value) == "EOF"


# read_line


@pytest.mark.parametrize("data, expected", [(b"123\r\n", "123"), (b"123\r\n456\r\n", "123")])
def test_read_line(data, expected):
    assert read_line(reader(data)) == expected


def test_read_line_without_crlf():
    with pytest.raises(EOFError) as info:
        read_line(reader(b"123"))
    assert str(info.value) == "EOF"


def test_read_line_empty():
    with pytest.raises(ProtocolError) as info:
        read_line(reader(b"\r\n"))
    assert info.value == bad_format_error("unexpected empty line")


# read_length


def test_read_length_valid():
    assert read_length(reader(b"123\r\n")) == 123


@pytest.mark.parametrize("line", ["a123", "-123", "123.5"])
def test_read_length_invalid(line):
    with pytest.raises(ProtocolError) as info:
        read_length(reader(line.encode() + b"\r\n"))
    assert info.value == bad_format_error(f"invalid length: {line}")


# read_array_length


def test_read_array_length_valid():
    assert read_array_length(reader(b"*3\r\n")) == 3


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"*3a\r\n", bad_format_error("invalid length: 3a")),
        (b"*-3\r\n", bad_format_error("invalid length: -3")),
        (b"*3.5\r\n", bad_format_error("invalid length: 3.5")),
        (b"3\r\n", unexpected("3", "*")),
    ],
)
def test_read_array_length_invalid(data, expected):
    with pytest.raises(ProtocolError) as info:
        read_array_length(reader(data))
    assert info.value == expected


def test_read_array_length_eof():
    with pytest.raises(EOFError) as info:
        read_array_length(reader(b""))
    assert str(info.value) == "EOF"


# read_bulk_string_length


@pytest.mark.parametrize(
    "data, expected", [(b"$5\r\n", 5), (b"$0\r\n", 0), (b"$1048576\r\n", 1048576)]
)
def test_read_bulk_string_length_valid(data, expected):
    assert read_bulk_string_length(reader(data)) == expected


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"$5a\r\n", bad_format_error("invalid length: 5a")),
        (b"$-5\r\n", bad_format_error("invalid length: -5")),
        (b"$5.5\r\n", bad_format_error("invalid length: 5.5")),
        (b"5\r\n", unexpected("5", "$")),
    ],
)
def test_read_bulk_string_length_invalid(data, expected):
    with pytest.raises(ProtocolError) as info:
        read_bulk_string_length(reader(data))
    assert info.value == expected


def test_read_bulk_string_length_eof():
    with pytest.raises(EOFError) as info:
        read_bulk_string_length(reader(b""))
    assert str(info.value) == "EOF"


# read_bulk_bytes_length_with_limit


def test_read_bulk_bytes_length_with_limit_valid():
    assert read_bulk_bytes_length_with_limit(reader(b"$5\r\n"), 10) == 5


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"$0\r\n", limits_error("bulk string length must be greater than 0, got 0")),
        (b"$11\r\n", limits_error("bulk string length must be less than or equal to 10, got 11")),
    ],
)
def test_read_bulk_bytes_length_with_limit_out_of_range(data, expected):
    with pytest.raises(ProtocolError) as info:
        read_bulk_bytes_length_with_limit(reader(data), 10)
    assert info.value == expected


# read_n_bulk_bytes


def test_read_n_bulk_bytes_fills_buffer_prefix():
    buf = bytearray(8)
    assert read_n_bulk_bytes(reader(b"hello"), buf, 5) == 5
    assert bytes(buf[:5]) == b"hello"
    assert len(buf) == 8


def test_read_n_bulk_bytes_short_stream():
    with pytest.raises(EOFError) as info:
        read_n_bulk_bytes(reader(b"hi"), bytearray(5), 5)
    assert str(info.value) == "unexpected EOF"


# read_bytes


@pytest.mark.parametrize(
    "data, n, expected",
    [
        (b"hello", 5, b"hello"),
        (b"hello", 0, b""),
        (b"x", 1, b"x"),
        (b"\x00\x01\x02\x03\x04", 5, b"\x00\x01\x02\x03\x04"),
    ],
)
def test_read_bytes(data, n, expected):
    assert read_bytes(reader(data), n) == expected


@pytest.mark.parametrize("data, n, message", [(b"hi", 5, "unexpected EOF"), (b"", 1, "EOF")])
def test_read_bytes_errors(data, n, message):
    with pytest.raises(EOFError) as info:
        read_bytes(reader(data), n)
    assert str(info.value) == message


# consume_crlf


def test_consume_crlf():
    r = reader(b"\r\nrest")
    consume_crlf(r)
    assert r.read() == b"rest"


@pytest.mark.parametrize(
    "data, expected",
    [(b"abc", unexpected("a", "\r")), (b"\ra", unexpected("a", "\n"))],
)
def test_consume_crlf_wrong_bytes(data, expected):
    with pytest.raises(ProtocolError) as info:
        consume_crlf(reader(data))
    assert info.value == expected


def test_consume_crlf_eof():
    with pytest.raises(EOFError) as info:
        consume_crlf(reader(b"\r"))
    assert str(info.value) == "EOF"


# read_bulk_string


def test_read_bulk_string_valid():
    assert read_bulk_string(reader(b"$3\r\nabc\r\n"), 3) == "abc"


@pytest.mark.parametrize(
    "data, limit, expected",
    [
        (b"$3\r\nabc\r\n", 2, limits_error("bulk string length must be less than or equal to 2, got 3")),
        (b"$0\r\n\r\n", 1, limits_error("bulk string length must be greater than 0, got 0")),
        (b"$a\r\nabc\r\n", 3, bad_format_error("invalid length: a")),
        (b"$-3\r\nabc\r\n", 3, bad_format_error("invalid length: -3")),
        (b"$3.5\r\nabc\r\n", 3, bad_format_error("invalid length: 3.5")),
        (b"3\r\nabc\r\n", 3, unexpected("3", "$")),
    ],
)
def test_read_bulk_string_invalid(data, limit, expected):
    with pytest.raises(ProtocolError) as info:
        read_bulk_string(reader(data), limit)
    assert info.value == expected


def test_read_bulk_string_eof():
    with pytest.raises(EOFError) as info:
        read_bulk_string(reader(b"$3\r\n"), 3)
    assert str(info.value) == "EOF"


def test_bulk_string_round_trip_with_unicode():
    out = io.BytesIO()
    write_bulk_string(out, "stream-日本語")
    assert read_bulk_string(reader(out.getvalue()), 256) == "stream-日本語"


# read_bulk_bytes


def test_read_bulk_bytes_valid():
    buf = bytearray(3)
    assert read_bulk_bytes(reader(b"$3\r\nabc\r\n"), buf, 3) == 3
    assert bytes(buf) == b"abc"


@pytest.mark.parametrize(
    "data, size, limit, expected",
    [
        (b"$3\r\nabc\r\n", 3, 2, limits_error("bulk string length must be less than or equal to 2, got 3")),
        (b"$0\r\n\r\n", 1, 1, limits_error("bulk string length must be greater than 0, got 0")),
        (b"$a\r\nabc\r\n", 3, 3, bad_format_error("invalid length: a")),
        (b"$-3\r\nabc\r\n", 3, 3, bad_format_error("invalid length: -3")),
        (b"$3.5\r\nabc\r\n", 3, 3, bad_format_error("invalid length: 3.5")),
        (b"3\r\nabc\r\n", 3, 3, unexpected("3", "$")),
    ],
)
def test_read_bulk_bytes_invalid(data, size, limit, expected):
    buf = bytearray(size)
    with pytest.raises(ProtocolError) as info:
        read_bulk_bytes(reader(data), buf, limit)
    assert info.value == expected
    assert buf == bytearray(size)


def test_read_bulk_bytes_eof():
    buf = bytearray(3)
    with pytest.raises(EOFError) as info:
        read_bulk_bytes(reader(b"$3\r\n"), buf, 3)
    assert str(info.value) == "EOF"
    assert buf == bytearray(3)


# is_valid_id / is_valid_id_millis


@pytest.mark.parametrize(
    "value, expected",
    [
        ("123-456", True),
        ("123-456-789", False),
        ("123456789", False),
        ("", False),
        ("123-abc", False),
        ("abc-123", False),
        ("-123-456", False),
        ("123--456", False),
        ("123.456-456", False),
        ("123-456.789", False),
        ("112345678901234567890-456", False),
        ("123-112345678901234567890", False),
        ("-456", False),
        ("123-", False),
        ("-", False),
    ],
)
def test_is_valid_id(value, expected):
    assert is_valid_id(value) is expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("1234567890", True),
        ("abc", False),
        ("-1234567890", False),
        ("1234567890.1234567890", False),
        ("1112345678901234567890", False),
        ("", False),
    ],
)
def test_is_valid_id_millis(value, expected):
    assert is_valid_id_millis(value) is expected


# read_simple_string


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"+OK\r\n", "OK"),
        (b"+hello world\r\n", "hello world"),
        (b"+test-123_abc\r\n", "test-123_abc"),
        (b"+a\r\n", "a"),
        (
            b"+this is a longer string with multiple words\r\n",
            "this is a longer string with multiple words",
        ),
    ],
)
def test_read_simple_string(data, expected):
    assert read_simple_string(reader(data)) == expected


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"+\r\n", bad_format_error("unexpected empty line")),
        (b"OK\r\n", unexpected("O", "+")),
    ],
)
def test_read_simple_string_invalid(data, expected):
    with pytest.raises(ProtocolError) as info:
        read_simple_string(reader(data))
    assert info.value == expected


@pytest.mark.parametrize("data", [b"+OK", b""])
def test_read_simple_string_eof(data):
    with pytest.raises(EOFError) as info:
        read_simple_string(reader(data))
    assert str(info.value) == "EOF"


# read_error


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"-ERR_BAD_FORMAT invalid command\r\n",
         ProtocolError(ErrorCode.BAD_FORMAT, "invalid command", False)),
        (b"-ERR_STREAM_EXISTS stream already exists\r\n",
         ProtocolError(ErrorCode.STREAM_EXISTS, "stream already exists", True)),
        (b"-ERR_BAD_FORMAT this is a longer message\r\n",
         ProtocolError(ErrorCode.BAD_FORMAT, "this is a longer message", False)),
        (b"-ERR_UNKNOWN_STREAM no such stream\r\n",
         ProtocolError(ErrorCode.UNKNOWN_STREAM, "no such stream", True)),
        (b"-ERR_NON_MONOTONIC_ID id not monotonic\r\n",
         ProtocolError(ErrorCode.NON_MONOTONIC_ID, "id not monotonic", True)),
        (b"-ERR_LIMITS record size too large\r\n",
         ProtocolError(ErrorCode.LIMITS, "record size too large", False)),
    ],
)
def test_read_error(data, expected):
    error = read_error(reader(data))
    assert error == expected
    assert error.recoverable is expected.recoverable


@pytest.mark.parametrize(
    "data, message",
    [
        (b"-ERR_LIMITS\r\n",
         "bad server reply format: expected error code and message separated by space, got: ERR_LIMITS"),
        (b"-ERR_UNKNOWN something went wrong\r\n", "unrecognized error code: ERR_UNKNOWN"),
    ],
)
def test_read_error_bad_reply(data, message):
    with pytest.raises(ReplyFormatError) as info:
        read_error(reader(data))
    assert str(info.value) == message


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"ERR_BAD_FORMAT message\r\n", unexpected("E", "-")),
        (b"-\r\n", bad_format_error("unexpected empty line")),
    ],
)
def test_read_error_malformed(data, expected):
    with pytest.raises(ProtocolError) as info:
        read_error(reader(data))
    assert info.value == expected


@pytest.mark.parametrize("data", [b"-ERR_BAD_FORMAT", b""])
def test_read_error_eof(data):
    with pytest.raises(EOFError) as info:
        read_error(reader(data))
    assert str(info.value) == "EOF"


# writers


def test_write_array_header():
    out = io.BytesIO()
    write_array_header(out, 1000)
    assert out.getvalue() == b"*1000\r\n"


LOREM = (
    "Lorem ipsum dolor sit amet, consectetur adipiscing elit. Sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua. Ut enim ad minim veniam, quis nostrud "
    "exercitation ullamco laboris."
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("hello", b"$5\r\nhello\r\n"),
        ("hello world", b"$11\r\nhello world\r\n"),
        ("hello\nworld\ttab", b"$15\r\nhello\nworld\ttab\r\n"),
        ("line1\r\nline2", b"$12\r\nline1\r\nline2\r\n"),
        (LOREM, b"$191\r\n" + LOREM.encode() + b"\r\n"),
        ("1700000001234-0", b"$15\r\n1700000001234-0\r\n"),
    ],
)
def test_write_bulk_string(value, expected):
    out = io.BytesIO()
    write_bulk_string(out, value)
    assert out.getvalue() == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        (b"hello", b"$5\r\nhello\r\n"),
        (b"", b"$0\r\n\r\n"),
        (b"line1\r\nline2", b"$12\r\nline1\r\nline2\r\n"),
        (b"\x00\x01\x02\xff", b"$4\r\n\x00\x01\x02\xff\r\n"),
        ("hello世界".encode(), b"$11\r\n" + "hello世界".encode() + b"\r\n"),
        (b"a", b"$1\r\na\r\n"),
    ],
)
def test_write_bulk_bytes(value, expected):
    out = io.BytesIO()
    write_bulk_bytes(out, value)
    assert out.getvalue() == expected


@pytest.mark.parametrize(
    "write",
    [
        lambda w: write_array_header(w, 3),
        lambda w: write_bulk_string(w, "test"),
        lambda w: write_bulk_bytes(w, b"test"),
    ],
)
def test_writer_errors_propagate(write):
    with pytest.raises(OSError, match="short write"):
        write(FailingWriter())