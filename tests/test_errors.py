import pytest

from murakami.protocol.errors import (
    ErrorCode,
    ProtocolError,
    ReplyFormatError,
    bad_format_error,
    limits_error,
    non_monotonic_id_error,
    stream_exists_error,
    unknown_stream_error,
)


@pytest.mark.parametrize(
    "error, expected",
    [
        (bad_format_error("malformed command"), "-ERR_BAD_FORMAT malformed command\r\n"),
        (limits_error("stream name too long"), "-ERR_LIMITS stream name too long\r\n"),
        (stream_exists_error("stream already exists"), "-ERR_STREAM_EXISTS stream already exists\r\n"),
        (unknown_stream_error("stream not found"), "-ERR_UNKNOWN_STREAM stream not found\r\n"),
        (non_monotonic_id_error("ID not monotonic"), "-ERR_NON_MONOTONIC_ID ID not monotonic\r\n"),
    ],
)
def test_string_form_is_the_wire_reply(error, expected):
    assert str(error) == expected


@pytest.mark.parametrize(
    "factory, code, recoverable",
    [
        (bad_format_error, ErrorCode.BAD_FORMAT, False),
        (limits_error, ErrorCode.LIMITS, False),
        (stream_exists_error, ErrorCode.STREAM_EXISTS, True),
        (unknown_stream_error, ErrorCode.UNKNOWN_STREAM, True),
        (non_monotonic_id_error, ErrorCode.NON_MONOTONIC_ID, True),
    ],
)
def test_factories_set_code_and_recoverability(factory, code, recoverable):
    error = factory("message")
    assert error.code is code
    assert error.recoverable is recoverable
    assert error.message == "message"


def test_equality_covers_all_fields():
    assert bad_format_error("x") == ProtocolError(ErrorCode.BAD_FORMAT, "x", False)
    assert bad_format_error("x") != bad_format_error("y")
    assert bad_format_error("x") != limits_error("x")
    assert ProtocolError(ErrorCode.LIMITS, "x", True) != limits_error("x")


def test_equal_errors_hash_alike():
    assert hash(stream_exists_error("dup")) == hash(stream_exists_error("dup"))
    assert len({stream_exists_error("dup"), stream_exists_error("dup")}) == 1


def test_code_is_coerced_from_its_wire_value():
    error = ProtocolError("ERR_UNKNOWN_STREAM", "gone", True)
    assert error.code is ErrorCode.UNKNOWN_STREAM
    assert error == unknown_stream_error("gone")


def test_unknown_code_is_rejected():
    with pytest.raises(ValueError):
        ProtocolError("ERR_NOPE", "x")


def test_errors_are_exceptions_carrying_their_code():
    error = limits_error("too big")
    assert isinstance(error, Exception)
    assert error.code is ErrorCode.LIMITS
    assert error.message == "too big"


def test_reply_format_error_is_a_value_error():
    error = ReplyFormatError("unrecognized error code: ERR_UNKNOWN")
    assert isinstance(error, ValueError)
    assert str(error) == "unrecognized error code: ERR_UNKNOWN"