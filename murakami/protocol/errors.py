"""Protocol errors exchanged between client and server."""

from __future__ import annotations

from enum import Enum

from .constants import CRLF, SYMBOL_ERROR


class ErrorCode(str, Enum):
    """Error codes that can travel on the wire."""

    BAD_FORMAT = "ERR_BAD_FORMAT"
    LIMITS = "ERR_LIMITS"
    STREAM_EXISTS = "ERR_STREAM_EXISTS"
    UNKNOWN_STREAM = "ERR_UNKNOWN_STREAM"
    NON_MONOTONIC_ID = "ERR_NON_MONOTONIC_ID"

    def __str__(self) -> str:
        return self.value


class ProtocolError(Exception):
    """An error with a wire code; its string form is the encoded error reply."""

    def __init__(self, code: ErrorCode | str, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.recoverable = recoverable

    def __str__(self) -> str:
        return (
            f"{SYMBOL_ERROR.decode('ascii')}{self.code.value} "
            f"{self.message}{CRLF.decode('ascii')}"
        )

    def __repr__(self) -> str:
        return (
            f"ProtocolError(code={self.code.value!r}, message={self.message!r}, "
            f"recoverable={self.recoverable!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProtocolError):
            return NotImplemented
        return (self.code, self.message, self.recoverable) == (
            other.code,
            other.message,
            other.recoverable,
        )

    def __hash__(self) -> int:
        return hash((self.code, self.message, self.recoverable))


class ReplyFormatError(ValueError):
    """A server reply that does not follow the wire format."""


def bad_format_error(message: str) -> ProtocolError:
    """A non-recoverable error for malformed input."""
    return ProtocolError(ErrorCode.BAD_FORMAT, message, False)


def limits_error(message: str) -> ProtocolError:
    """A non-recoverable error for input beyond the configured limits."""
    return ProtocolError(ErrorCode.LIMITS, message, False)


def stream_exists_error(message: str) -> ProtocolError:
    """A recoverable error for creating a stream that already exists."""
    return ProtocolError(ErrorCode.STREAM_EXISTS, message, True)


def unknown_stream_error(message: str) -> ProtocolError:
    """A recoverable error for addressing a stream that does not exist."""
    return ProtocolError(ErrorCode.UNKNOWN_STREAM, message, True)


def non_monotonic_id_error(message: str) -> ProtocolError:
    """A recoverable error for an ID that does not grow."""
    return ProtocolError(ErrorCode.NON_MONOTONIC_ID, message, True)