"""Client-side decoding of replies read from a server byte stream."""

from __future__ import annotations

from typing import BinaryIO, List

from .constants import REPLY_OK_STRING, SYMBOL_ARRAY, SYMBOL_BULK_STRING, SYMBOL_ERROR, SYMBOL_SIMPLE_STRING
from .errors import ReplyFormatError
from .messages import AppendReply, CreateReply, DeleteReply, ReadReply, Record, TrimReply
from .wire import (
    consume_crlf,
    read_array_length,
    read_bulk_string,
    read_bulk_string_length,
    read_bytes,
    read_error,
    read_simple_string,
)

# Long enough for the largest ID: 20 digits, a dash and 20 digits.
_MAX_ID_LENGTH = 41


def _peek_byte(reader: BinaryIO) -> bytes:
    """Return the next byte without consuming it; the reader must support peek()."""
    head = reader.peek(1)[:1]
    if not head:
        raise EOFError("EOF")
    return head


def _describe(symbol: bytes) -> str:
    return chr(symbol[0])


class ReplyDecoder:
    """Parses server replies; error replies come back in the reply's ``err`` field.

    Malformed replies raise ReplyFormatError or ProtocolError, and a stream that
    ends early raises EOFError.
    """

    def decode_create_reply(self, reader: BinaryIO) -> CreateReply:
        """Read the reply to CREATE."""
        ok, err = self._decode_ok_reply(reader)
        return CreateReply(ok=ok, err=err)

    def decode_append_reply(self, reader: BinaryIO) -> AppendReply:
        """Read the reply to APPEND: the new record's ID, or an error."""
        symbol = _peek_byte(reader)
        if symbol == SYMBOL_BULK_STRING:
            return AppendReply(id=read_bulk_string(reader, _MAX_ID_LENGTH))
        if symbol == SYMBOL_ERROR:
            return AppendReply(err=read_error(reader))
        raise ReplyFormatError(f"expected bulk string or error byte, got {_describe(symbol)}")

    def decode_read_reply(self, reader: BinaryIO) -> ReadReply:
        """Read the reply to READ: records as ID/value pairs, or an error."""
        symbol = _peek_byte(reader)
        if symbol == SYMBOL_ARRAY:
            length = read_array_length(reader)
            if length % 2 != 0:
                raise ReplyFormatError(f"expected even array length, got {length}")
            records: List[Record] = []
            for _ in range(length // 2):
                record_id = read_bulk_string(reader, _MAX_ID_LENGTH)
                value = read_bytes(reader, read_bulk_string_length(reader))
                consume_crlf(reader)
                records.append(Record(id=record_id, value=value))
            return ReadReply(records=records)
        if symbol == SYMBOL_ERROR:
            return ReadReply(err=read_error(reader))
        raise ReplyFormatError(f"expected array or error byte, got {_describe(symbol)}")

    def decode_trim_reply(self, reader: BinaryIO) -> TrimReply:
        """Read the reply to TRIM."""
        ok, err = self._decode_ok_reply(reader)
        return TrimReply(ok=ok, err=err)

    def decode_delete_reply(self, reader: BinaryIO) -> DeleteReply:
        """Read the reply to DELETE."""
        ok, err = self._decode_ok_reply(reader)
        return DeleteReply(ok=ok, err=err)

    @staticmethod
    def _decode_ok_reply(reader: BinaryIO):
        symbol = _peek_byte(reader)
        if symbol == SYMBOL_SIMPLE_STRING:
            text = read_simple_string(reader)
            if text != REPLY_OK_STRING:
                raise ReplyFormatError(f"expected {REPLY_OK_STRING}, got {text}")
            return True, None
        if symbol == SYMBOL_ERROR:
            return False, read_error(reader)
        raise ReplyFormatError(f"expected simple string or error byte, got {_describe(symbol)}")