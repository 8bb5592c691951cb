"""Server-side encoding of replies onto a client byte stream."""

from __future__ import annotations

from typing import BinaryIO, Iterable

from .constants import REPLY_OK
from .errors import ProtocolError
from .messages import Record
from .wire import write_array_header, write_bulk_bytes, write_bulk_string


class ReplyEncoder:
    """Writes success and error replies; flushing is left to the caller."""

    def encode_ok(self, writer: BinaryIO) -> None:
        """Write ``+OK\\r\\n``."""
        writer.write(REPLY_OK)

    def encode_error(self, writer: BinaryIO, error: ProtocolError) -> None:
        """Write ``-CODE message\\r\\n``."""
        writer.write(str(error).encode("utf-8", "surrogateescape"))

    def encode_bulk_string(self, writer: BinaryIO, value: str) -> None:
        """Write ``value`` as a bulk string."""
        write_bulk_string(writer, value)

    def encode_records(self, writer: BinaryIO, records: Iterable[Record]) -> None:
        """Write records as an array alternating IDs and values."""
        records = list(records)
        write_array_header(writer, len(records) * 2)
        for record in records:
            write_bulk_string(writer, record.id)
            write_bulk_bytes(writer, record.value)