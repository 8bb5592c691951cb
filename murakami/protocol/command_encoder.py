"""Client-side encoding of commands onto a server byte stream."""

from __future__ import annotations

from datetime import timedelta
from typing import BinaryIO, Iterable

from .constants import (
    COMMAND_APPEND,
    COMMAND_CREATE,
    COMMAND_DELETE,
    COMMAND_READ,
    COMMAND_TRIM,
    OPTION_BLOCK,
    OPTION_COUNT,
    OPTION_ID,
    OPTION_MIN_ID,
)
from .messages import (
    AppendCommand,
    AppendCommandOptions,
    CreateCommand,
    DeleteCommand,
    ReadCommand,
    ReadCommandOptions,
    TrimCommand,
)
from .wire import ByteLike, is_valid_id, write_array_header, write_bulk_bytes, write_bulk_string


def _whole_millis(duration: timedelta) -> int:
    """Milliseconds in ``duration``, truncated toward zero."""
    micros = duration // timedelta(microseconds=1)
    millis = abs(micros) // 1000
    return millis if micros >= 0 else -millis


class CommandEncoder:
    """Writes commands as arrays of bulk strings.

    Writes go to a binary writer; flushing it is left to the caller, and any
    error the writer raises propagates unchanged.
    """

    def encode_create_command(self, writer: BinaryIO, cmd: CreateCommand) -> None:
        """Write CREATE with its stream name and an empty options array."""
        write_array_header(writer, 3)
        write_bulk_string(writer, COMMAND_CREATE)
        write_bulk_string(writer, cmd.stream_name)
        write_array_header(writer, 0)

    def encode_append_command(self, writer: BinaryIO, cmd: AppendCommand) -> None:
        """Write APPEND with its stream name, options and records."""
        write_array_header(writer, 4)
        write_bulk_string(writer, COMMAND_APPEND)
        write_bulk_string(writer, cmd.stream_name)
        self._encode_append_options(writer, cmd.options)
        self._encode_records(writer, cmd.records)

    def encode_read_command(self, writer: BinaryIO, cmd: ReadCommand) -> None:
        """Write READ with its stream name and the options that are set."""
        write_array_header(writer, 3)
        write_bulk_string(writer, COMMAND_READ)
        write_bulk_string(writer, cmd.stream_name)
        self._encode_read_options(writer, cmd.options)

    def encode_trim_command(self, writer: BinaryIO, cmd: TrimCommand) -> None:
        """Write TRIM; raise ValueError unless MIN_ID is a valid ID."""
        if not is_valid_id(cmd.options.min_id):
            raise ValueError("TRIM command requires a valid MIN_ID option")
        write_array_header(writer, 3)
        write_bulk_string(writer, COMMAND_TRIM)
        write_bulk_string(writer, cmd.stream_name)
        write_array_header(writer, 2)
        write_bulk_string(writer, OPTION_MIN_ID)
        write_bulk_string(writer, cmd.options.min_id)

    def encode_delete_command(self, writer: BinaryIO, cmd: DeleteCommand) -> None:
        """Write DELETE with its stream name and an empty options array."""
        write_array_header(writer, 3)
        write_bulk_string(writer, COMMAND_DELETE)
        write_bulk_string(writer, cmd.stream_name)
        write_array_header(writer, 0)

    @staticmethod
    def _encode_append_options(writer: BinaryIO, options: AppendCommandOptions) -> None:
        if not options.millis_id:
            write_array_header(writer, 0)
            return
        write_array_header(writer, 2)
        write_bulk_string(writer, OPTION_ID)
        write_bulk_string(writer, options.millis_id)

    @staticmethod
    def _encode_read_options(writer: BinaryIO, options: ReadCommandOptions) -> None:
        pairs = []
        if options.count != 0:
            pairs.append((OPTION_COUNT, str(options.count)))
        if options.block != timedelta(0):
            pairs.append((OPTION_BLOCK, str(_whole_millis(options.block))))
        if options.min_id:
            pairs.append((OPTION_MIN_ID, options.min_id))
        write_array_header(writer, len(pairs) * 2)
        for key, value in pairs:
            write_bulk_string(writer, key)
            write_bulk_string(writer, value)

    @staticmethod
    def _encode_records(writer: BinaryIO, records: Iterable[ByteLike]) -> None:
        records = list(records)
        write_array_header(writer, len(records))
        for record in records:
            write_bulk_bytes(writer, record)