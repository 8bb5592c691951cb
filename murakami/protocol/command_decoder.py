"""Server-side decoding of commands read from a client byte stream."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import BinaryIO, Iterator, List

from .buffers import BufferProvider
from .constants import OPTION_BLOCK, OPTION_COUNT, OPTION_ID, OPTION_MIN_ID
from .errors import bad_format_error, limits_error
from .messages import (
    AppendCommand,
    AppendCommandOptions,
    CreateCommand,
    DeleteCommand,
    ReadCommand,
    ReadCommandOptions,
    TrimCommand,
    TrimCommandOptions,
)
from .wire import (
    consume_crlf,
    is_valid_id,
    is_valid_id_millis,
    read_array_length,
    read_bulk_bytes_length_with_limit,
    read_bulk_string,
    read_n_bulk_bytes,
)

MIB = 1024 * 1024

DEFAULT_MAX_STREAM_NAME_LENGTH = 256
DEFAULT_MAX_BULK_STRING_LENGTH = 256
DEFAULT_MAX_RECORDS_PER_APPEND = 1_000
DEFAULT_MAX_APPEND_PAYLOAD_SIZE = 1 * MIB
DEFAULT_MAX_READ_COUNT = 1_000
DEFAULT_MAX_READ_BLOCK = timedelta(seconds=10)

DEFAULT_READ_MIN_ID = "0-0"

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_NANOS_PER_MILLI = 1_000_000
_MAX_READ_BLOCK_NANOS = DEFAULT_MAX_READ_BLOCK // timedelta(microseconds=1) * 1_000


@dataclass(frozen=True)
class CommandSpec:
    """A command header: its name and the number of arguments that follow it."""

    name: str
    args_length: int


@dataclass(frozen=True)
class Option:
    """One key/value pair of an options array; the key is upper-cased."""

    key: str
    value: str


def _parse_int(text: str) -> int | None:
    """Parse a signed 64-bit decimal integer, or return None."""
    if not _INTEGER_RE.fullmatch(text):
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


def _read_options(reader: BinaryIO) -> Iterator[Option]:
    """Read the options array header now and return an iterator over its pairs."""
    length = read_array_length(reader)
    if length % 2 != 0:
        raise bad_format_error("options array must have an even number of elements")

    def pairs() -> Iterator[Option]:
        for _ in range(length // 2):
            key = read_bulk_string(reader, DEFAULT_MAX_BULK_STRING_LENGTH)
            value = read_bulk_string(reader, DEFAULT_MAX_BULK_STRING_LENGTH)
            yield Option(key=key.upper(), value=value)

    return pairs()


def _invalid_value(option: Option):
    return bad_format_error(f"invalid value for option {option.key}: {option.value}")


class CommandDecoder:
    """Parses commands from a binary stream, enforcing protocol rules and limits.

    Record payloads are read into buffers taken from the buffer provider; each
    decoded record is a memoryview over its buffer, whose ``obj`` can be handed
    back to the provider once the record is no longer needed.
    """

    def __init__(self, buffer_provider: BufferProvider) -> None:
        self._buffers = buffer_provider

    def decode_next_command(self, reader: BinaryIO) -> CommandSpec:
        """Read the command array header and the command name."""
        length = read_array_length(reader)
        if length < 3:
            raise bad_format_error("top-level command array must have at least 3 elements")
        name = read_bulk_string(reader, DEFAULT_MAX_BULK_STRING_LENGTH)
        return CommandSpec(name=name, args_length=length - 1)

    def decode_create_command(self, reader: BinaryIO) -> CreateCommand:
        """Read the arguments of CREATE; it accepts no options."""
        stream_name = read_bulk_string(reader, DEFAULT_MAX_STREAM_NAME_LENGTH)
        for option in _read_options(reader):
            raise bad_format_error(f"unknown option: {option.key} for CREATE command")
        return CreateCommand(stream_name=stream_name)

    def decode_append_command(self, reader: BinaryIO) -> AppendCommand:
        """Read the arguments of APPEND: stream name, options and records."""
        stream_name = read_bulk_string(reader, DEFAULT_MAX_STREAM_NAME_LENGTH)
        options = AppendCommandOptions()
        for option in _read_options(reader):
            if option.key == OPTION_ID:
                if not is_valid_id_millis(option.value):
                    raise _invalid_value(option)
                options.millis_id = option.value
            else:
                raise bad_format_error(f"unknown option: {option.key} for APPEND command")
        records = self._read_records(reader)
        return AppendCommand(stream_name=stream_name, records=records, options=options)

    def decode_read_command(self, reader: BinaryIO) -> ReadCommand:
        """Read the arguments of READ; COUNT, BLOCK and MIN_ID are optional."""
        stream_name = read_bulk_string(reader, DEFAULT_MAX_STREAM_NAME_LENGTH)
        options = ReadCommandOptions(
            count=DEFAULT_MAX_READ_COUNT,
            block=timedelta(0),
            min_id=DEFAULT_READ_MIN_ID,
        )
        for option in _read_options(reader):
            if option.key == OPTION_COUNT:
                count = _parse_int(option.value)
                if count is None:
                    raise _invalid_value(option)
                if not 1 <= count <= DEFAULT_MAX_READ_COUNT:
                    raise limits_error(
                        f"value for option {option.key} must be between 1 and "
                        f"{DEFAULT_MAX_READ_COUNT}, got {count}"
                    )
                options.count = count
            elif option.key == OPTION_BLOCK:
                millis = _parse_int(option.value)
                if millis is None:
                    raise _invalid_value(option)
                block = timedelta(milliseconds=millis)
                if block < timedelta(0) or block > DEFAULT_MAX_READ_BLOCK:
                    raise limits_error(
                        f"value for option {option.key} must be between 0 and "
                        f"{_MAX_READ_BLOCK_NANOS}, got {millis * _NANOS_PER_MILLI}"
                    )
                options.block = block
            elif option.key == OPTION_MIN_ID:
                if not is_valid_id(option.value):
                    raise _invalid_value(option)
                options.min_id = option.value
            else:
                raise bad_format_error(f"unknown option: {option.key} for READ command")
        return ReadCommand(stream_name=stream_name, options=options)

    def decode_trim_command(self, reader: BinaryIO) -> TrimCommand:
        """Read the arguments of TRIM; MIN_ID is required."""
        stream_name = read_bulk_string(reader, DEFAULT_MAX_STREAM_NAME_LENGTH)
        options = TrimCommandOptions()
        has_min_id = False
        for option in _read_options(reader):
            if option.key == OPTION_MIN_ID:
                has_min_id = True
                if not is_valid_id(option.value):
                    raise _invalid_value(option)
                options.min_id = option.value
            else:
                raise bad_format_error(f"unknown option: {option.key} for TRIM command")
        if not has_min_id:
            raise bad_format_error(f"option {OPTION_MIN_ID} is required for TRIM command")
        return TrimCommand(stream_name=stream_name, options=options)

    def decode_delete_command(self, reader: BinaryIO) -> DeleteCommand:
        """Read the arguments of DELETE; it accepts no options."""
        stream_name = read_bulk_string(reader, DEFAULT_MAX_STREAM_NAME_LENGTH)
        for option in _read_options(reader):
            raise bad_format_error(f"unknown option: {option.key} for DELETE command")
        return DeleteCommand(stream_name=stream_name)

    def _read_records(self, reader: BinaryIO) -> List[memoryview]:
        count = read_array_length(reader)
        if count < 1:
            raise limits_error(f"records array must have at least 1 element, got {count}")
        if count > DEFAULT_MAX_RECORDS_PER_APPEND:
            raise limits_error(
                f"records array must have at most {DEFAULT_MAX_RECORDS_PER_APPEND} "
                f"elements, got {count}"
            )

        limit = DEFAULT_MAX_APPEND_PAYLOAD_SIZE
        taken: List[bytearray] = []
        records: List[memoryview] = []
        try:
            for _ in range(count):
                if limit <= 0:
                    raise limits_error(
                        "records payload must be at most "
                        f"{DEFAULT_MAX_APPEND_PAYLOAD_SIZE} bytes in total"
                    )
                length = read_bulk_bytes_length_with_limit(reader, limit)
                buf = self._buffers.get(length)
                taken.append(buf)
                n = read_n_bulk_bytes(reader, buf, length)
                consume_crlf(reader)
                limit -= n
                records.append(memoryview(buf)[:n])
        except BaseException:
            for view in records:
                view.release()
            for buf in taken:
                self._buffers.put(buf)
            raise
        return records