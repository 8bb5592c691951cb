"""Commands, records and replies exchanged over the protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from .errors import ProtocolError


@dataclass
class CreateCommand:
    stream_name: str = ""


@dataclass
class AppendCommandOptions:
    millis_id: str = ""


@dataclass
class AppendCommand:
    stream_name: str = ""
    records: List[bytes] = field(default_factory=list)
    options: AppendCommandOptions = field(default_factory=AppendCommandOptions)


@dataclass
class ReadCommandOptions:
    count: int = 0
    block: timedelta = timedelta()
    min_id: str = ""


@dataclass
class ReadCommand:
    stream_name: str = ""
    options: ReadCommandOptions = field(default_factory=ReadCommandOptions)


@dataclass
class TrimCommandOptions:
    min_id: str = ""


@dataclass
class TrimCommand:
    stream_name: str = ""
    options: TrimCommandOptions = field(default_factory=TrimCommandOptions)


@dataclass
class DeleteCommand:
    stream_name: str = ""


@dataclass
class Record:
    id: str
    value: bytes


@dataclass
class CreateReply:
    ok: bool = False
    err: Optional[ProtocolError] = None


@dataclass
class AppendReply:
    id: str = ""
    err: Optional[ProtocolError] = None


@dataclass
class ReadReply:
    records: List[Record] = field(default_factory=list)
    err: Optional[ProtocolError] = None


@dataclass
class TrimReply:
    ok: bool = False
    err: Optional[ProtocolError] = None


@dataclass
class DeleteReply:
    ok: bool = False
    err: Optional[ProtocolError] = None