"""Configuration, messages, errors and collaborator interfaces of a Raft node."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from typing import List, Optional, Protocol, Sequence

# Node id 0 stands for "no node".
ZERO_NODE_ID = 0


class RaftError(Exception):
    """Base class of the errors a Raft node reports."""

    default_message = "raft error"

    def __init__(self, *args: object) -> None:
        super().__init__(*(args or (self.default_message,)))


class AlreadyStartedError(RaftError):
    default_message = "raft instance already started"


class AlreadyStoppedError(RaftError):
    default_message = "raft instance already stopped"


class NotStartedError(RaftError):
    default_message = "raft instance not started"


class NotLeaderError(RaftError):
    default_message = "raft instance not leader"


class PersistedStateNotFoundError(RaftError):
    default_message = "persisted state not found"


class PersistedLogNotFoundError(RaftError):
    default_message = "persisted log not found"


class MaxPendingAppendRequestsError(RaftError):
    default_message = "max pending append requests reached"


class Role(Enum):
    """The role a node plays in the cluster."""

    FOLLOWER = 0
    CANDIDATE = 1
    LEADER = 2

    def __str__(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class LogEntry:
    term: int
    cmd: bytes


@dataclass(frozen=True)
class PersistentState:
    current_term: int = 0
    voted_for: int = ZERO_NODE_ID


@dataclass(frozen=True)
class CommittedEntry:
    log_seq_num: int
    cmd: bytes


@dataclass(frozen=True)
class VoteRequest:
    candidate_id: int
    candidate_term: int
    candidate_log_length: int
    candidate_last_log_term: int


@dataclass(frozen=True)
class VoteResponse:
    voter_id: int
    voter_term: int
    vote_granted: bool


@dataclass(frozen=True)
class AppendEntriesRequest:
    leader_id: int
    leader_term: int
    leader_commit_length: int
    prefix_length: int
    prefix_term: int
    suffix: List[LogEntry] = field(default_factory=list)


@dataclass(frozen=True)
class AppendEntriesResponse:
    follower_id: int
    follower_term: int
    ack: int
    success: bool


class RandomNumberGenerator(Protocol):
    def generate_duration_in_range(self, low: timedelta, high: timedelta) -> timedelta:
        """Return a duration between ``low`` and ``high``."""


class Timer(Protocol):
    def reset(self, duration: timedelta) -> None:
        """Arm the timer to fire once after ``duration``."""

    def stop(self) -> None:
        """Disarm the timer."""

    def close(self) -> None:
        """Release the timer for good."""


class Ticker(Protocol):
    def reset(self, interval: timedelta) -> None:
        """Start ticking every ``interval``."""

    def stop(self) -> None:
        """Stop ticking."""

    def close(self) -> None:
        """Release the ticker for good."""


class Network(Protocol):
    def send_vote_request(self, peer: int, req: VoteRequest) -> None:
        """Schedule a vote request to ``peer``."""

    def send_vote_response(self, candidate: int, res: VoteResponse) -> None:
        """Schedule a vote response to ``candidate``."""

    def send_append_entries_request(self, follower: int, req: AppendEntriesRequest) -> None:
        """Schedule an append-entries request to ``follower``."""

    def send_append_entries_response(self, leader: int, res: AppendEntriesResponse) -> None:
        """Schedule an append-entries response to ``leader``."""


class StateStore(Protocol):
    def load(self) -> PersistentState:
        """Return the saved state; raise PersistedStateNotFoundError if there is none."""

    def save(self, state: PersistentState) -> None:
        """Durably save ``state``."""


class LogStore(Protocol):
    def load(self) -> List[LogEntry]:
        """Return the saved log; raise PersistedLogNotFoundError if there is none."""

    def append(self, entries: Sequence[LogEntry]) -> None:
        """Durably append ``entries``."""


class FiniteStateMachine(Protocol):
    def apply(self, entry: CommittedEntry) -> None:
        """Apply a committed entry; may see the same entry more than once."""


@dataclass(frozen=True)
class Config:
    """Identity, collaborators and tuning of a node; zero values mean "unset"."""

    id: int = ZERO_NODE_ID
    peers: Sequence[int] = ()

    finite_state_machine: Optional[FiniteStateMachine] = None
    state_store: Optional[StateStore] = None
    log_store: Optional[LogStore] = None
    network: Optional[Network] = None
    random_number_generator: Optional[RandomNumberGenerator] = None
    election_timer: Optional[Timer] = None
    leader_heartbeat_ticker: Optional[Ticker] = None
    logger: Optional[logging.Logger] = None

    min_election_timeout: timedelta = timedelta(0)
    max_election_timeout: timedelta = timedelta(0)
    leader_heartbeat_interval: timedelta = timedelta(0)
    max_pending_append_requests: int = 0

    def mixin(self, other: "Config") -> "Config":
        """Return a copy of this config with every field set in ``other`` taken from it."""
        updates = {}
        if other.id != ZERO_NODE_ID:
            updates["id"] = other.id
        if len(other.peers) > 0:
            updates["peers"] = other.peers
        for name in (
            "finite_state_machine",
            "state_store",
            "log_store",
            "network",
            "random_number_generator",
            "election_timer",
            "leader_heartbeat_ticker",
            "logger",
        ):
            value = getattr(other, name)
            if value is not None:
                updates[name] = value
        for name in (
            "min_election_timeout",
            "max_election_timeout",
            "leader_heartbeat_interval",
        ):
            value = getattr(other, name)
            if value > timedelta(0):
                updates[name] = value
        if other.max_pending_append_requests > 0:
            updates["max_pending_append_requests"] = other.max_pending_append_requests
        return replace(self, **updates)


DEFAULT_CONFIG = Config(
    min_election_timeout=timedelta(milliseconds=150),
    max_election_timeout=timedelta(milliseconds=300),
    leader_heartbeat_interval=timedelta(milliseconds=50),
    max_pending_append_requests=10_000,
)