import logging
from datetime import timedelta

import pytest

from murakami.raft.model import (
    DEFAULT_CONFIG,
    ZERO_NODE_ID,
    AlreadyStartedError,
    AlreadyStoppedError,
    Config,
    LogEntry,
    MaxPendingAppendRequestsError,
    NotLeaderError,
    NotStartedError,
    PersistedLogNotFoundError,
    PersistedStateNotFoundError,
    PersistentState,
    RaftError,
    Role,
    VoteRequest,
)


class _Store:
    def load(self):
        raise PersistedStateNotFoundError()

    def save(self, state):
        self.saved = state


def test_default_config_values():
    cfg = DEFAULT_CONFIG.mixin(Config())
    assert cfg.min_election_timeout == timedelta(milliseconds=150)
    assert cfg.max_election_timeout == timedelta(milliseconds=300)
    assert cfg.leader_heartbeat_interval == timedelta(milliseconds=50)
    assert cfg.max_pending_append_requests == 10_000


def test_mixin_with_empty_config_keeps_everything():
    assert DEFAULT_CONFIG.mixin(Config()) == DEFAULT_CONFIG


def test_mixin_takes_set_fields():
    store = _Store()
    logger = logging.getLogger("murakami-test")
    cfg = DEFAULT_CONFIG.mixin(
        Config(id=1, peers=[2, 3], state_store=store, logger=logger, max_pending_append_requests=5)
    )
    assert cfg.id == 1
    assert list(cfg.peers) == [2, 3]
    assert cfg.state_store is store
    assert cfg.logger is logger
    assert cfg.max_pending_append_requests == 5
    assert cfg.min_election_timeout == DEFAULT_CONFIG.min_election_timeout


def test_mixin_ignores_non_positive_durations():
    cfg = DEFAULT_CONFIG.mixin(
        Config(min_election_timeout=timedelta(milliseconds=-5), leader_heartbeat_interval=timedelta(0))
    )
    assert cfg.min_election_timeout == DEFAULT_CONFIG.min_election_timeout
    assert cfg.leader_heartbeat_interval == DEFAULT_CONFIG.leader_heartbeat_interval


def test_mixin_overrides_positive_durations():
    timeout = timedelta(milliseconds=700)
    cfg = DEFAULT_CONFIG.mixin(Config(max_election_timeout=timeout))
    assert cfg.max_election_timeout == timeout


def test_mixin_does_not_modify_receiver():
    DEFAULT_CONFIG.mixin(Config(id=7))
    assert DEFAULT_CONFIG.id == ZERO_NODE_ID


@pytest.mark.parametrize(
    "role, text",
    [(Role.FOLLOWER, "Follower"), (Role.CANDIDATE, "Candidate"), (Role.LEADER, "Leader")],
)
def test_role_str(role, text):
    assert str(role) == text


@pytest.mark.parametrize(
    "error_type, text",
    [
        (AlreadyStartedError, "raft instance already started"),
        (AlreadyStoppedError, "raft instance already stopped"),
        (NotStartedError, "raft instance not started"),
        (NotLeaderError, "raft instance not leader"),
        (PersistedStateNotFoundError, "persisted state not found"),
        (PersistedLogNotFoundError, "persisted log not found"),
        (MaxPendingAppendRequestsError, "max pending append requests reached"),
    ],
)
def test_error_messages(error_type, text):
    error = error_type()
    assert isinstance(error, RaftError)
    assert str(error) == text


def test_error_accepts_custom_message():
    assert str(NotLeaderError("elsewhere")) == "elsewhere"


def test_persistent_state_defaults():
    assert PersistentState() == PersistentState(current_term=0, voted_for=ZERO_NODE_ID)


def test_messages_compare_by_value():
    assert LogEntry(term=1, cmd=b"x") == LogEntry(term=1, cmd=b"x")
    req = VoteRequest(candidate_id=1, candidate_term=2, candidate_log_length=3, candidate_last_log_term=1)
    assert req == VoteRequest(1, 2, 3, 1)
    with pytest.raises(AttributeError):
        req.candidate_term = 9