"""A Raft node: its event loop, elections and the client-facing append path."""

from __future__ import annotations

import logging
import queue
import threading
from concurrent import futures
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Dict, List, Optional, Set, Union

from .model import (
    DEFAULT_CONFIG,
    AlreadyStartedError,
    AlreadyStoppedError,
    AppendEntriesRequest,
    AppendEntriesResponse,
    Config,
    LogEntry,
    MaxPendingAppendRequestsError,
    NotLeaderError,
    NotStartedError,
    PersistedLogNotFoundError,
    PersistedStateNotFoundError,
    Role,
    VoteRequest,
    VoteResponse,
    ZERO_NODE_ID,
)
from .replication import ReplicationMixin, _invariant, _settle

Message = Union[VoteRequest, VoteResponse, AppendEntriesRequest, AppendEntriesResponse]


class _RunState(Enum):
    IDLE = 0
    RUNNING = 1
    STOPPED = 2


@dataclass
class _AppendRequest:
    cmd: bytes
    pending: "Future[None]"


_STOP = object()


class Instance(ReplicationMixin):
    """A single Raft node.

    ``start`` runs the node's event loop on the calling thread until ``stop``
    is called. Everything else feeds that loop: ``receive`` for messages from
    peers, ``on_election_timeout`` and ``on_heartbeat_tick`` for the timer and
    ticker, and ``append`` for client commands.
    """

    def __init__(self, config: Config) -> None:
        config = DEFAULT_CONFIG.mixin(config)
        required = {
            "id": config.id != ZERO_NODE_ID,
            "peers": len(config.peers) > 0,
            "finite_state_machine": config.finite_state_machine is not None,
            "state_store": config.state_store is not None,
            "log_store": config.log_store is not None,
            "network": config.network is not None,
            "random_number_generator": config.random_number_generator is not None,
            "election_timer": config.election_timer is not None,
            "leader_heartbeat_ticker": config.leader_heartbeat_ticker is not None,
            "logger": config.logger is not None,
        }
        for name, present in required.items():
            if not present:
                raise ValueError(f"config.{name} is required")

        self._config = config
        self._id = config.id
        self._peers = tuple(config.peers)

        self._fsm = config.finite_state_machine
        self._state_store = config.state_store
        self._log_store = config.log_store
        self._network = config.network
        self._rng = config.random_number_generator
        self._election_timer = config.election_timer
        self._heartbeat_ticker = config.leader_heartbeat_ticker
        self._logger: logging.Logger = config.logger

        self._reset_volatile_state()

        self._events: "queue.Queue[object]" = queue.Queue()
        self._lock = threading.Lock()
        self._run_state = _RunState.IDLE
        self._stop_event = threading.Event()
        self._loop_done = threading.Event()
        self._loop_thread: Optional[int] = None

    def _reset_volatile_state(self) -> None:
        self._role = Role.FOLLOWER
        self._votes_received: Set[int] = set()
        self._sent_length: Dict[int, int] = {}
        self._acked_length: Dict[int, int] = {}
        self._purgatory: Dict[int, "Future[None]"] = {}
        self._current_term = 0
        self._voted_for = ZERO_NODE_ID
        self._commit_length = 0
        self._log: List[LogEntry] = []

    # Lifecycle

    def start(self) -> None:
        """Load persisted state and run the event loop until the node is stopped."""
        with self._lock:
            if self._run_state is _RunState.STOPPED:
                raise AlreadyStoppedError()
            if self._run_state is _RunState.RUNNING:
                raise AlreadyStartedError()

            self._reset_volatile_state()

            try:
                state = self._state_store.load()
            except PersistedStateNotFoundError:
                pass
            except Exception as err:
                raise RuntimeError(f"failed to load persisted state: {err}") from err
            else:
                self._logger.debug("loaded persisted state %s", state)
                self._current_term = state.current_term
                self._voted_for = state.voted_for

            try:
                persisted_log = self._log_store.load()
            except PersistedLogNotFoundError:
                pass
            except Exception as err:
                raise RuntimeError(f"failed to load persisted log: {err}") from err
            else:
                self._logger.debug("loaded persisted log of %d entries", len(persisted_log))
                self._log = list(persisted_log)

            self._restart_election_timer()
            self._run_state = _RunState.RUNNING
            self._loop_thread = threading.get_ident()

        try:
            self._run_loop()
        finally:
            self._finish()
            self._loop_done.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the node and wait up to ``timeout`` seconds for its loop to end."""
        with self._lock:
            if self._run_state is _RunState.STOPPED:
                raise AlreadyStoppedError()
            was_running = self._run_state is _RunState.RUNNING
            self._run_state = _RunState.STOPPED
            self._stop_event.set()
            self._events.put(_STOP)

        if not was_running or threading.get_ident() == self._loop_thread:
            return
        if not self._loop_done.wait(timeout):
            raise TimeoutError("raft instance did not stop in time")

    def _run_loop(self) -> None:
        while True:
            item = self._events.get()
            if item is _STOP or self._stop_event.is_set():
                return
            if isinstance(item, _AppendRequest):
                self._append_log_entry(item)
            else:
                item()

    def _finish(self) -> None:
        with self._lock:
            self._run_state = _RunState.STOPPED
        pending_requests = list(self._purgatory.values())
        self._purgatory.clear()
        while True:
            try:
                item = self._events.get_nowait()
            except queue.Empty:
                break
            if isinstance(item, _AppendRequest):
                pending_requests.append(item.pending)
        for pending in pending_requests:
            _settle(pending, AlreadyStoppedError())

    # Inputs

    def append(self, cmd: bytes, timeout: Optional[float] = None) -> None:
        """Replicate ``cmd`` and return once it is committed.

        Raises NotStartedError, AlreadyStoppedError or NotLeaderError when the
        node cannot take the command, MaxPendingAppendRequestsError when too
        many are in flight, and TimeoutError when ``timeout`` seconds pass first.
        """
        with self._lock:
            if self._run_state is _RunState.STOPPED:
                raise AlreadyStoppedError()
            if self._run_state is _RunState.IDLE:
                raise NotStartedError()
            if self._role is not Role.LEADER:
                raise NotLeaderError()

        pending: "Future[None]" = Future()
        self._events.put(_AppendRequest(cmd=bytes(cmd), pending=pending))
        try:
            pending.result(timeout)
        except futures.TimeoutError:
            raise TimeoutError("append request timed out") from None

    def receive(self, message: Message) -> None:
        """Queue a message from a peer for the event loop."""
        handler = self._handler_for(message)
        self._events.put(partial(handler, message))

    def on_election_timeout(self) -> None:
        """Queue an election timeout for the event loop."""
        self._events.put(self._start_election)

    def on_heartbeat_tick(self) -> None:
        """Queue a heartbeat tick for the event loop."""
        self._events.put(self._periodic_replication)

    def _handler_for(self, message: object) -> Callable[[Message], None]:
        if isinstance(message, VoteRequest):
            return self.handle_vote_request
        if isinstance(message, VoteResponse):
            return self.handle_vote_response
        if isinstance(message, AppendEntriesRequest):
            return self.handle_append_entries_request
        if isinstance(message, AppendEntriesResponse):
            return self.handle_append_entries_response
        raise TypeError(f"unsupported message type: {type(message).__name__}")

    # Elections

    def _start_election(self) -> None:
        if self._role is Role.LEADER:
            self._logger.debug("ignoring stale election timeout as leader")
            return
        self._logger.debug("starting new election for term %s", self._current_term + 1)

        self._votes_received = {self._id}
        self._role = Role.CANDIDATE
        self._voted_for = self._id
        self._current_term += 1
        self._persist_state()

        last_term = self._log[-1].term if self._log else 0
        req = VoteRequest(
            candidate_id=self._id,
            candidate_term=self._current_term,
            candidate_log_length=len(self._log),
            candidate_last_log_term=last_term,
        )
        self._logger.debug(
            "broadcasting vote request term=%s log_length=%s last_log_term=%s",
            self._current_term,
            len(self._log),
            last_term,
        )
        for peer in self._peers:
            self._network.send_vote_request(peer, req)

        self._restart_election_timer()

    def handle_vote_request(self, req: VoteRequest) -> None:
        """Grant or refuse a vote to a candidate and answer it."""
        _invariant(req.candidate_id != ZERO_NODE_ID, "req.candidate_id is required")
        self._logger.debug(
            "received vote request candidate_id=%s candidate_term=%s "
            "candidate_log_length=%s candidate_last_log_term=%s",
            req.candidate_id,
            req.candidate_term,
            req.candidate_log_length,
            req.candidate_last_log_term,
        )

        should_restart_election_timer = False
        if req.candidate_term > self._current_term:
            self._logger.debug("candidate term is higher, transitioning to follower")
            self._transition_to_follower(req.candidate_term)
            should_restart_election_timer = True

        last_term = self._log[-1].term if self._log else 0
        candidate_log_ok = req.candidate_last_log_term > last_term or (
            req.candidate_last_log_term == last_term
            and req.candidate_log_length >= len(self._log)
        )
        voted_for_candidate_or_none = self._voted_for in (ZERO_NODE_ID, req.candidate_id)

        granted = (
            req.candidate_term == self._current_term
            and candidate_log_ok
            and voted_for_candidate_or_none
        )
        if granted:
            self._voted_for = req.candidate_id
            self._persist_state()
            should_restart_election_timer = True
            self._logger.debug(
                "granting vote candidate_id=%s term=%s", req.candidate_id, self._current_term
            )
        else:
            self._logger.debug(
                "rejecting vote candidate_id=%s term=%s candidate_term=%s "
                "candidate_log_ok=%s voted_for_candidate_or_none=%s",
                req.candidate_id,
                self._current_term,
                req.candidate_term,
                candidate_log_ok,
                voted_for_candidate_or_none,
            )
        self._network.send_vote_response(
            req.candidate_id,
            VoteResponse(voter_id=self._id, voter_term=self._current_term, vote_granted=granted),
        )

        if should_restart_election_timer:
            self._restart_election_timer()

    def handle_vote_response(self, res: VoteResponse) -> None:
        """Count a vote, and take the lead once a majority has voted for us."""
        self._logger.debug(
            "received vote response voter_id=%s voter_term=%s vote_granted=%s",
            res.voter_id,
            res.voter_term,
            res.vote_granted,
        )

        if res.voter_term > self._current_term:
            self._logger.debug(
                "voter term is higher, transitioning to follower current_term=%s voter_term=%s",
                self._current_term,
                res.voter_term,
            )
            self._transition_to_follower(res.voter_term)
            self._restart_election_timer()
            return

        if not (
            res.voter_term == self._current_term
            and self._role is Role.CANDIDATE
            and res.vote_granted
        ):
            return

        self._votes_received.add(res.voter_id)
        if not self._is_voting_majority(len(self._votes_received)):
            return

        _invariant(
            self._voted_for == self._id,
            f"becoming leader but didn't vote for self: voted_for = {self._voted_for}",
        )
        self._logger.debug("received majority of votes, becoming leader term=%s", self._current_term)

        self._role = Role.LEADER
        self._election_timer.stop()
        for follower in self._peers:
            self._sent_length[follower] = len(self._log)
            self._acked_length[follower] = 0
            self._replicate_log(follower)
        self._heartbeat_ticker.reset(self._config.leader_heartbeat_interval)

    # Client appends

    def _append_log_entry(self, request: _AppendRequest) -> None:
        if self._role is not Role.LEADER:
            self._logger.warning(
                "attempted to append log entry as non-leader role=%s term=%s",
                self._role,
                self._current_term,
            )
            _settle(request.pending, NotLeaderError())
            return

        if len(self._purgatory) >= self._config.max_pending_append_requests:
            self._logger.warning(
                "max pending append requests reached, dropping request max=%s",
                self._config.max_pending_append_requests,
            )
            _settle(request.pending, MaxPendingAppendRequestsError())
            return

        self._logger.debug("appending new log entry as leader term=%s", self._current_term)
        self._purgatory[len(self._log)] = request.pending
        entry = LogEntry(term=self._current_term, cmd=request.cmd)
        self._log.append(entry)
        self._persist_new_entries([entry])

        for follower in self._peers:
            self._replicate_log(follower)

        # Postpone the next heartbeat: the followers have just heard from us.
        self._heartbeat_ticker.reset(self._config.leader_heartbeat_interval)