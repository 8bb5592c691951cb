"""Log replication, commitment and the state changes shared by every role."""

from __future__ import annotations

from concurrent.futures import Future, InvalidStateError
from typing import Dict, List, Optional, Sequence

from .model import (
    AppendEntriesRequest,
    AppendEntriesResponse,
    CommittedEntry,
    Config,
    LogEntry,
    NotLeaderError,
    PersistentState,
    Role,
    ZERO_NODE_ID,
)


def _invariant(condition: bool, message: str) -> None:
    """Fail loudly when an internal invariant does not hold."""
    if not condition:
        raise AssertionError(message)


def _settle(pending: "Future[None]", error: Optional[BaseException]) -> None:
    """Complete a pending append request unless it is already completed."""
    if pending.done():
        return
    try:
        if error is None:
            pending.set_result(None)
        else:
            pending.set_exception(error)
    except InvalidStateError:
        pass


class ReplicationMixin:
    """Append-entries handling and the helpers a Raft node shares across roles.

    The host class provides these attributes:
    ``_id``, ``_peers``, ``_config``, ``_role``, ``_current_term``, ``_voted_for``,
    ``_commit_length``, ``_log`` (a list of LogEntry), ``_sent_length`` and
    ``_acked_length`` (dicts by follower id), ``_purgatory`` (pending append
    requests as futures, keyed by log index), and the collaborators
    ``_network``, ``_state_store``, ``_log_store``, ``_fsm``, ``_rng``,
    ``_election_timer``, ``_heartbeat_ticker`` and ``_logger``.
    """

    _id: int
    _peers: Sequence[int]
    _config: Config
    _role: Role
    _current_term: int
    _voted_for: int
    _commit_length: int
    _log: List[LogEntry]
    _sent_length: Dict[int, int]
    _acked_length: Dict[int, int]
    _purgatory: Dict[int, "Future[None]"]

    def handle_append_entries_request(self, req: AppendEntriesRequest) -> None:
        """Accept or reject entries sent by a leader and answer it."""
        self._logger.debug(
            "received append entries request leader_id=%s leader_term=%s "
            "leader_commit_length=%s prefix_length=%s prefix_term=%s suffix_length=%s",
            req.leader_id,
            req.leader_term,
            req.leader_commit_length,
            req.prefix_length,
            req.prefix_term,
            len(req.suffix),
        )

        should_restart_election_timer = False

        if req.leader_term > self._current_term:
            self._logger.debug(
                "leader term is higher, transitioning to follower current_term=%s leader_term=%s",
                self._current_term,
                req.leader_term,
            )
            self._transition_to_follower(req.leader_term)

        if req.leader_term == self._current_term:
            self._role = Role.FOLLOWER
            should_restart_election_timer = True

        # Our log holds the leader's assumed prefix when it is long enough and
        # the last prefix entry carries the same term (Log Matching property).
        log_contains_prefix = len(self._log) >= req.prefix_length and (
            req.prefix_length == 0 or self._log[req.prefix_length - 1].term == req.prefix_term
        )

        if req.leader_term == self._current_term and log_contains_prefix:
            self._logger.debug(
                "appending new entries from leader leader_id=%s prefix_length=%s suffix_length=%s",
                req.leader_id,
                req.prefix_length,
                len(req.suffix),
            )
            self._append_entries(req.prefix_length, req.leader_commit_length, req.suffix)
            response = AppendEntriesResponse(
                follower_id=self._id,
                follower_term=self._current_term,
                ack=req.prefix_length + len(req.suffix),
                success=True,
            )
        else:
            self._logger.debug(
                "rejecting append entries request leader_id=%s leader_term=%s "
                "current_term=%s log_contains_prefix=%s",
                req.leader_id,
                req.leader_term,
                self._current_term,
                log_contains_prefix,
            )
            response = AppendEntriesResponse(
                follower_id=self._id,
                follower_term=self._current_term,
                ack=0,
                success=False,
            )
        self._network.send_append_entries_response(req.leader_id, response)

        if should_restart_election_timer:
            self._restart_election_timer()

    def handle_append_entries_response(self, res: AppendEntriesResponse) -> None:
        """Record a follower's acknowledgement, commit what a majority holds, or back off."""
        self._logger.debug(
            "received append entries response current_term=%s role=%s follower_id=%s "
            "follower_term=%s ack=%s success=%s",
            self._current_term,
            self._role,
            res.follower_id,
            res.follower_term,
            res.ack,
            res.success,
        )

        if res.follower_term > self._current_term:
            self._logger.debug(
                "follower term is higher, transitioning to follower follower_id=%s term=%s",
                res.follower_id,
                res.follower_term,
            )
            self._transition_to_follower(res.follower_term)
            self._restart_election_timer()
            return

        if res.follower_term != self._current_term or self._role is not Role.LEADER:
            return

        follower = res.follower_id
        if res.success:
            _invariant(
                res.ack <= len(self._log),
                f"follower {follower} acked {res.ack} entries but log only has {len(self._log)}",
            )
            old_acked = self._acked_length.get(follower, 0)
            if res.ack > old_acked:
                old_sent = self._sent_length.get(follower, 0)
                self._sent_length[follower] = res.ack
                self._acked_length[follower] = res.ack
                _invariant(
                    res.ack >= old_sent,
                    f"sentLength went backwards for follower {follower}: {old_sent} -> {res.ack}",
                )
                self._leader_commit_log_entries()
        elif self._sent_length.get(follower, 0) > 0:
            self._sent_length[follower] -= 1
            self._replicate_log(follower)

    def _append_entries(
        self, prefix_length: int, leader_commit_length: int, suffix: Sequence[LogEntry]
    ) -> None:
        """Merge the leader's suffix into our log and deliver newly committed entries.

        Pre-condition: our log already holds the leader's prefix.
        """
        leader_log_length = prefix_length + len(suffix)

        # Entries past the prefix may conflict with the suffix; if the last
        # overlapping entry disagrees on term, drop everything after the prefix.
        if len(self._log) > prefix_length and suffix:
            idx = min(len(self._log), leader_log_length) - 1
            if self._log[idx].term != suffix[idx - prefix_length].term:
                del self._log[prefix_length:]

        if leader_log_length > len(self._log):
            start = len(self._log) - prefix_length
            new_entries = list(suffix[start:])
            self._log.extend(new_entries)
            self._persist_new_entries(new_entries)

        # Deliver before advancing: at-least-once delivery to the state machine.
        if leader_commit_length > self._commit_length:
            for seq in range(self._commit_length, leader_commit_length):
                self._deliver(CommittedEntry(log_seq_num=seq, cmd=self._log[seq].cmd))
            self._commit_length = leader_commit_length

    def _leader_commit_log_entries(self) -> None:
        """Commit, in order, every entry that a majority of the cluster has acknowledged."""
        _invariant(self._role is Role.LEADER, f"attempting to commit entries as {self._role}")

        while self._commit_length < len(self._log):
            acks = 1 + sum(
                1 for peer in self._peers if self._acked_length.get(peer, 0) > self._commit_length
            )
            if not self._is_voting_majority(acks):
                break

            entry = self._log[self._commit_length]
            _invariant(
                entry.term == self._current_term,
                f"leader attempting to commit entry from old term "
                f"{entry.term} != {self._current_term}",
            )
            self._deliver(CommittedEntry(log_seq_num=self._commit_length, cmd=entry.cmd))

            pending = self._purgatory.pop(self._commit_length, None)
            if pending is not None:
                _settle(pending, None)

            self._commit_length += 1

    def _replicate_log(self, follower: int) -> None:
        """Send a follower every entry past what it is believed to hold."""
        _invariant(self._role is Role.LEADER, f"attempting to replicate log as {self._role}")

        prefix_length = self._sent_length.get(follower, 0)
        suffix = list(self._log[prefix_length:])
        prefix_term = self._log[prefix_length - 1].term if prefix_length > 0 else 0

        self._logger.debug(
            "sending append entries request follower=%s term=%s prefix_length=%s "
            "prefix_term=%s suffix_length=%s",
            follower,
            self._current_term,
            prefix_length,
            prefix_term,
            len(suffix),
        )
        self._network.send_append_entries_request(
            follower,
            AppendEntriesRequest(
                leader_id=self._id,
                leader_term=self._current_term,
                leader_commit_length=self._commit_length,
                prefix_length=prefix_length,
                prefix_term=prefix_term,
                suffix=suffix,
            ),
        )

    def _periodic_replication(self) -> None:
        """Heartbeat every follower as leader; otherwise stop the heartbeat ticker."""
        if self._role is Role.LEADER:
            self._logger.debug("periodic leader replication term=%s", self._current_term)
            for follower in self._peers:
                self._replicate_log(follower)
        else:
            self._logger.debug("not leader, stopping periodic log replication")
            self._heartbeat_ticker.stop()

    def _transition_to_follower(self, new_term: int) -> None:
        """Step down into a newer term, failing every pending append request."""
        _invariant(
            new_term > self._current_term,
            f"new term is not greater than current term: new_term = {new_term}, "
            f"current_term = {self._current_term}",
        )
        self._role = Role.FOLLOWER
        self._current_term = new_term
        self._voted_for = ZERO_NODE_ID

        pending_requests = list(self._purgatory.values())
        self._purgatory.clear()
        for pending in pending_requests:
            _settle(pending, NotLeaderError())

        self._persist_state()

    def _restart_election_timer(self) -> None:
        duration = self._rng.generate_duration_in_range(
            self._config.min_election_timeout, self._config.max_election_timeout
        )
        self._logger.debug("restarting election timer duration=%s", duration)
        self._election_timer.reset(duration)

    def _is_voting_majority(self, value: int) -> bool:
        return value > (len(self._peers) + 1) // 2

    def _persist_state(self) -> None:
        state = PersistentState(current_term=self._current_term, voted_for=self._voted_for)
        try:
            self._state_store.save(state)
        except Exception as err:
            self._logger.error("failed to persist state: %s", err)
            raise RuntimeError(f"raft instance {self._id} failed to save state: {err}") from err

    def _persist_new_entries(self, entries: Sequence[LogEntry]) -> None:
        try:
            self._log_store.append(entries)
        except Exception as err:
            self._logger.error("failed to persist new entries: %s", err)
            raise RuntimeError(
                f"raft instance {self._id} failed to persist new entries: {err}"
            ) from err

    def _deliver(self, entry: CommittedEntry) -> None:
        try:
            self._fsm.apply(entry)
        except Exception as err:
            self._logger.error("failed to deliver entry: %s", err)
            raise RuntimeError(f"raft instance {self._id} failed to deliver entry: {err}") from err