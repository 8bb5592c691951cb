"""Raft consensus: leader election, log replication and commit delivery."""