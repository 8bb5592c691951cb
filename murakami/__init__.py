"""Stream store building blocks: wire protocol codecs and a Raft consensus core."""

__version__ = "0.1.0"