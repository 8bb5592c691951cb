# murakami

Building blocks for an append-only stream store. The package has two parts:

- `murakami.protocol` encodes and decodes the store's text wire protocol. The protocol is built from arrays (`*`), bulk strings (`$`), simple strings (`+`) and errors (`-`). Every element ends with CRLF.
- `murakami.raft` is a Raft consensus core. It handles leader election, log replication and commit delivery. You supply the storage, network, timers and state machine.

The package has no runtime dependencies.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Protocol

The protocol has five commands: `CREATE`, `APPEND`, `READ`, `TRIM` and `DELETE`. Their data classes live in `murakami.protocol.messages`:

- `CreateCommand`
- `AppendCommand`
- `ReadCommand`
- `TrimCommand`
- `DeleteCommand`
- `Record`
- the reply classes: `CreateReply`, `AppendReply`, `ReadReply`, `TrimReply`, `DeleteReply`

### Commands

The client writes commands with `CommandEncoder` (`murakami.protocol.command_encoder`). The server reads them with `CommandDecoder` (`murakami.protocol.command_decoder`).

```python
import io

from murakami.protocol.buffers import EagerAllocationBufferProvider
from murakami.protocol.command_decoder import CommandDecoder
from murakami.protocol.command_encoder import CommandEncoder
from murakami.protocol.messages import AppendCommand

out = io.BytesIO()
CommandEncoder().encode_append_command(
    out, AppendCommand(stream_name="orders", records=[b"hello", b"world"])
)

reader = io.BufferedReader(io.BytesIO(out.getvalue()))
decoder = CommandDecoder(EagerAllocationBufferProvider())
spec = decoder.decode_next_command(reader)      # CommandSpec(name="APPEND", args_length=3)
command = decoder.decode_append_command(reader)
[bytes(r) for r in command.records]             # [b"hello", b"world"]
```

#### How decoding works

`decode_next_command` reads the command name and the number of arguments that follow it. You then call the matching `decode_*_command` method. Option keys match whatever their case.

Each decoded record is a `memoryview` over a buffer taken from the `BufferProvider` you pass in. `EagerAllocationBufferProvider` allocates a fresh buffer for every record. If decoding fails part-way, the buffers already taken are handed back with `put`.

#### Limits

`CommandDecoder` enforces these limits:

| Field | Rule |
|---|---|
| Stream name | 1 to 256 bytes |
| Option key or value | 1 to 256 bytes |
| `APPEND` records | 1 to 1000 records, none of them empty, at most 1 MiB in total |
| `APPEND` `ID` option | a millisecond timestamp of up to 20 digits |
| `READ` `COUNT` option | 1 to 1000; the default is 1000 |
| `READ` `BLOCK` option | 0 to 10000 milliseconds; the default is 0 |
| `READ` `MIN_ID` option | a valid ID; the default is `"0-0"` |
| `TRIM` `MIN_ID` option | required |
| `CREATE` and `DELETE` | no options accepted |

On the client side, `CommandEncoder.encode_trim_command` raises `ValueError` if `MIN_ID` is not a valid ID.

### Replies

The server writes replies with `ReplyEncoder` (`murakami.protocol.reply_encoder`). It has four methods:

- `encode_ok`
- `encode_error`
- `encode_bulk_string`
- `encode_records`

The client reads replies with `ReplyDecoder` (`murakami.protocol.reply_decoder`). It has one method per command: `decode_create_reply`, `decode_append_reply`, `decode_read_reply`, `decode_trim_reply` and `decode_delete_reply`.

The decoder peeks at the first byte of each reply, so its reader must support `peek()`. An `io.BufferedReader` does.

### Errors

- **Commands.** A command that breaks a protocol rule or a limit raises `ProtocolError` (`murakami.protocol.errors`). Its `code` is an `ErrorCode`, such as `ERR_BAD_FORMAT` or `ERR_LIMITS`. `str()` of the error gives its wire form, for example `-ERR_LIMITS message\r\n`.
- **Error replies.** When the server answers with an error, the decoded reply carries it in its `err` field.
- **Malformed replies.** These raise `ReplyFormatError` or `ProtocolError`.
- **Short streams.** A stream that ends too early raises `EOFError`.

### Frames

The frame-level helpers are in `murakami.protocol.wire`, for example `read_bulk_string`, `write_bulk_bytes` and `read_error`.

Record IDs have the form `<millis>-<seq>`, each part up to 20 digits. Two helpers check IDs:

- `is_valid_id` checks a whole ID.
- `is_valid_id_millis` checks the millisecond part alone.

## Raft

`murakami.raft.node.Instance` is built from a `murakami.raft.model.Config`.

### Configuration

The config supplies:

- the node `id` and the `peers`
- these collaborators, each described by a protocol in `murakami.raft.model`:
  - `StateStore`
  - `LogStore`
  - `Network`
  - `FiniteStateMachine`
  - `RandomNumberGenerator`
  - `Timer` (the election timer)
  - `Ticker` (the leader heartbeat ticker)
- a `logging.Logger`

Config fields you leave unset take the values in `DEFAULT_CONFIG`:

| Setting | Default |
|---|---|
| Election timeout | 150 to 300 ms |
| Heartbeat interval | 50 ms |
| Pending append requests, at most | 10000 |

The constructor raises `ValueError` if a required field is missing.

### Running a node

1. Call `start()`. It loads the persisted state and log, then runs the node's event loop on the calling thread until the node is stopped. Run it in a thread of its own.
2. Feed events into the node:
   - peer messages through `receive()`: `VoteRequest`, `VoteResponse`, `AppendEntriesRequest` and `AppendEntriesResponse`
   - election timeouts through `on_election_timeout()`
   - heartbeat ticks through `on_heartbeat_tick()`
3. On the leader, call `append(cmd, timeout)`. It returns once the command is committed. It raises:
   - `NotStartedError`, `AlreadyStoppedError` or `NotLeaderError` when the node cannot take the command
   - `MaxPendingAppendRequestsError` when too many appends are in flight
   - `TimeoutError` when `timeout` seconds pass first
4. Call `stop(timeout)` to end the loop. It raises `TimeoutError` if the loop does not end in time.

Appends that are still pending fail at two points:

- with `AlreadyStoppedError` when the node stops
- with `NotLeaderError` when the leader steps down

Committed entries reach `FiniteStateMachine.apply` at least once, in log order.

## What the package does not do

The package provides codecs and a consensus core only. It has none of the following:

- a server or client program
- a command-line tool
- a stream storage engine
- a network transport
- concrete stores, timers or tickers for the Raft node

You have to provide these yourself.