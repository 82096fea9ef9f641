# netstack

A user-space implementation of the core of TCP and UDP, for learning, testing
and simulation. Segments and datagrams are plain Python objects and bytes;
nothing here touches the operating system's network stack, and you decide how
they travel.

What is included:

- `netstack.checksum`: the Internet checksum (`internet_checksum`) and the
  IPv4 pseudo-header (`pseudo_header`) used by TCP and UDP.
- `netstack.udp.packet`: the UDP `Packet`, `parse`, `new_packet`, and
  pseudo-header checksums.
- `netstack.tcp.packet`: the TCP `Segment`, `parse`, `new_segment`, the
  `Flag` and `OptionKind` enums, and option builders and readers for MSS,
  window scale, timestamps, SACK-permitted and SACK.
- `netstack.tcp.state`: the `State` and `Event` enums and the
  `StateMachine` of connection states.
- `netstack.tcp.buffers`: `SendBuffer` and the bounded `ReceiveBuffer`.
- `netstack.tcp.retransmit`: the `RetransmitQueue` and wraparound-safe
  sequence comparisons `seq_before`, `seq_after` and `seq_between`.
- `netstack.tcp.connection`: `Connection`, a single TCP connection that
  performs the handshake, sends and receives data, and tears down.
- `netstack.tcp.fastopen`: TCP Fast Open cookies (`TFOState`), per-connection
  Fast Open state (`TFOConnection`) and the TFO option.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Examples

### Encoding and decoding a TCP segment

```python
from netstack.tcp.packet import Flag, build_mss_option, new_segment, parse

src, dst = bytes([10, 0, 0, 1]), bytes([10, 0, 0, 2])

seg = new_segment(12345, 80, 1000, 0, Flag.SYN, 65535, b"")
seg.options = build_mss_option(1460)
seg.checksum = seg.calculate_checksum(src, dst)

back = parse(seg.serialize())
assert back.has_flag(Flag.SYN)
assert back.mss() == 1460
assert back.verify_checksum(src, dst)
```

IPv4 addresses may be given as four bytes, a sequence of four integers, a
dotted string, an integer or an `ipaddress.IPv4Address`.

### UDP datagrams

```python
from netstack.udp.packet import new_packet, parse

src, dst = "192.168.1.100", "192.168.1.1"

pkt = new_packet(8080, 80, b"Hello, UDP!")
pkt.checksum = pkt.calculate_checksum(src, dst)

back = parse(pkt.serialize())
assert back.data == b"Hello, UDP!"
assert back.verify_checksum(src, dst)
print(back)  # UDP{SrcPort=8080, DstPort=80, Len=19, DataLen=11}
```

### The TCP state machine

```python
from netstack.tcp.state import Event, State, StateMachine

sm = StateMachine()
sm.transition(Event.ACTIVE_OPEN)
sm.transition(Event.RECEIVE_SYN_ACK)
assert sm.state is State.ESTABLISHED
assert sm.state.can_send_data()
```

An event that is not valid in the current state raises
`InvalidTransitionError`.

### Two connections talking to each other

A `Connection` hands each outgoing segment to its `on_segment_ready`
callback and each piece of in-order data to `on_data_ready`. Collect the
segments and deliver them yourself:

```python
from netstack.tcp.connection import Connection
from netstack.tcp.state import State

a, b = "10.0.0.1", "10.0.0.2"
client = Connection(a, 40000, b, 80)
server = Connection(b, 80, a, 40000)

to_server, to_client, received = [], [], []
client.on_segment_ready = to_server.append
server.on_segment_ready = to_client.append
server.on_data_ready = received.append

server.passive_open()
client.active_open()                      # SYN
server.handle_segment(to_server.pop(0))   # SYN+ACK
client.handle_segment(to_client.pop(0))   # ACK
server.handle_segment(to_server.pop(0))
assert client.state is State.ESTABLISHED
assert server.state is State.ESTABLISHED

client.send(b"hello")
server.handle_segment(to_server.pop(0))
assert received == [b"hello"]
```

`close()` sends a FIN and starts the teardown. The TIME_WAIT period defaults
to two minutes and can be set with the `time_wait` keyword argument (in
seconds) when creating the connection; `on_close` is called once the
connection reaches CLOSED.

### Retransmission queue and sequence numbers

```python
from netstack.tcp.packet import Flag, new_segment
from netstack.tcp.retransmit import RetransmitQueue, seq_before

q = RetransmitQueue()
q.add(1000, new_segment(12345, 80, 1000, 0, Flag.SYN, 65535, None))
q.add(1001, new_segment(12345, 80, 1001, 0, Flag.ACK, 65535, b"data"))
q.remove_before(1001)
assert len(q) == 1

assert seq_before(0xFFFFFF00, 0x00000100)  # wraps around
```

Send times are `time.monotonic()` seconds; `expired(timeout)` returns the
entries sent more than `timeout` seconds ago.

### TCP Fast Open

```python
from netstack.tcp.fastopen import TFOState, build_tfo_option

tfo = TFOState()
cookie = tfo.generate_cookie("192.0.2.1")
assert tfo.validate_cookie("192.0.2.1", cookie)
assert build_tfo_option(cookie)[:2] == bytes([34, 18])
```

`get_tfo_cookie(segment)` and `has_tfo(segment)` read the option from a
`Segment`.

## Errors

Problems are reported by raising exceptions: `SegmentError` for malformed TCP
segments and options, `PacketError` for malformed or oversized UDP datagrams,
`TCPError` for rejected connection operations and incoming segments, and
`InvalidTransitionError` for illegal state changes.

## What it does not do

There is no socket-style API over `Connection` (no listen, accept or
blocking receive), no UDP sockets or port demultiplexer, no separate
congestion-control or RTT-estimator component beyond the window handling
built into `Connection`, no profiler, and no TLS support. Out-of-order TCP
data is dropped rather than buffered. There is no command-line tool.