"""A single TCP connection: handshake, data transfer and teardown."""

from __future__ import annotations

import secrets
import threading
from contextlib import suppress
from typing import Callable, Optional

from netstack.checksum import IPv4Like
from netstack.tcp.buffers import ReceiveBuffer, SendBuffer
from netstack.tcp.packet import DEFAULT_MSS, Flag, Segment, SegmentError, build_mss_option, new_segment
from netstack.tcp.retransmit import RetransmitQueue
from netstack.tcp.state import Event, State, StateMachine

_U32 = 0xFFFFFFFF

DEFAULT_WINDOW = 65535
INITIAL_RTO = 1.0
TIME_WAIT_DURATION = 120.0  # 2 * MSL

SegmentCallback = Callable[[Segment], None]
DataCallback = Callable[[bytes], None]
CloseCallback = Callable[[], None]


class TCPError(Exception):
    """Raised when a TCP connection operation or incoming segment is rejected."""


class Connection:
    """One TCP connection identified by its local and remote endpoints.

    Outgoing segments are handed to ``on_segment_ready``; in-order data is
    handed to ``on_data_ready``; ``on_close`` is called once the connection
    reaches CLOSED after a teardown.
    """

    def __init__(
        self,
        local_addr: IPv4Like,
        local_port: int,
        remote_addr: IPv4Like,
        remote_port: int,
        *,
        time_wait: float = TIME_WAIT_DURATION,
    ) -> None:
        self.local_addr = local_addr
        self.local_port = local_port
        self.remote_addr = remote_addr
        self.remote_port = remote_port

        self.on_segment_ready: Optional[SegmentCallback] = None
        self.on_data_ready: Optional[DataCallback] = None
        self.on_close: Optional[CloseCallback] = None

        self._machine = StateMachine()
        self._lock = threading.RLock()

        self._snd_una = 0
        self._snd_nxt = 0
        self._snd_wnd = DEFAULT_WINDOW
        self._iss = 0
        self._rcv_nxt = 0
        self._rcv_wnd = DEFAULT_WINDOW
        self._irs = 0

        self._send_buffer = SendBuffer()
        self._receive_buffer = ReceiveBuffer(DEFAULT_WINDOW)
        self._retransmit_queue = RetransmitQueue()
        self._rto = INITIAL_RTO
        self._srtt = 0.0
        self._rttvar = 0.0

        self._cwnd = DEFAULT_MSS * 2
        self._ssthresh = 65535
        self._dup_ack_count = 0

        self._mss = DEFAULT_MSS
        self._window_scale = 0

        self._time_wait = time_wait
        self._time_wait_timer: Optional[threading.Timer] = None

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> State:
        """The current connection state."""
        with self._lock:
            return self._machine.state

    @state.setter
    def state(self, value: State) -> None:
        with self._lock:
            self._machine.state = value

    # -- opening -----------------------------------------------------------

    def active_open(self) -> None:
        """Start a client-side handshake by sending a SYN."""
        with self._lock:
            if self._machine.state is not State.CLOSED:
                raise TCPError("connection not in CLOSED state")
            self._iss = secrets.randbits(32)
            self._snd_una = self._iss
            self._snd_nxt = self._iss

            syn = new_segment(
                self.local_port, self.remote_port, self._iss, 0, Flag.SYN, self._rcv_wnd, None
            )
            syn.options = build_mss_option(self._mss)
            self._finalize(syn)

            self._machine.transition(Event.ACTIVE_OPEN)
            self._emit(syn)

            self._retransmit_queue.add(self._iss, syn)
            self._snd_nxt = (self._iss + 1) & _U32

    def passive_open(self) -> None:
        """Move a closed connection into LISTEN."""
        with self._lock:
            if self._machine.state is not State.CLOSED:
                raise TCPError("connection not in CLOSED state")
            self._machine.transition(Event.PASSIVE_OPEN)

    # -- incoming segments -------------------------------------------------

    def handle_segment(self, segment: Segment) -> None:
        """Process an incoming segment according to the current state."""
        with self._lock:
            if not segment.verify_checksum(self.remote_addr, self.local_addr):
                raise TCPError("checksum verification failed")
            state = self._machine.state
            handler = self._HANDLERS.get(state)
            if handler is None:
                raise TCPError(f"invalid state: {state}")
            handler(self, segment)

    def _handle_listen(self, seg: Segment) -> None:
        if not (seg.has_flag(Flag.SYN) and not seg.has_flag(Flag.ACK)):
            raise TCPError("expected SYN in LISTEN state")
        self._irs = seg.sequence_number
        self._rcv_nxt = (seg.sequence_number + 1) & _U32

        self._iss = secrets.randbits(32)
        self._snd_una = self._iss
        self._snd_nxt = self._iss

        with suppress(SegmentError):
            self._mss = seg.mss()

        reply = new_segment(
            self.local_port,
            self.remote_port,
            self._iss,
            self._rcv_nxt,
            Flag.SYN | Flag.ACK,
            self._rcv_wnd,
            None,
        )
        reply.options = build_mss_option(self._mss)
        self._finalize(reply)

        self._machine.transition(Event.RECEIVE_SYN)
        self._emit(reply)

        self._retransmit_queue.add(self._iss, reply)
        self._snd_nxt = (self._iss + 1) & _U32

    def _handle_syn_sent(self, seg: Segment) -> None:
        if not (seg.has_flag(Flag.SYN) and seg.has_flag(Flag.ACK)):
            raise TCPError("expected SYN+ACK in SYN_SENT state")
        if seg.ack_number != self._snd_nxt:
            raise TCPError(
                f"invalid ACK number: got {seg.ack_number}, expected {self._snd_nxt}"
            )
        self._irs = seg.sequence_number
        self._rcv_nxt = (seg.sequence_number + 1) & _U32
        self._snd_una = seg.ack_number

        with suppress(SegmentError):
            peer_mss = seg.mss()
            if peer_mss < self._mss:
                self._mss = peer_mss

        self._snd_wnd = seg.window_size
        self._retransmit_queue.remove(self._iss)

        ack = self._finalize(self._make_ack())
        self._machine.transition(Event.RECEIVE_SYN_ACK)
        self._emit(ack)

    def _handle_syn_received(self, seg: Segment) -> None:
        if not seg.has_flag(Flag.ACK):
            raise TCPError("expected ACK in SYN_RECEIVED state")
        if seg.ack_number != self._snd_nxt:
            raise TCPError(
                f"invalid ACK number: got {seg.ack_number}, expected {self._snd_nxt}"
            )
        self._snd_una = seg.ack_number
        self._snd_wnd = seg.window_size
        self._retransmit_queue.remove(self._iss)
        self._machine.transition(Event.RECEIVE_ACK)

    def _handle_established(self, seg: Segment) -> None:
        if seg.has_flag(Flag.ACK):
            self._process_ack(seg)
        if seg.data:
            self._process_data(seg)
        if seg.has_flag(Flag.FIN):
            self._acknowledge_fin(seg)
            self._machine.transition(Event.RECEIVE_FIN)

    def _handle_fin_wait_1(self, seg: Segment) -> None:
        if seg.has_flag(Flag.ACK):
            self._process_ack(seg)
            if seg.ack_number > self._snd_una:
                self._retransmit_queue.remove((self._snd_nxt - 1) & _U32)
                self._snd_una = seg.ack_number

        if seg.has_flag(Flag.FIN):
            self._acknowledge_fin(seg)
            if seg.has_flag(Flag.ACK):
                self._machine.transition(Event.RECEIVE_FIN_ACK)
            else:
                self._machine.transition(Event.RECEIVE_FIN)
            return

        if seg.has_flag(Flag.ACK):
            self._machine.transition(Event.RECEIVE_ACK)

    def _handle_fin_wait_2(self, seg: Segment) -> None:
        if seg.has_flag(Flag.FIN):
            self._acknowledge_fin(seg)
            self._start_time_wait_timer()
            self._machine.transition(Event.RECEIVE_FIN)

    def _handle_close_wait(self, seg: Segment) -> None:
        if seg.has_flag(Flag.ACK):
            self._process_ack(seg)

    def _handle_closing(self, seg: Segment) -> None:
        if seg.has_flag(Flag.ACK):
            self._process_ack(seg)
            self._start_time_wait_timer()
            self._machine.transition(Event.RECEIVE_ACK)

    def _handle_last_ack(self, seg: Segment) -> None:
        if seg.has_flag(Flag.ACK):
            self._process_ack(seg)
            self._machine.transition(Event.RECEIVE_ACK)
            if self.on_close is not None:
                self.on_close()

    def _handle_time_wait(self, seg: Segment) -> None:
        if seg.has_flag(Flag.FIN):
            self._emit(self._finalize(self._make_ack()), quiet=True)
            self._start_time_wait_timer()

    _HANDLERS: dict[State, Callable[["Connection", Segment], None]] = {
        State.LISTEN: _handle_listen,
        State.SYN_SENT: _handle_syn_sent,
        State.SYN_RECEIVED: _handle_syn_received,
        State.ESTABLISHED: _handle_established,
        State.FIN_WAIT_1: _handle_fin_wait_1,
        State.FIN_WAIT_2: _handle_fin_wait_2,
        State.CLOSE_WAIT: _handle_close_wait,
        State.CLOSING: _handle_closing,
        State.LAST_ACK: _handle_last_ack,
        State.TIME_WAIT: _handle_time_wait,
    }

    def _acknowledge_fin(self, seg: Segment) -> None:
        self._rcv_nxt = (seg.sequence_number + len(seg.data) + 1) & _U32
        self._emit(self._finalize(self._make_ack()), quiet=True)

    def _process_ack(self, seg: Segment) -> None:
        self._snd_wnd = seg.window_size
        if seg.ack_number > self._snd_una:
            bytes_acked = (seg.ack_number - self._snd_una) & _U32
            self._snd_una = seg.ack_number
            self._retransmit_queue.remove_before(seg.ack_number)
            self._update_congestion_window(bytes_acked)
            self._dup_ack_count = 0
        elif seg.ack_number == self._snd_una and not seg.data:
            self._dup_ack_count += 1
            if self._dup_ack_count == 3:
                self._fast_retransmit()

    def _process_data(self, seg: Segment) -> None:
        if seg.sequence_number != self._rcv_nxt:
            # Out-of-order data is not buffered.
            return
        self._receive_buffer.write(seg.data)
        self._rcv_nxt = (self._rcv_nxt + len(seg.data)) & _U32
        if self.on_data_ready is not None:
            self.on_data_ready(seg.data)
        self._emit(self._finalize(self._make_ack()), quiet=True)

    # -- sending -----------------------------------------------------------

    def send(self, data: bytes) -> None:
        """Queue ``data`` and send as much as the windows allow."""
        with self._lock:
            state = self._machine.state
            if not state.can_send_data():
                raise TCPError(f"cannot send data in state {state}")
            self._send_buffer.write(data)
            self._send_data()

    def _send_data(self) -> None:
        while True:
            in_flight = (self._snd_nxt - self._snd_una) & _U32
            if self._snd_wnd - in_flight <= 0:
                break
            if in_flight >= self._cwnd:
                break
            chunk = self._send_buffer.read(self._mss)
            if not chunk:
                break
            seg = new_segment(
                self.local_port,
                self.remote_port,
                self._snd_nxt,
                self._rcv_nxt,
                Flag.ACK | Flag.PSH,
                self._rcv_wnd,
                chunk,
            )
            self._finalize(seg)
            self._emit(seg)
            self._retransmit_queue.add(self._snd_nxt, seg)
            self._snd_nxt = (self._snd_nxt + len(chunk)) & _U32

    def close(self) -> None:
        """Send a FIN and begin closing the connection."""
        with self._lock:
            if self._machine.state is State.CLOSED:
                raise TCPError("connection already closed")
            fin = new_segment(
                self.local_port,
                self.remote_port,
                self._snd_nxt,
                self._rcv_nxt,
                Flag.FIN | Flag.ACK,
                self._rcv_wnd,
                None,
            )
            self._finalize(fin)
            self._emit(fin)
            self._retransmit_queue.add(self._snd_nxt, fin)
            self._snd_nxt = (self._snd_nxt + 1) & _U32
            self._machine.transition(Event.CLOSE)

    # -- helpers -----------------------------------------------------------

    def _make_ack(self) -> Segment:
        return new_segment(
            self.local_port,
            self.remote_port,
            self._snd_nxt,
            self._rcv_nxt,
            Flag.ACK,
            self._rcv_wnd,
            None,
        )

    def _finalize(self, seg: Segment) -> Segment:
        seg.checksum = seg.calculate_checksum(self.local_addr, self.remote_addr)
        return seg

    def _emit(self, seg: Segment, *, quiet: bool = False) -> None:
        callback = self.on_segment_ready
        if callback is None:
            return
        if quiet:
            with suppress(Exception):
                callback(seg)
        else:
            callback(seg)

    def _start_time_wait_timer(self) -> None:
        if self._time_wait_timer is not None:
            self._time_wait_timer.cancel()
        timer = threading.Timer(self._time_wait, self._on_time_wait_expired)
        timer.daemon = True
        self._time_wait_timer = timer
        timer.start()

    def _on_time_wait_expired(self) -> None:
        with self._lock:
            with suppress(ValueError):
                self._machine.transition(Event.TIMEOUT)
            if self.on_close is not None:
                self.on_close()

    def _update_congestion_window(self, bytes_acked: int) -> None:
        if self._cwnd < self._ssthresh:
            self._cwnd = (self._cwnd + bytes_acked) & _U32
        else:
            growth = ((self._mss * bytes_acked) & _U32) // self._cwnd
            self._cwnd = (self._cwnd + growth) & _U32

    def _fast_retransmit(self) -> None:
        seg = self._retransmit_queue.first()
        if seg is not None:
            self._emit(seg, quiet=True)
        self._ssthresh = max(self._cwnd // 2, self._mss * 2)
        self._cwnd = self._ssthresh