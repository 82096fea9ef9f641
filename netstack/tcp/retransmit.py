"""Retransmission queue and wraparound-aware sequence number comparisons."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from netstack.tcp.packet import Segment

_MOD = 1 << 32
_HALF = 1 << 31


def _seq_diff(seq1: int, seq2: int) -> int:
    """Return seq1 - seq2 as a signed 32-bit value."""
    diff = (seq1 - seq2) % _MOD
    return diff - _MOD if diff >= _HALF else diff


def seq_before(seq1: int, seq2: int) -> bool:
    """True if ``seq1`` precedes ``seq2`` in sequence space."""
    return _seq_diff(seq1, seq2) < 0


def seq_after(seq1: int, seq2: int) -> bool:
    """True if ``seq1`` follows ``seq2`` in sequence space."""
    return _seq_diff(seq1, seq2) > 0


def seq_between(seq: int, start: int, end: int) -> bool:
    """True if ``seq`` lies strictly between ``start`` and ``end``."""
    return seq_after(seq, start) and seq_before(seq, end)


@dataclass
class RetransmitEntry:
    """A segment awaiting acknowledgement; times are ``time.monotonic()`` seconds."""

    seq_num: int
    segment: Segment
    sent_time: float
    retry_count: int = 0


class RetransmitQueue:
    """Segments sent but not yet acknowledged, in order of sending."""

    def __init__(self) -> None:
        self._entries: list[RetransmitEntry] = []
        self._lock = threading.Lock()

    def add(self, seq_num: int, segment: Segment, sent_time: float | None = None) -> None:
        """Queue ``segment``; ``sent_time`` defaults to now."""
        if sent_time is None:
            sent_time = time.monotonic()
        with self._lock:
            self._entries.append(RetransmitEntry(seq_num, segment, sent_time))

    def remove(self, seq_num: int) -> None:
        """Remove the first entry with this sequence number, if any."""
        with self._lock:
            for i, entry in enumerate(self._entries):
                if entry.seq_num == seq_num:
                    del self._entries[i]
                    return

    def remove_before(self, seq_num: int) -> None:
        """Remove every entry whose sequence number precedes ``seq_num``."""
        with self._lock:
            self._entries = [e for e in self._entries if not seq_before(e.seq_num, seq_num)]

    def expired(self, timeout: float) -> list[RetransmitEntry]:
        """Return entries sent more than ``timeout`` seconds ago."""
        now = time.monotonic()
        with self._lock:
            return [e for e in self._entries if now - e.sent_time > timeout]

    def update_sent_time(self, seq_num: int, sent_time: float) -> None:
        """Record a resend of the entry with this sequence number."""
        with self._lock:
            for entry in self._entries:
                if entry.seq_num == seq_num:
                    entry.sent_time = sent_time
                    entry.retry_count += 1
                    return

    def first(self) -> Segment | None:
        """Return the oldest queued segment, or None if the queue is empty."""
        with self._lock:
            return self._entries[0].segment if self._entries else None

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)