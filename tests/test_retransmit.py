import time

import pytest

from netstack.tcp.packet import Flag, new_segment
from netstack.tcp.retransmit import RetransmitQueue, seq_after, seq_before, seq_between


def test_retransmit_queue():
    rq = RetransmitQueue()
    assert len(rq) == 0
    assert rq.first() is None

    seg1 = new_segment(12345, 80, 1000, 0, Flag.SYN, 65535, None)
    seg2 = new_segment(12345, 80, 1001, 0, Flag.ACK, 65535, b"data1")
    seg3 = new_segment(12345, 80, 1006, 0, Flag.ACK, 65535, b"data2")

    now = time.monotonic()
    rq.add(1000, seg1, now)
    rq.add(1001, seg2, now)
    rq.add(1006, seg3, now)
    assert len(rq) == 3

    first = rq.first()
    assert first is seg1
    assert first.sequence_number == 1000

    rq.remove(1001)
    assert len(rq) == 2

    rq.remove_before(1006)
    assert len(rq) == 1
    assert rq.first() is seg3

    rq.clear()
    assert len(rq) == 0


def test_retransmit_queue_expired():
    rq = RetransmitQueue()
    seg1 = new_segment(12345, 80, 1000, 0, Flag.SYN, 65535, None)
    seg2 = new_segment(12345, 80, 1001, 0, Flag.ACK, 65535, b"data")

    rq.add(1000, seg1, time.monotonic() - 2)
    rq.add(1001, seg2, time.monotonic())

    expired = rq.expired(1.0)
    assert len(expired) == 1
    assert expired[0].seq_num == 1000


def test_update_sent_time_counts_retries():
    rq = RetransmitQueue()
    seg = new_segment(1, 2, 500, 0, Flag.ACK, 100, b"x")
    rq.add(500, seg, time.monotonic() - 5)
    rq.update_sent_time(500, time.monotonic())
    assert rq.expired(1.0) == []
    rq.update_sent_time(500, time.monotonic() - 5)
    (entry,) = rq.expired(1.0)
    assert entry.retry_count == 2


def test_remove_missing_is_noop():
    rq = RetransmitQueue()
    rq.add(10, new_segment(1, 2, 10, 0, 0, 100, None))
    rq.remove(99)
    assert len(rq) == 1


def test_remove_before_handles_wraparound():
    rq = RetransmitQueue()
    rq.add(0xFFFFFF00, new_segment(1, 2, 0xFFFFFF00, 0, 0, 100, None))
    rq.add(0x00000050, new_segment(1, 2, 0x50, 0, 0, 100, None))
    rq.remove_before(0x00000010)
    assert len(rq) == 1
    assert rq.first().sequence_number == 0x50


@pytest.mark.parametrize(
    "seq1, seq2, expected",
    [
        (100, 200, True),
        (200, 100, False),
        (100, 100, False),
        (0xFFFFFF00, 0x00000100, True),
    ],
)
def test_seq_before(seq1, seq2, expected):
    assert seq_before(seq1, seq2) is expected


@pytest.mark.parametrize(
    "seq1, seq2, expected",
    [
        (200, 100, True),
        (100, 200, False),
        (100, 100, False),
        (0x00000100, 0xFFFFFF00, True),
    ],
)
def test_seq_after(seq1, seq2, expected):
    assert seq_after(seq1, seq2) is expected


@pytest.mark.parametrize(
    "seq, start, end, expected",
    [
        (150, 100, 200, True),
        (100, 100, 200, False),
        (200, 100, 200, False),
        (0x10, 0xFFFFFFF0, 0x20, True),
    ],
)
def test_seq_between(seq, start, end, expected):
    assert seq_between(seq, start, end) is expected