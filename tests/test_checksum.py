import ipaddress

import pytest

from netstack.checksum import PROTOCOL_TCP, PROTOCOL_UDP, internet_checksum, pseudo_header


def test_rfc1071_example():
    data = bytes([0x00, 0x01, 0xF2, 0x03, 0xF4, 0xF5, 0xF6, 0xF7])
    assert internet_checksum(data) == 0x220D


def test_empty_data():
    assert internet_checksum(b"") == 0xFFFF


@pytest.mark.parametrize("data", [b"Hello, World!", b"\x12\x34\x56\x78", b"x" * 101, b"\xff\xff"])
def test_appending_checksum_verifies_to_zero(data):
    padded = data + b"\x00" * (len(data) % 2)
    checksum = internet_checksum(padded)
    assert internet_checksum(padded + checksum.to_bytes(2, "big")) == 0


def test_odd_length_is_zero_padded():
    assert internet_checksum(b"\x01\x02\x03") == internet_checksum(b"\x01\x02\x03\x00")


def test_pseudo_header_layout():
    header = pseudo_header("192.168.1.1", "192.168.1.2", PROTOCOL_TCP, 20)
    assert header == bytes([192, 168, 1, 1, 192, 168, 1, 2, 0, 6, 0, 20])


def test_pseudo_header_accepts_address_forms():
    as_str = pseudo_header("10.0.0.1", "10.0.0.2", PROTOCOL_UDP, 8)
    as_obj = pseudo_header(ipaddress.IPv4Address("10.0.0.1"), ipaddress.IPv4Address("10.0.0.2"), PROTOCOL_UDP, 8)
    as_tuple = pseudo_header((10, 0, 0, 1), (10, 0, 0, 2), PROTOCOL_UDP, 8)
    assert as_str == as_obj == as_tuple
    assert len(as_str) == 12
    assert as_str[9] == 17


def test_pseudo_header_rejects_bad_address():
    with pytest.raises(ValueError):
        pseudo_header("300.1.1.1", "10.0.0.2", PROTOCOL_TCP, 20)


def test_pseudo_header_rejects_bad_length():
    with pytest.raises(ValueError):
        pseudo_header("10.0.0.1", "10.0.0.2", PROTOCOL_TCP, 70000)