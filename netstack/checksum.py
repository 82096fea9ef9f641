"""Internet checksum and IPv4 pseudo-header helpers shared by TCP and UDP."""

from __future__ import annotations

import ipaddress
import struct
from typing import Sequence, Union

PROTOCOL_TCP = 6
PROTOCOL_UDP = 17

IPv4Like = Union[str, int, bytes, Sequence[int], ipaddress.IPv4Address]


def _ip_bytes(ip: IPv4Like) -> bytes:
    """Return the four packed bytes of an IPv4 address."""
    if isinstance(ip, ipaddress.IPv4Address):
        return ip.packed
    if isinstance(ip, (tuple, list)):
        ip = bytes(ip)
    return ipaddress.IPv4Address(ip).packed


def internet_checksum(data: bytes) -> int:
    """Return the 16-bit one's complement Internet checksum of ``data``."""
    if len(data) % 2:
        data = bytes(data) + b"\x00"
    total = sum(word for (word,) in struct.iter_unpack("!H", data))
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


def pseudo_header(src_ip: IPv4Like, dst_ip: IPv4Like, protocol: int, length: int) -> bytes:
    """Build the 12-byte IPv4 pseudo-header used in TCP and UDP checksums."""
    if not 0 <= protocol <= 0xFF:
        raise ValueError(f"protocol out of range: {protocol}")
    if not 0 <= length <= 0xFFFF:
        raise ValueError(f"length out of range: {length}")
    return _ip_bytes(src_ip) + _ip_bytes(dst_ip) + struct.pack("!BBH", 0, protocol, length)