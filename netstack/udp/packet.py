"""UDP datagram parsing, serialisation and checksums."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from netstack.checksum import PROTOCOL_UDP, IPv4Like, internet_checksum, pseudo_header

HEADER_LENGTH = 8
MIN_PACKET_SIZE = HEADER_LENGTH
MAX_PACKET_SIZE = 65535 - 20

_HEADER = struct.Struct("!HHHH")


class PacketError(ValueError):
    """Raised for malformed or oversized UDP packets."""


@dataclass
class Packet:
    """A UDP packet: header fields and payload."""

    source_port: int
    destination_port: int
    length: int = 0
    checksum: int = 0
    data: bytes = b""

    def serialize(self) -> bytes:
        """Return the wire bytes, updating ``length``; the checksum is not recomputed."""
        length = HEADER_LENGTH + len(self.data)
        if length > MAX_PACKET_SIZE:
            raise PacketError(f"UDP packet too large: {length} bytes (maximum {MAX_PACKET_SIZE})")
        self.length = length
        header = _HEADER.pack(self.source_port, self.destination_port, self.length, self.checksum)
        return header + bytes(self.data)

    def _pseudo_sum(self, src_ip: IPv4Like, dst_ip: IPv4Like) -> int:
        body = self.serialize()
        return internet_checksum(pseudo_header(src_ip, dst_ip, PROTOCOL_UDP, self.length) + body)

    def calculate_checksum(self, src_ip: IPv4Like, dst_ip: IPv4Like) -> int:
        """Compute the checksum over the pseudo-header and packet; zero becomes 0xFFFF."""
        return self._pseudo_sum(src_ip, dst_ip) or 0xFFFF

    def verify_checksum(self, src_ip: IPv4Like, dst_ip: IPv4Like) -> bool:
        """Check the stored checksum; a zero checksum means none and is accepted."""
        if self.checksum == 0:
            return True
        try:
            result = self._pseudo_sum(src_ip, dst_ip)
        except PacketError:
            return False
        return result in (0, 0xFFFF)

    def __str__(self) -> str:
        return (
            f"UDP{{SrcPort={self.source_port}, DstPort={self.destination_port}, "
            f"Len={self.length}, DataLen={len(self.data)}}}"
        )


def parse(data: bytes) -> Packet:
    """Parse a UDP packet from raw bytes."""
    if len(data) < HEADER_LENGTH:
        raise PacketError(f"UDP packet too short: {len(data)} bytes (minimum {HEADER_LENGTH})")
    src, dst, length, checksum = _HEADER.unpack_from(data)
    if length < HEADER_LENGTH:
        raise PacketError(f"invalid UDP length: {length} (minimum {HEADER_LENGTH})")
    if length > len(data):
        raise PacketError(f"UDP length mismatch: header says {length}, got {len(data)} bytes")
    return Packet(src, dst, length, checksum, bytes(data[HEADER_LENGTH:length]))


def new_packet(src_port: int, dst_port: int, data: bytes) -> Packet:
    """Create a packet with its length set and a zero checksum."""
    data = bytes(data or b"")
    return Packet(src_port, dst_port, HEADER_LENGTH + len(data), 0, data)