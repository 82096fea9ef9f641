"""TCP segment parsing, serialisation, checksums and option handling."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag

from netstack.checksum import PROTOCOL_TCP, IPv4Like, internet_checksum, pseudo_header

MIN_HEADER_LENGTH = 20
MAX_HEADER_LENGTH = 60
DEFAULT_MSS = 1460

_HEADER = struct.Struct("!HHIIBBHHH")


class Flag(IntFlag):
    """TCP control flags."""

    FIN = 1 << 0
    SYN = 1 << 1
    RST = 1 << 2
    PSH = 1 << 3
    ACK = 1 << 4
    URG = 1 << 5
    ECE = 1 << 6
    CWR = 1 << 7


class OptionKind(IntEnum):
    """TCP option kinds."""

    EOL = 0
    NOP = 1
    MSS = 2
    WINDOW_SCALE = 3
    SACK_PERMITTED = 4
    SACK = 5
    TIMESTAMP = 8
    TFO = 34


class SegmentError(ValueError):
    """Raised for malformed segments or options."""


@dataclass(frozen=True)
class SACKBlock:
    """One selective-acknowledgement block."""

    left_edge: int
    right_edge: int


_FLAG_LETTERS = (
    (Flag.FIN, "F"),
    (Flag.SYN, "S"),
    (Flag.RST, "R"),
    (Flag.PSH, "P"),
    (Flag.ACK, "A"),
    (Flag.URG, "U"),
)


@dataclass
class Segment:
    """A TCP segment: header fields, options and payload."""

    source_port: int
    destination_port: int
    sequence_number: int = 0
    ack_number: int = 0
    data_offset: int = 5
    flags: int = 0
    window_size: int = 0
    checksum: int = 0
    urgent_pointer: int = 0
    options: bytes = b""
    data: bytes = field(default=b"")

    def serialize(self) -> bytes:
        """Return the wire bytes; options are padded and ``data_offset`` updated.

        The checksum field is written as stored and is not recomputed.
        """
        options = bytes(self.options or b"")
        padding = -len(options) % 4
        if padding:
            options += b"\x00" * padding
        self.options = options
        header_length = MIN_HEADER_LENGTH + len(options)
        if header_length > MAX_HEADER_LENGTH:
            raise SegmentError(
                f"header too large: {header_length} bytes (maximum {MAX_HEADER_LENGTH})"
            )
        self.data_offset = header_length // 4
        header = _HEADER.pack(
            self.source_port,
            self.destination_port,
            self.sequence_number & 0xFFFFFFFF,
            self.ack_number & 0xFFFFFFFF,
            (self.data_offset << 4) & 0xFF,
            int(self.flags) & 0xFF,
            self.window_size,
            self.checksum,
            self.urgent_pointer,
        )
        return header + options + bytes(self.data or b"")

    def _pseudo_sum(self, src_ip: IPv4Like, dst_ip: IPv4Like) -> int:
        body = self.serialize()
        header = pseudo_header(src_ip, dst_ip, PROTOCOL_TCP, len(body) & 0xFFFF)
        return internet_checksum(header + body)

    def calculate_checksum(self, src_ip: IPv4Like, dst_ip: IPv4Like) -> int:
        """Compute the checksum over the IPv4 pseudo-header and the segment."""
        return self._pseudo_sum(src_ip, dst_ip)

    def verify_checksum(self, src_ip: IPv4Like, dst_ip: IPv4Like) -> bool:
        """Return True if the stored checksum is valid for these addresses."""
        try:
            result = self._pseudo_sum(src_ip, dst_ip)
        except SegmentError:
            return False
        return result in (0, 0xFFFF)

    def has_flag(self, flag: int) -> bool:
        """Return True if any bit of ``flag`` is set."""
        return bool(self.flags & flag)

    def set_flag(self, flag: int) -> None:
        """Set the bits of ``flag``."""
        self.flags |= flag

    def clear_flag(self, flag: int) -> None:
        """Clear the bits of ``flag``."""
        self.flags &= ~flag & 0xFF

    def parse_options(self) -> dict[int, bytes]:
        """Return a mapping of option kind to option payload."""
        options: dict[int, bytes] = {}
        data = bytes(self.options or b"")
        i = 0
        while i < len(data):
            kind = data[i]
            if kind == OptionKind.EOL:
                break
            if kind == OptionKind.NOP:
                i += 1
                continue
            if i + 1 >= len(data):
                raise SegmentError(f"incomplete option at offset {i}")
            length = data[i + 1]
            if length < 2 or i + length > len(data):
                raise SegmentError(f"invalid option length {length} at offset {i}")
            options[kind] = data[i + 2 : i + length]
            i += length
        return options

    def mss(self) -> int:
        """Return the MSS option value, or DEFAULT_MSS if absent."""
        value = self.parse_options().get(OptionKind.MSS)
        if value is None:
            return DEFAULT_MSS
        if len(value) != 2:
            raise SegmentError(f"invalid MSS option length: {len(value)}")
        return int.from_bytes(value, "big")

    def window_scale(self) -> int:
        """Return the window scale shift."""
        value = self.parse_options().get(OptionKind.WINDOW_SCALE)
        if value is None:
            raise SegmentError("window scale option not found")
        if len(value) != 1:
            raise SegmentError(f"invalid window scale option length: {len(value)}")
        return value[0]

    def timestamp(self) -> tuple[int, int]:
        """Return the (TSval, TSecr) pair."""
        value = self.parse_options().get(OptionKind.TIMESTAMP)
        if value is None:
            raise SegmentError("timestamp option not found")
        if len(value) != 8:
            raise SegmentError(f"invalid timestamp option length: {len(value)}")
        ts_val, ts_ecr = struct.unpack("!II", value)
        return ts_val, ts_ecr

    def sack_blocks(self) -> list[SACKBlock]:
        """Return the SACK blocks carried in the options."""
        value = self.parse_options().get(OptionKind.SACK)
        if value is None:
            raise SegmentError("SACK option not found")
        if len(value) % 8:
            raise SegmentError(f"invalid SACK option length: {len(value)}")
        return [SACKBlock(left, right) for left, right in struct.iter_unpack("!II", value)]

    def has_sack_permitted(self) -> bool:
        """Return True if the SACK-permitted option is present."""
        try:
            return OptionKind.SACK_PERMITTED in self.parse_options()
        except SegmentError:
            return False

    def __str__(self) -> str:
        letters = "".join(letter for flag, letter in _FLAG_LETTERS if self.has_flag(flag)) or "."
        return (
            f"TCP{{SrcPort={self.source_port}, DstPort={self.destination_port}, "
            f"Seq={self.sequence_number}, Ack={self.ack_number}, Flags={letters}, "
            f"Win={self.window_size}, DataLen={len(self.data or b'')}}}"
        )


def parse(data: bytes) -> Segment:
    """Parse a TCP segment from raw bytes."""
    if len(data) < MIN_HEADER_LENGTH:
        raise SegmentError(
            f"TCP segment too short: {len(data)} bytes (minimum {MIN_HEADER_LENGTH})"
        )
    (src, dst, seq, ack, offset_byte, flags, window, checksum, urgent) = _HEADER.unpack_from(data)
    data_offset = offset_byte >> 4
    if data_offset < 5:
        raise SegmentError(f"invalid data offset: {data_offset} (minimum 5)")
    header_length = data_offset * 4
    if header_length > MAX_HEADER_LENGTH:
        raise SegmentError(
            f"invalid header length: {header_length} (maximum {MAX_HEADER_LENGTH})"
        )
    if len(data) < header_length:
        raise SegmentError(
            f"segment too short for header: {len(data)} bytes (expected {header_length})"
        )
    return Segment(
        source_port=src,
        destination_port=dst,
        sequence_number=seq,
        ack_number=ack,
        data_offset=data_offset,
        flags=flags,
        window_size=window,
        checksum=checksum,
        urgent_pointer=urgent,
        options=bytes(data[MIN_HEADER_LENGTH:header_length]),
        data=bytes(data[header_length:]),
    )


def new_segment(
    src_port: int,
    dst_port: int,
    seq_num: int,
    ack_num: int,
    flags: int,
    window: int,
    data: bytes | None,
) -> Segment:
    """Create a segment with no options and a zero checksum."""
    return Segment(
        source_port=src_port,
        destination_port=dst_port,
        sequence_number=seq_num,
        ack_number=ack_num,
        data_offset=5,
        flags=flags,
        window_size=window,
        data=bytes(data or b""),
    )


def build_mss_option(mss: int) -> bytes:
    """Build a Maximum Segment Size option."""
    return struct.pack("!BBH", OptionKind.MSS, 4, mss)


def build_window_scale_option(shift: int) -> bytes:
    """Build a Window Scale option."""
    return bytes((OptionKind.WINDOW_SCALE, 3, shift))


def build_timestamp_option(ts_val: int, ts_ecr: int) -> bytes:
    """Build a Timestamp option."""
    return struct.pack("!BBII", OptionKind.TIMESTAMP, 10, ts_val, ts_ecr)


def build_sack_permitted_option() -> bytes:
    """Build a SACK Permitted option."""
    return bytes((OptionKind.SACK_PERMITTED, 2))


def build_sack_option(blocks: list[SACKBlock]) -> bytes:
    """Build a SACK option from one to four blocks."""
    if not 1 <= len(blocks) <= 4:
        raise SegmentError(f"SACK option needs 1 to 4 blocks, got {len(blocks)}")
    body = b"".join(struct.pack("!II", b.left_edge, b.right_edge) for b in blocks)
    return bytes((OptionKind.SACK, 2 + len(body))) + body