"""TCP Fast Open cookies, the TFO option and per-connection TFO state."""

from __future__ import annotations

import hmac
import ipaddress
import secrets
from typing import Optional, Sequence, Union

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from netstack.tcp.packet import OptionKind, Segment, SegmentError

TFO_COOKIE_LEN = 16
TFO_MAX_COOKIE_LEN = 18

IPLike = Union[str, int, bytes, Sequence[int], ipaddress.IPv4Address, ipaddress.IPv6Address]


def _ip16(ip: IPLike) -> bytes:
    """Return the 16-byte form of an address; IPv4 becomes IPv4-mapped IPv6."""
    if isinstance(ip, (tuple, list)):
        ip = bytes(ip)
    addr = ip if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)) else ipaddress.ip_address(ip)
    if addr.version == 4:
        return b"\x00" * 10 + b"\xff\xff" + addr.packed
    return addr.packed


class TFOState:
    """Server cookie generation and client cookie cache for TCP Fast Open."""

    def __init__(self, key: Optional[bytes] = None) -> None:
        if key is None:
            key = secrets.token_bytes(16)
        if len(key) != 16:
            raise ValueError(f"TFO key must be 16 bytes, got {len(key)}")
        self._cipher = Cipher(algorithms.AES(key), modes.ECB())
        self._cookie_cache: dict[str, bytes] = {}

    def generate_cookie(self, client_ip: IPLike) -> bytes:
        """Return the cookie for ``client_ip``."""
        encryptor = self._cipher.encryptor()
        return encryptor.update(_ip16(client_ip)) + encryptor.finalize()

    def validate_cookie(self, client_ip: IPLike, cookie: bytes) -> bool:
        """Check ``cookie`` against the one issued to ``client_ip``, in constant time."""
        expected = self.generate_cookie(client_ip)
        return hmac.compare_digest(bytes(cookie), expected)

    def cache_cookie(self, server_ip: str, cookie: bytes) -> None:
        """Remember the cookie a server issued."""
        self._cookie_cache[server_ip] = bytes(cookie)

    def cached_cookie(self, server_ip: str) -> Optional[bytes]:
        """Return the cached cookie for ``server_ip``, or None."""
        return self._cookie_cache.get(server_ip)


class TFOConnection:
    """Fast Open state of one connection: its cookie and data to send with the SYN."""

    def __init__(self, state: TFOState) -> None:
        self.state = state
        self.cookie: Optional[bytes] = None
        self._queued = bytearray()

    def set_cookie(self, cookie: bytes) -> None:
        """Use ``cookie`` for this connection."""
        self.cookie = bytes(cookie)

    def has_cookie(self) -> bool:
        """True if a cookie has been set."""
        return self.cookie is not None

    def queue_data(self, data: bytes) -> None:
        """Append data to be carried by the SYN."""
        self._queued += data

    def take_queued_data(self) -> bytes:
        """Return the queued data and clear the queue."""
        data = bytes(self._queued)
        self._queued.clear()
        return data


def build_tfo_option(cookie: Optional[bytes]) -> bytes:
    """Build a TFO option; an empty cookie makes a cookie request."""
    if not cookie:
        return bytes((OptionKind.TFO, 2))
    if len(cookie) > TFO_COOKIE_LEN:
        raise SegmentError(f"TFO cookie too long: {len(cookie)} bytes (maximum {TFO_COOKIE_LEN})")
    return bytes((OptionKind.TFO, 2 + len(cookie))) + bytes(cookie)


def get_tfo_cookie(segment: Segment) -> bytes:
    """Return the TFO cookie carried by ``segment``; empty for a cookie request."""
    value = segment.parse_options().get(OptionKind.TFO)
    if value is None:
        raise SegmentError("TFO option not found")
    return bytes(value)


def has_tfo(segment: Segment) -> bool:
    """True if ``segment`` carries a TFO option."""
    try:
        return OptionKind.TFO in segment.parse_options()
    except SegmentError:
        return False