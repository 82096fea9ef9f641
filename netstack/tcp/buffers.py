"""Thread-safe send and receive byte buffers for TCP connections."""

from __future__ import annotations

import threading


class SendBuffer:
    """An unbounded FIFO of bytes waiting to be sent."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._lock = threading.Lock()

    def write(self, data: bytes) -> int:
        """Append ``data`` and return the number of bytes written."""
        with self._lock:
            self._buffer += data
            return len(data)

    def read(self, n: int) -> bytes:
        """Remove and return up to ``n`` bytes."""
        with self._lock:
            data = bytes(self._buffer[:n])
            del self._buffer[:n]
            return data

    def peek(self, n: int) -> bytes:
        """Return up to ``n`` bytes without removing them."""
        with self._lock:
            return bytes(self._buffer[:n])

    def clear(self) -> None:
        """Discard all buffered bytes."""
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


class ReceiveBuffer:
    """A bounded FIFO of received bytes awaiting the application."""

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self._buffer = bytearray()
        self._lock = threading.Lock()

    def write(self, data: bytes) -> int:
        """Append as much of ``data`` as fits; return the number of bytes written."""
        with self._lock:
            room = self.capacity - len(self._buffer)
            if room <= 0:
                return 0
            chunk = data[:room]
            self._buffer += chunk
            return len(chunk)

    def read(self, n: int) -> bytes:
        """Remove and return up to ``n`` bytes."""
        with self._lock:
            data = bytes(self._buffer[:n])
            del self._buffer[:n]
            return data

    def peek(self, n: int) -> bytes:
        """Return up to ``n`` bytes without removing them."""
        with self._lock:
            return bytes(self._buffer[:n])

    def available(self) -> int:
        """Return the free space left in the buffer."""
        with self._lock:
            return self.capacity - len(self._buffer)

    def clear(self) -> None:
        """Discard all buffered bytes."""
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)