"""Shared fixtures: an in-memory stand-in for a pigpio daemon socket."""

from __future__ import annotations

import struct
import threading
from unittest.mock import patch

import pytest

HEADER = struct.Struct("<IIII")
RESPONSE = struct.Struct("<IIIi")
RECORD = struct.Struct("<HHII")


def record(level: int, tick: int, flags: int = 0, seq: int = 0) -> bytes:
    """Pack one 12-byte notification record."""
    return RECORD.pack(seq, flags, tick, level)


class FakeSocket:
    """Answers command frames from a script and then serves stream bytes.

    ``results`` maps a command code to either an int result, an
    ``(result, extra_bytes)`` tuple for commands followed by a data payload,
    or a callable ``(p1, p2, payload)`` returning one of those.
    """

    def __init__(
        self,
        results: dict | None = None,
        stream: bytes = b"",
        gate: threading.Event | None = None,
        max_chunk: int | None = None,
    ) -> None:
        self.results = dict(results or {})
        self.sent: list[tuple[int, int, int, bytes]] = []
        self.raw: list[bytes] = []
        self._rx = bytearray()
        self._stream = bytearray(stream)
        self._gate = gate
        self._max_chunk = max_chunk
        self.timeout = None
        self.closed = False
        self.shut = False

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise OSError("socket closed")
        self.raw.append(bytes(data))
        cmd, p1, p2, ext = HEADER.unpack_from(data)
        payload = bytes(data[16:16 + ext])
        self.sent.append((cmd, p1, p2, payload))

        answer = self.results.get(cmd, 0)
        if callable(answer):
            answer = answer(p1, p2, payload)
        extra = b""
        if isinstance(answer, tuple):
            answer, extra = answer
        self._rx += RESPONSE.pack(cmd, p1, p2, answer) + extra

    def recv(self, n: int) -> bytes:
        if self.closed:
            raise OSError("socket closed")
        limit = min(n, self._max_chunk or n)
        if self._rx:
            chunk = bytes(self._rx[:limit])
            del self._rx[:limit]
            return chunk
        if self._gate is not None:
            self._gate.wait(2.0)
        if self._stream and not self.shut:
            chunk = bytes(self._stream[:limit])
            del self._stream[:limit]
            return chunk
        return b""

    def commands(self) -> list[int]:
        return [cmd for cmd, _, _, _ in self.sent]

    def settimeout(self, timeout) -> None:
        self.timeout = timeout

    def setsockopt(self, *args) -> None:
        pass

    def shutdown(self, how) -> None:
        self.shut = True
        if self._gate is not None:
            self._gate.set()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def daemon():
    """Patch socket creation; returns a function that queues fake sockets.

    Each call to ``daemon(sock1, sock2, ...)`` lines up the sockets handed
    out by successive connection attempts, command socket first.
    """
    queued: list = []

    def create_connection(address, timeout=None):
        if not queued:
            raise OSError("connection refused")
        item = queued.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def queue_sockets(*socks):
        queued.extend(socks)
        return socks[0] if len(socks) == 1 else socks

    with patch(
        "pigpiod_mcp.transport.socket_connection.socket.create_connection",
        side_effect=create_connection,
    ) as mock_create:
        queue_sockets.mock = mock_create
        yield queue_sockets
