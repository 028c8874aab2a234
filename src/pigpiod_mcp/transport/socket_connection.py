"""TCP connection to a pigpio daemon.

One :class:`SocketConnection` owns one stream socket and guarantees strict
request/response pairing: a command is written, then exactly one 16-byte
response is read before the next command may use the socket.
"""

from __future__ import annotations

import logging
import os
import socket
import threading
from collections.abc import Iterable

from ..protocol.errors import ProtocolError
from ..protocol.framing import (
    RESPONSE_SIZE,
    encode_extended,
    encode_simple,
    pack_words,
    parse_response,
)

logger = logging.getLogger(__name__)

DEFAULT_HOST = os.environ.get("PIGPIO_ADDR", "localhost")
DEFAULT_PORT = int(os.environ.get("PIGPIO_PORT", "8888"))
CONNECT_TIMEOUT_S = 5.0


class SocketConnection:
    """Manages the command socket to a pigpio daemon.

    Usage::

        conn = SocketConnection("raspberrypi.local")
        conn.open()
        result = conn.send_command(Command.READ, 17)
        conn.close()

    All ``send_*`` methods hold :attr:`lock` for the whole request/response
    exchange. Callers that must read a secondary payload after a response
    (SPI and serial reads) hold the same re-entrant lock around both steps.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        timeout: float | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._sock: socket.socket | None = None
        self._lock = threading.RLock()

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def connected(self) -> bool:
        return self._sock is not None

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def open(self) -> None:
        """Connect to the daemon. A no-op when already connected.

        Raises:
            ConnectionError: If the daemon cannot be reached.
        """
        with self._lock:
            if self._sock is not None:
                return
            try:
                sock = socket.create_connection(
                    (self._host, self._port), timeout=CONNECT_TIMEOUT_S
                )
            except OSError as e:
                raise ConnectionError(
                    f"Could not connect to pigpio daemon at "
                    f"{self._host}:{self._port}: {e}"
                ) from e
            sock.settimeout(self._timeout)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            self._sock = sock
            logger.info("Connected to pigpio daemon at %s:%s", self._host, self._port)

    def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        with self._lock:
            self._drop()

    def _drop(self) -> None:
        if self._sock is None:
            return
        sock, self._sock = self._sock, None
        try:
            sock.close()
        except OSError as e:
            logger.warning("Error closing socket: %s", e)
        finally:
            logger.info("Disconnected from %s:%s", self._host, self._port)

    def shutdown(self) -> None:
        """Abort blocking reads on the socket from another thread.

        Does not take :attr:`lock`, so a thread blocked in ``recv`` holding
        it is woken with a closed-connection error.
        """
        sock = self._sock
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Socket shutdown: %s", e)

    def _ensure_open(self) -> socket.socket:
        if self._sock is None:
            logger.debug("Socket not connected, reopening %s:%s", self._host, self._port)
            self.open()
        return self._sock

    def send_frame(self, frame: bytes) -> int:
        """Write an encoded command frame and return the decoded result.

        Returns:
            The daemon's signed 32-bit result. Negative values are daemon
            error codes and are returned, not raised.

        Raises:
            ConnectionError: If reconnecting, writing or reading fails. The
                socket is closed; the next call reconnects.
            ProtocolError: If the response does not answer this command.
                The socket is closed since the stream cannot be trusted.
        """
        with self._lock:
            sock = self._ensure_open()
            try:
                sock.sendall(frame)
            except OSError as e:
                self._drop()
                raise ConnectionError(f"Write to pigpio daemon failed: {e}") from e

            response = parse_response(self.read_bytes(RESPONSE_SIZE))
            command = int.from_bytes(frame[:4], "little")
            if response.command != command:
                self._drop()
                raise ProtocolError(
                    f"Response for command {response.command} received "
                    f"while waiting for command {command}"
                )
            logger.debug("cmd=%d -> %d", command, response.result)
            return response.result

    def send_command(self, cmd: int, p1: int = 0, p2: int = 0) -> int:
        """Send a simple command and return its result."""
        return self.send_frame(encode_simple(cmd, p1, p2))

    def send_extended(
        self, cmd: int, p1: int, p2: int, extra_words: Iterable[int]
    ) -> int:
        """Send a command whose payload is a sequence of uint32 words."""
        return self.send_frame(encode_extended(cmd, p1, p2, pack_words(extra_words)))

    def send_raw_payload(self, cmd: int, p1: int, p2: int, raw_bytes: bytes) -> int:
        """Send a command whose payload is a raw byte string."""
        return self.send_frame(encode_extended(cmd, p1, p2, raw_bytes))

    def read_bytes(self, count: int) -> bytes:
        """Read exactly ``count`` bytes, looping over short reads.

        Raises:
            ConnectionError: If the socket fails or closes before ``count``
                bytes arrive.
        """
        with self._lock:
            sock = self._sock
            if sock is None:
                raise ConnectionError("Not connected to pigpio daemon")
            buf = bytearray()
            while len(buf) < count:
                try:
                    chunk = sock.recv(count - len(buf))
                except OSError as e:
                    self._drop()
                    raise ConnectionError(f"Read from pigpio daemon failed: {e}") from e
                if not chunk:
                    self._drop()
                    raise ConnectionError(
                        f"Connection closed after {len(buf)} of {count} bytes"
                    )
                buf.extend(chunk)
            return bytes(buf)

    def __enter__(self) -> SocketConnection:
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
