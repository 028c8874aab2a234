"""Typed GPIO, SPI and serial operations over a pigpio daemon connection.

Every method maps to one daemon command and returns the daemon's result:
0 (or a value) on success, a negative :class:`ErrorCode` on failure.
Missing or non-integer arguments raise ``ValueError`` before anything is
sent.
"""

from __future__ import annotations

import logging
import threading

from .protocol.commands import Command, Edge, Level
from .protocol.errors import PigpioError
from .transport.notifications import EdgeHandler, NotificationListener
from .transport.socket_connection import DEFAULT_HOST, DEFAULT_PORT, SocketConnection

logger = logging.getLogger(__name__)

MAX_EXTENSION_BYTES = 65536


def _require(name: str, value) -> int:
    if value is None:
        raise ValueError(f"Missing required argument '{name}'")
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"'{name}' must be an integer, got {value!r}")
    return int(value)


def _payload(data) -> bytes:
    if isinstance(data, str):
        data = data.encode("latin-1")
    data = bytes(data)
    if len(data) > MAX_EXTENSION_BYTES:
        raise ValueError(
            f"Payload must be at most {MAX_EXTENSION_BYTES} bytes, got {len(data)}"
        )
    return data


class Pi:
    """A connection to one pigpio daemon.

    Usage::

        pi = connect("raspberrypi.local")
        pi.set_mode(17, Mode.OUTPUT)
        pi.write(17, 1)
        pi.disconnect()
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        timeout: float | None = None,
    ) -> None:
        self._conn = SocketConnection(host, port, timeout=timeout)
        self._listener: NotificationListener | None = None
        self._listener_lock = threading.Lock()
        self._watchdogs: set[int] = set()

    @property
    def pi_id(self) -> str:
        return f"{self._conn.host}:{self._conn.port}"

    @property
    def connection(self) -> SocketConnection:
        return self._conn

    @property
    def connected(self) -> bool:
        return self._conn.connected

    def __repr__(self) -> str:
        return f"Pi({self.pi_id!r}, connected={self.connected})"

    def open(self) -> Pi:
        self._conn.open()
        return self

    def disconnect(self) -> None:
        """Cancel watchdogs, close the notification stream and the socket."""
        if self._conn.connected:
            for gpio in sorted(self._watchdogs):
                try:
                    self._conn.send_command(Command.WDOG, gpio, 0)
                except (ConnectionError, PigpioError) as e:
                    logger.warning("Could not cancel watchdog on GPIO %d: %s", gpio, e)
                    break
        self._watchdogs.clear()
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        self._conn.close()

    def __enter__(self) -> Pi:
        return self.open()

    def __exit__(self, *exc) -> None:
        self.disconnect()

    # ─── GPIO ──────────────────────────────────────────────────────────

    def get_mode(self, gpio: int) -> int:
        """Return the GPIO mode (see :class:`Mode`)."""
        return self._conn.send_command(Command.MODEG, _require("gpio", gpio))

    def set_mode(self, gpio: int, mode: int) -> int:
        """Set the GPIO mode.

        Returns 0 if OK, otherwise BAD_GPIO, BAD_MODE or NOT_PERMITTED.
        """
        return self._conn.send_command(
            Command.MODES, _require("gpio", gpio), _require("mode", mode)
        )

    def set_pull_up_down(self, gpio: int, pud: int) -> int:
        """Set or clear the GPIO pull-up/down resistor (see :class:`Pull`)."""
        return self._conn.send_command(
            Command.PUD, _require("gpio", gpio), _require("pud", pud)
        )

    def read(self, gpio: int) -> int:
        """Return the GPIO level. The daemon leaves the GPIO in INPUT mode."""
        return self._conn.send_command(Command.READ, _require("gpio", gpio))

    def write(self, gpio: int, level: int) -> int:
        """Set the GPIO level. The daemon leaves the GPIO in OUTPUT mode."""
        return self._conn.send_command(
            Command.WRITE, _require("gpio", gpio), _require("level", level)
        )

    def gpio_trigger(self, gpio: int, pulse_len: int = 10, level: int = Level.HIGH) -> int:
        """Send a ``pulse_len`` microsecond pulse at ``level`` on the GPIO."""
        return self._conn.send_extended(
            Command.TRIG,
            _require("gpio", gpio),
            _require("pulse_len", pulse_len),
            [_require("level", level)],
        )

    def set_watchdog(self, gpio: int, timeout_ms: int) -> int:
        """Report a TIMEOUT to callbacks if the GPIO has no edge for ``timeout_ms``.

        A timeout of 0 cancels the watchdog.
        """
        gpio = _require("gpio", gpio)
        result = self._conn.send_command(
            Command.WDOG, gpio, _require("timeout_ms", timeout_ms)
        )
        if result >= 0:
            if timeout_ms:
                self._watchdogs.add(gpio)
            else:
                self._watchdogs.discard(gpio)
        return result

    def read_bank_1(self) -> int:
        """Return the levels of GPIO 0-31 as a bitmask."""
        return self._conn.send_command(Command.BR1) & 0xFFFFFFFF

    def read_bank_2(self) -> int:
        """Return the levels of GPIO 32-53 as a bitmask."""
        return self._conn.send_command(Command.BR2) & 0xFFFFFFFF

    def get_current_tick(self) -> int:
        """Return the daemon's microsecond tick."""
        return self._conn.send_command(Command.TICK) & 0xFFFFFFFF

    def get_hardware_revision(self) -> int:
        return self._conn.send_command(Command.HWVER) & 0xFFFFFFFF

    def get_pigpio_version(self) -> int:
        return self._conn.send_command(Command.PIGPV)

    # ─── CALLBACKS ─────────────────────────────────────────────────────

    def _notifications(self) -> NotificationListener:
        with self._listener_lock:
            if self._listener is None:
                self._listener = NotificationListener(self._conn, self.pi_id)
            return self._listener

    def callback(self, gpio: int, edge: int = Edge.EITHER, handler: EdgeHandler | None = None) -> int:
        """Call ``handler(pi_id, gpio, level, tick)`` on edges of ``gpio``.

        At most one handler is kept per GPIO; registering again replaces it.
        Watchdog expiries are delivered with level :attr:`Level.TIMEOUT`.
        """
        gpio = _require("gpio", gpio)
        if handler is None:
            raise ValueError("Missing required argument 'handler'")
        return self._notifications().subscribe(gpio, handler, Edge(_require("edge", edge)))

    def cancel_callback(self, gpio: int) -> int:
        gpio = _require("gpio", gpio)
        if self._listener is None:
            return 0
        return self._listener.unsubscribe(gpio)

    def callbacks(self) -> list[int]:
        """GPIO that currently have a registered handler."""
        if self._listener is None:
            return []
        return self._listener.subscribed()

    @property
    def listening(self) -> bool:
        """True while the notification stream is delivering edges.

        Handlers registered on a stream that has since ended are dropped, so
        callers that see this go False register them again.
        """
        return self._listener is not None and self._listener.running

    # ─── SPI ───────────────────────────────────────────────────────────

    def spi_open(self, channel: int, baud: int, flags: int = 0) -> int:
        """Open an SPI channel. Returns a handle the caller must close."""
        return self._conn.send_extended(
            Command.SPIO,
            _require("channel", channel),
            _require("baud", baud),
            [_require("flags", flags)],
        )

    def spi_close(self, handle: int) -> int:
        return self._conn.send_command(Command.SPIC, _require("handle", handle))

    def spi_read(self, handle: int, count: int) -> tuple[int, bytes]:
        """Read ``count`` bytes. Returns ``(result, data)``."""
        with self._conn.lock:
            result = self._conn.send_command(
                Command.SPIR, _require("handle", handle), _require("count", count)
            )
            data = self._conn.read_bytes(result) if result > 0 else b""
        return result, data

    def spi_write(self, handle: int, data: bytes) -> int:
        return self._conn.send_raw_payload(
            Command.SPIW, _require("handle", handle), 0, _payload(data)
        )

    def spi_xfer(self, handle: int, data: bytes) -> tuple[int, bytes]:
        """Write ``data`` while reading as many bytes. Returns ``(result, data)``."""
        with self._conn.lock:
            result = self._conn.send_raw_payload(
                Command.SPIX, _require("handle", handle), 0, _payload(data)
            )
            received = self._conn.read_bytes(result) if result > 0 else b""
        return result, received

    # ─── SERIAL ────────────────────────────────────────────────────────

    def serial_open(self, tty: str, baud: int, flags: int = 0) -> int:
        """Open a serial device. Returns a handle the caller must close."""
        if not tty:
            raise ValueError("Missing required argument 'tty'")
        return self._conn.send_raw_payload(
            Command.SERO, _require("baud", baud), _require("flags", flags), _payload(tty)
        )

    def serial_close(self, handle: int) -> int:
        return self._conn.send_command(Command.SERC, _require("handle", handle))

    def serial_read_byte(self, handle: int) -> int:
        return self._conn.send_command(Command.SERRB, _require("handle", handle))

    def serial_write_byte(self, handle: int, byte_val: int) -> int:
        return self._conn.send_command(
            Command.SERWB, _require("handle", handle), _require("byte_val", byte_val)
        )

    def serial_read(self, handle: int, count: int) -> tuple[int, bytes]:
        """Read up to ``count`` bytes. Returns ``(result, data)``."""
        with self._conn.lock:
            result = self._conn.send_command(
                Command.SERR, _require("handle", handle), _require("count", count)
            )
            data = self._conn.read_bytes(result) if result > 0 else b""
        return result, data

    def serial_write(self, handle: int, data: bytes) -> int:
        return self._conn.send_raw_payload(
            Command.SERW, _require("handle", handle), 0, _payload(data)
        )

    def serial_data_available(self, handle: int) -> int:
        return self._conn.send_command(Command.SERDA, _require("handle", handle))


def connect(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, timeout: float | None = None) -> Pi:
    """Connect to a pigpio daemon and return the connection handle.

    Raises:
        ConnectionError: If the daemon cannot be reached.
    """
    return Pi(host, port, timeout=timeout).open()
