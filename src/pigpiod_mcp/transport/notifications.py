"""Notification stream listener.

A :class:`NotificationListener` opens a second socket to the daemon in
notification mode and runs a dedicated receive thread. Each 12-byte record
carries the level of GPIO 0-31; a bit that changed since the previous
record is an edge for that GPIO and is routed to the GPIO's handler.

The set of reported GPIO is controlled from the command socket with the
NB command, so the bitmask known to the daemon always equals the set of
GPIO with a registered handler.
If the stream ends unexpectedly its handle and handlers are dropped, and the
next subscription opens a new stream.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from ..protocol.commands import Command, Edge, Level, MAX_USER_GPIO
from ..protocol.errors import DaemonError, PigpioError
from ..protocol.parser import NOTIFICATION_SIZE, NotificationRecord, parse_notification
from .socket_connection import SocketConnection

logger = logging.getLogger(__name__)

# handler(pi_id, gpio, level, tick)
EdgeHandler = Callable[[str, int, int, int], None]


@dataclass
class Subscription:
    """A registered handler and the edges it wants."""

    handler: EdgeHandler
    edge: Edge = Edge.EITHER

    def accepts(self, level: int) -> bool:
        if level == Level.TIMEOUT or self.edge == Edge.EITHER:
            return True
        if self.edge == Edge.RISING:
            return level == Level.HIGH
        return level == Level.LOW


class NotificationListener:
    """Delivers GPIO edge events from one daemon to per-GPIO handlers.

    Args:
        command: The command connection to the same daemon. Used for NB,
            NC and BR1; the listener opens its own socket for the stream.
        pi_id: Identifier passed as the first handler argument.
    """

    def __init__(self, command: SocketConnection, pi_id: str) -> None:
        self._command = command
        self._pi_id = pi_id
        self._stream: SocketConnection | None = None
        self._handle: int | None = None
        self._open_lock = threading.Lock()
        self._lock = threading.Lock()
        self._subscriptions: dict[int, Subscription] = {}
        self._bits = 0
        self._last_level = 0
        self._thread: threading.Thread | None = None
        self._closing = False

    @property
    def handle(self) -> int | None:
        """Daemon-assigned notification handle, or None while no stream is open."""
        return self._handle

    @property
    def bits(self) -> int:
        with self._lock:
            return self._bits

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def open(self) -> int:
        """Open the notification stream and start the receive thread.

        Opening an already open listener returns the existing handle.

        Raises:
            ConnectionError: If the stream socket cannot be opened.
            DaemonError: If the daemon refuses to open a notification handle.
        """
        with self._open_lock:
            if self._handle is not None:
                return self._handle

            stream = SocketConnection(self._command.host, self._command.port)
            stream.open()
            handle = stream.send_command(Command.NOIB, 0, 0)
            if handle < 0:
                stream.close()
                raise DaemonError(handle, "open notifications")

            try:
                self._last_level = self._command.send_command(Command.BR1) & 0xFFFFFFFF
            except (ConnectionError, PigpioError):
                stream.close()
                raise
            self._stream = stream
            self._handle = handle
            self._closing = False
            self._thread = threading.Thread(
                target=self._receive_loop,
                args=(stream,),
                name=f"pigpio-notify-{self._pi_id}",
                daemon=True,
            )
            self._thread.start()
            logger.info("Notification stream %d opened for %s", handle, self._pi_id)
            return handle

    def subscribe(
        self, gpio: int, handler: EdgeHandler, edge: Edge = Edge.EITHER
    ) -> int:
        """Register ``handler`` for ``gpio``, replacing any previous one.

        The handler is only kept when the daemon accepts the new bitmask.

        Returns:
            The NB command result (0, or a negative daemon error code).

        Raises:
            ConnectionError: If NB cannot be sent, or the stream ends first.
        """
        if not 0 <= gpio <= MAX_USER_GPIO:
            raise ValueError(f"Callbacks are limited to GPIO 0-{MAX_USER_GPIO}, got {gpio}")
        handle = self.open()
        with self._lock:
            bits = self._bits | (1 << gpio)
            result = self._command.send_command(Command.NB, handle, bits)
            if self._handle != handle:
                raise ConnectionError("Notification stream closed while subscribing")
            if result >= 0:
                self._subscriptions[gpio] = Subscription(handler=handler, edge=Edge(edge))
                self._bits = bits
            return result

    def unsubscribe(self, gpio: int) -> int:
        """Remove the handler for ``gpio``. The stream stays open when idle.

        A refused NB leaves the handler registered.
        """
        with self._lock:
            if gpio not in self._subscriptions:
                return 0
            bits = self._bits & ~(1 << gpio)
            result = 0
            if self._handle is not None:
                result = self._command.send_command(Command.NB, self._handle, bits)
            if result >= 0:
                del self._subscriptions[gpio]
                self._bits = bits
            return result

    def subscribed(self) -> list[int]:
        with self._lock:
            return sorted(self._subscriptions)

    def close(self) -> None:
        """Close the notification handle and stream, and stop the thread."""
        with self._open_lock:
            if self._handle is None:
                return
            self._closing = True
            handle, self._handle = self._handle, None
            if self._command.connected:
                try:
                    self._command.send_command(Command.NC, handle, 0)
                except (ConnectionError, PigpioError) as e:
                    logger.warning("Could not close notification handle %d: %s", handle, e)
            if self._stream is not None:
                self._stream.shutdown()
            self.join(timeout=1.0)
            if self._stream is not None:
                self._stream.close()
                self._stream = None
            with self._lock:
                self._subscriptions.clear()
                self._bits = 0
            logger.info("Notification stream %d closed", handle)

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _receive_loop(self, stream: SocketConnection) -> None:
        while True:
            try:
                record = parse_notification(stream.read_bytes(NOTIFICATION_SIZE))
            except (ConnectionError, PigpioError) as e:
                if not self._closing:
                    logger.warning("Notification stream ended: %s", e)
                    self._stream_ended(stream)
                break
            self.dispatch(record)
        logger.info("Notification receive loop for %s stopped", self._pi_id)

    def _stream_ended(self, stream: SocketConnection) -> None:
        # Forget the dead handle so the next subscribe opens a fresh stream.
        with self._open_lock:
            if self._stream is not stream:
                return
            handle, self._handle = self._handle, None
            self._stream = None
            stream.close()
            with self._lock:
                self._subscriptions.clear()
                self._bits = 0
        logger.info("Notification handle %s released after stream loss", handle)

    def dispatch(self, record: NotificationRecord) -> None:
        """Route one record to the handlers it concerns.

        Called from the receive thread, one record at a time, so handlers
        for a GPIO run in stream order and never concurrently.
        """
        if record.is_alive:
            logger.debug("Alive record %r", record)
            return

        calls: list[tuple[Subscription, int, int]] = []
        with self._lock:
            if record.is_watchdog:
                sub = self._subscriptions.get(record.gpio)
                if sub is not None:
                    calls.append((sub, record.gpio, Level.TIMEOUT))
            elif not record.is_event:
                changed = (record.level ^ self._last_level) & self._bits
                self._last_level = record.level
                gpio = 0
                while changed:
                    if changed & 1:
                        sub = self._subscriptions.get(gpio)
                        if sub is not None:
                            level = (record.level >> gpio) & 1
                            calls.append((sub, gpio, level))
                    changed >>= 1
                    gpio += 1

        for sub, gpio, level in calls:
            if not sub.accepts(level):
                continue
            try:
                sub.handler(self._pi_id, gpio, int(level), record.tick)
            except Exception:
                logger.exception("Callback for GPIO %d failed", gpio)
