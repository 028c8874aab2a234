"""MH-Z14 CO2 sensor read over the daemon's serial interface.

Read-concentration exchange, 9 bytes each way::

    request:  FF 01 86 00 00 00 00 00 79
    response: FF 86 HH LL xx xx xx xx CS

- ppm = HH * 256 + LL
- CS = 0x100 - (sum of bytes 1..7 & 0xFF), truncated to a byte
"""

from __future__ import annotations

import logging
import time

from ..client import Pi
from ..protocol.errors import DaemonError

logger = logging.getLogger(__name__)

READ_REQUEST = bytes([0xFF, 0x01, 0x86, 0x00, 0x00, 0x00, 0x00, 0x00, 0x79])
FRAME_SIZE = 9
POLL_ATTEMPTS = 100
POLL_INTERVAL_S = 0.001


def checksum(frame: bytes) -> int:
    """Compute the checksum byte of a 9-byte MH-Z14 frame."""
    return (0xFF - (sum(frame[1:8]) & 0xFF) + 1) & 0xFF


def parse_response(frame: bytes) -> int | None:
    """Return the CO2 concentration in ppm, or None for a bad frame."""
    if len(frame) != FRAME_SIZE or frame[0] != 0xFF:
        return None
    if checksum(frame) != frame[8]:
        logger.warning("MH-Z14 checksum mismatch in %s", frame.hex(" "))
        return None
    return frame[2] * 256 + frame[3]


class MHZ14:
    """An MH-Z14 sensor on a serial device of a remote Pi.

    Usage::

        sensor = MHZ14(pi, "/dev/ttyAMA0")
        ppm = sensor.read()
    """

    def __init__(self, pi: Pi, tty: str, baud: int = 9600) -> None:
        if not tty:
            raise ValueError("MH-Z14 needs the serial device the sensor is connected to")
        self._pi = pi
        self._tty = tty
        self._baud = baud

    @property
    def tty(self) -> str:
        return self._tty

    def read(self) -> int | None:
        """Read the CO2 concentration in ppm.

        Returns:
            The concentration, or None if no valid response arrived.

        Raises:
            DaemonError: If the serial device cannot be opened.
        """
        handle = self._pi.serial_open(self._tty, self._baud)
        if handle < 0:
            raise DaemonError(handle, f"open {self._tty}")
        try:
            self._pi.serial_write(handle, READ_REQUEST)
            available = 0
            for _ in range(POLL_ATTEMPTS):
                available = self._pi.serial_data_available(handle)
                if available >= FRAME_SIZE:
                    break
                time.sleep(POLL_INTERVAL_S)
            if available < FRAME_SIZE:
                logger.warning("MH-Z14 on %s did not answer (%d bytes)", self._tty, available)
                return None
            count, frame = self._pi.serial_read(handle, FRAME_SIZE)
            if count != FRAME_SIZE:
                logger.warning("MH-Z14 short read on %s: %d", self._tty, count)
                return None
        finally:
            self._pi.serial_close(handle)
        return parse_response(frame)
