"""DHT22 humidity/temperature sensor decoded from GPIO edge callbacks.

After a start pulse the sensor answers with two header pulses followed by
40 data bits, most significant bit first::

    +-------------+-------------+-------------+-------------+-------------+
    | Humidity Hi | Humidity Lo |  Temp Hi    |  Temp Lo    |  Checksum   |
    |   8 bits    |   8 bits    | sign + 7 b  |   8 bits    |   8 bits    |
    +-------------+-------------+-------------+-------------+-------------+

- Each bit is a HIGH pulse; its width (rising to falling edge) encodes the
  value: about 26 us for 0, about 70 us for 1.
- Checksum: low byte of the sum of the four data bytes.
- Humidity and temperature are tenths; bit 7 of Temp Hi is the sign.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

from ..client import Pi
from ..protocol.commands import Edge, Level, Mode
from ..protocol.parser import tick_diff

logger = logging.getLogger(__name__)

HEADER_BITS = 2
FRAME_BITS = 40
ONE_THRESHOLD_US = 50
BAD_BIT_US = 200
STALE_SESSION_US = 250_000
BAD_CHECKSUM = 256
TRIGGER_PULSE_S = 0.017


@dataclass
class DHT22Result:
    """A successfully decoded reading."""

    temperature: float
    humidity: float
    timestamp: float


class DHT22Decoder:
    """Assembles 40-bit DHT22 frames from (level, tick) edge events.

    The state is implicit in :attr:`bit`: negative while the header pulses
    go by, 0-39 while data arrives. A good frame resets the accumulators;
    after a bad one :attr:`bit` stays parked at 40 or more until the next
    reset.
    """

    def __init__(self) -> None:
        self.temperature: float | None = None
        self.humidity: float | None = None
        self.last_read: float | None = None
        self.invalid_reads = 0
        self.high_tick = 0
        self.reset()

    def reset(self) -> None:
        """Discard any partially received frame."""
        self.bit = -HEADER_BITS
        self.h_hi = 0
        self.h_lo = 0
        self.t_hi = 0
        self.t_lo = 0
        self.checksum = 0

    def feed(self, level: int, tick: int) -> DHT22Result | None:
        """Consume one edge.

        Returns:
            A :class:`DHT22Result` when this edge completed a frame with a
            valid checksum, otherwise ``None``.
        """
        diff = tick_diff(self.high_tick, tick)

        if level == Level.HIGH:
            self.high_tick = tick
            if diff > STALE_SESSION_US:
                self.reset()
            return None

        if level != Level.LOW:
            return None

        # Pulse width classifies the bit; a very long pulse poisons the checksum.
        val = 1 if diff >= ONE_THRESHOLD_US else 0
        if diff >= BAD_BIT_US:
            self.checksum = BAD_CHECKSUM

        result = None
        if self.bit >= FRAME_BITS:
            self.bit = FRAME_BITS
        elif self.bit >= 32:
            self.checksum = (self.checksum << 1) | val
            if self.bit == FRAME_BITS - 1:
                result = self._complete()
        elif self.bit >= 24:
            self.t_lo = (self.t_lo << 1) | val
        elif self.bit >= 16:
            self.t_hi = (self.t_hi << 1) | val
        elif self.bit >= 8:
            self.h_lo = (self.h_lo << 1) | val
        elif self.bit >= 0:
            self.h_hi = (self.h_hi << 1) | val
        self.bit += 1
        if result is not None:
            self.reset()
        return result

    def _complete(self) -> DHT22Result | None:
        total = self.h_hi + self.h_lo + self.t_hi + self.t_lo
        if (total & 0xFF) != self.checksum:
            self.invalid_reads += 1
            logger.warning(
                "DHT22 checksum mismatch (expected 0x%02X, got 0x%X); %d invalid reads",
                total & 0xFF, self.checksum, self.invalid_reads,
            )
            return None

        self.humidity = ((self.h_hi << 8) | self.h_lo) / 10.0
        temperature = (((self.t_hi & 0x7F) << 8) | self.t_lo) / 10.0
        if self.t_hi & 0x80:
            temperature = -temperature
        self.temperature = temperature
        self.last_read = time.time()
        return DHT22Result(
            temperature=self.temperature,
            humidity=self.humidity,
            timestamp=self.last_read,
        )


class DHT22:
    """A DHT22 sensor on one GPIO of a remote Pi.

    Usage::

        sensor = DHT22(pi, 4)
        sensor.trigger()
        time.sleep(1)
        if sensor.last_read():
            print(sensor.temperature(), sensor.humidity())

    Do not trigger the sensor more often than every 3 seconds; it may
    stop answering.
    """

    def __init__(self, pi: Pi, gpio: int) -> None:
        if gpio is None:
            raise ValueError("DHT22 needs the GPIO number of the sensor data pin")
        self._pi = pi
        self._gpio = gpio
        self._decoder = DHT22Decoder()
        self._updated = threading.Event()
        pi.callback(gpio, Edge.EITHER, self._on_edge)

    @property
    def gpio(self) -> int:
        return self._gpio

    @property
    def invalid_reads(self) -> int:
        return self._decoder.invalid_reads

    def temperature(self) -> float | None:
        """Last decoded temperature in degrees Celsius."""
        return self._decoder.temperature

    def humidity(self) -> float | None:
        """Last decoded relative humidity in percent."""
        return self._decoder.humidity

    def last_read(self) -> float | None:
        """Unix timestamp of the last successful decode."""
        return self._decoder.last_read

    def trigger(self) -> None:
        """Ask the sensor for a new frame.

        The reading arrives asynchronously through the edge callback;
        poll :meth:`last_read` (or use :meth:`read`) to see when it lands.
        """
        self._decoder.reset()
        self._updated.clear()
        self._pi.set_mode(self._gpio, Mode.OUTPUT)
        self._pi.write(self._gpio, Level.LOW)
        time.sleep(TRIGGER_PULSE_S)
        self._pi.set_mode(self._gpio, Mode.INPUT)

    def read(self, timeout: float = 2.0) -> DHT22Result | None:
        """Trigger the sensor and wait up to ``timeout`` seconds for a reading."""
        previous = self.last_read()
        self.trigger()
        if not self._updated.wait(timeout) or self.last_read() == previous:
            logger.info("No DHT22 reading from GPIO %d within %.1fs", self._gpio, timeout)
            return None
        return DHT22Result(
            temperature=self.temperature(),
            humidity=self.humidity(),
            timestamp=self.last_read(),
        )

    def close(self) -> None:
        self._pi.cancel_callback(self._gpio)

    def _on_edge(self, pi_id: str, gpio: int, level: int, tick: int) -> None:
        if self._decoder.feed(level, tick) is not None:
            self._updated.set()
