"""DSM501A dust sensor.

The sensor pulls its output LOW while particles pass the beam. The share of
LOW time over a sampling window (at least 30 s is recommended) is scaled to
particles per cubic metre of air using the datasheet curve.
"""

from __future__ import annotations

import logging
import queue
import time

from ..client import Pi
from ..protocol.commands import Edge, Level, Mode
from ..protocol.parser import tick_diff

logger = logging.getLogger(__name__)

MAX_PCS_PER_30S = 15_000
CUBIC_FEET_PER_M3 = 1 / 0.02831685
MAX_WATCHDOG_MS = 60_000


def particles_per_m3(low_us: int, elapsed_s: float, seconds: float) -> float:
    """Convert LOW time over a window into particles per cubic metre."""
    if elapsed_s <= 0:
        return 0.0
    ratio = (low_us / 1_000_000) * 100 / elapsed_s
    max_pcs = MAX_PCS_PER_30S * (seconds / 30)
    return max_pcs * ratio / 100 * CUBIC_FEET_PER_M3


class DSM501A:
    """A DSM501A sensor on one GPIO of a remote Pi.

    :meth:`sample` blocks for the whole sampling window.
    """

    def __init__(self, pi: Pi, gpio: int) -> None:
        if gpio is None:
            raise ValueError("DSM501A needs the GPIO number of the sensor output pin")
        self._pi = pi
        self._gpio = gpio

    @property
    def gpio(self) -> int:
        return self._gpio

    def sample(self, seconds: float = 30) -> float:
        """Sample the air for ``seconds`` and return particles per cubic metre.

        Raises:
            ValueError: If another handler is already registered on the GPIO.
        """
        if self._gpio in self._pi.callbacks():
            raise ValueError(f"GPIO {self._gpio} already has a callback registered")
        events: queue.Queue[tuple[int, int]] = queue.Queue()

        def on_edge(pi_id: str, gpio: int, level: int, tick: int) -> None:
            events.put((level, tick))

        self._pi.set_mode(self._gpio, Mode.INPUT)
        self._pi.callback(self._gpio, Edge.EITHER, on_edge)
        edges: list[tuple[int, int]] = []
        start = time.monotonic()
        try:
            while (elapsed := time.monotonic() - start) < seconds:
                remaining = seconds - elapsed
                self._pi.set_watchdog(
                    self._gpio, max(1, min(MAX_WATCHDOG_MS, int(remaining * 1000)))
                )
                try:
                    level, tick = events.get(timeout=remaining + 1.0)
                except queue.Empty:
                    break
                if level != Level.TIMEOUT:
                    edges.append((level, tick))
        finally:
            self._pi.set_watchdog(self._gpio, 0)
            self._pi.cancel_callback(self._gpio)
        elapsed = time.monotonic() - start

        # LOW time is the span from a falling edge to the next rising edge.
        low_us = 0
        for (_, prev_tick), (level, tick) in zip(edges, edges[1:]):
            if level == Level.HIGH:
                low_us += tick_diff(prev_tick, tick)

        pcs = particles_per_m3(low_us, elapsed, seconds)
        logger.info(
            "DSM501A on GPIO %d: %d edges, %d us low in %.1fs -> %.0f pcs/m3",
            self._gpio, len(edges), low_us, elapsed, pcs,
        )
        return pcs
