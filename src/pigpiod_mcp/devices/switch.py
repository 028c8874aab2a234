"""On/off outputs: relays, switches and LEDs.

Everything here is built on one capability, :class:`DigitalOutput`, which
owns a GPIO in OUTPUT mode. Switches and LEDs hold one rather than
subclassing it.
"""

from __future__ import annotations

import logging

from ..client import Pi
from ..protocol.commands import Level, Mode
from ..protocol.errors import DaemonError

logger = logging.getLogger(__name__)


class DigitalOutput:
    """A GPIO driven as a plain digital output.

    The GPIO is put in OUTPUT mode on the first :meth:`set_output` call.
    """

    def __init__(self, pi: Pi, gpio: int) -> None:
        if gpio is None:
            raise ValueError("A digital output needs a GPIO number")
        self._pi = pi
        self._gpio = gpio
        self._configured = False

    @property
    def gpio(self) -> int:
        return self._gpio

    def set_output(self, level: int) -> None:
        """Drive the GPIO to ``level``.

        Raises:
            DaemonError: If the daemon rejects the mode change or the write.
        """
        if not self._configured:
            result = self._pi.set_mode(self._gpio, Mode.OUTPUT)
            if result < 0:
                raise DaemonError(result, f"set GPIO {self._gpio} to output")
            self._configured = True
        result = self._pi.write(self._gpio, level)
        if result < 0:
            raise DaemonError(result, f"write GPIO {self._gpio}")


class Switch:
    """A relay or switch wired to a GPIO; HIGH means on."""

    def __init__(self, pi: Pi, gpio: int) -> None:
        self._output = DigitalOutput(pi, gpio)
        self._state: bool | None = None

    @property
    def gpio(self) -> int:
        return self._output.gpio

    @property
    def status(self) -> bool | None:
        """Last commanded state, ``None`` before the first command."""
        return self._state

    def on(self) -> None:
        self._output.set_output(Level.HIGH)
        self._state = True
        logger.info("GPIO %d switched on", self.gpio)

    def off(self) -> None:
        self._output.set_output(Level.LOW)
        self._state = False
        logger.info("GPIO %d switched off", self.gpio)

    def toggle(self) -> bool:
        """Flip the output and return the new state. Unknown counts as off."""
        if self._state:
            self.off()
        else:
            self.on()
        return self._state


# An LED is driven exactly like a switch.
LED = Switch
