"""MCP server entry point for a pigpio GPIO daemon.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .client import Pi
from .devices.dht22 import DHT22
from .devices.dsm501a import DSM501A
from .devices.mh_z14 import MHZ14
from .devices.switch import Switch
from .protocol.commands import MAX_GPIO, MAX_USER_GPIO, Edge, Level, Mode, Pull
from .protocol.errors import DaemonError, PigpioError, error_text
from .transport.socket_connection import DEFAULT_HOST, DEFAULT_PORT

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "pigpiod",
    instructions="MCP server for GPIO, sensors and relays behind a pigpio daemon",
)

# Global connection state
_pi: Pi | None = None
_switches: dict[int, Switch] = {}
_dht22: dict[int, DHT22] = {}

MODE_NAMES = {m.value: m.name for m in Mode}
PULL_NAMES = {p.name.lower(): p for p in Pull}


def _get_pi() -> Pi:
    """Get the active daemon connection, raising if not connected."""
    if _pi is None or not _pi.connected:
        raise RuntimeError(
            "Not connected to a pigpio daemon. Use the 'connect' tool first."
        )
    return _pi


def _daemon_error(code: int) -> dict[str, Any]:
    return {"error": error_text(code), "code": code}


def _check_gpio(gpio: int, highest: int = MAX_USER_GPIO) -> dict[str, Any] | None:
    if not 0 <= gpio <= highest:
        return {"error": f"GPIO must be 0-{highest}"}
    return None


def _reset_state() -> None:
    # A dropped connection loses its callbacks when the Pi is disconnected.
    if _pi is not None and _pi.connected:
        for gpio, sensor in _dht22.items():
            try:
                sensor.close()
            except (ConnectionError, PigpioError) as e:
                logger.warning("Could not cancel DHT22 callback on GPIO %d: %s", gpio, e)
    _dht22.clear()
    _switches.clear()


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> dict[str, Any]:
    """Open a connection to a pigpio daemon.

    Reads the daemon version and board revision to confirm it answers.

    Args:
        host: Daemon host name or address (default from PIGPIO_ADDR).
        port: Daemon TCP port (default from PIGPIO_PORT, normally 8888).
    """
    global _pi
    if _pi is not None and _pi.connected:
        return {"connected": True, "message": "Already connected", "pi": _pi.pi_id}
    if _pi is not None:
        logger.info("Replacing dropped connection %s", _pi.pi_id)
        _reset_state()
        _pi.disconnect()
        _pi = None

    pi = Pi(host, port)
    try:
        pi.open()
    except ConnectionError as e:
        return {"error": str(e)}
    _pi = pi

    return {
        "connected": True,
        "pi": pi.pi_id,
        "pigpio_version": pi.get_pigpio_version(),
        "hardware_revision": f"0x{pi.get_hardware_revision():X}",
    }


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the daemon connection, its callbacks and its watchdogs."""
    global _pi
    if _pi is None:
        return {"disconnected": True}
    _reset_state()
    _pi.disconnect()
    _pi = None
    return {"disconnected": True}


# ─── GPIO TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
def get_mode(gpio: int) -> dict[str, Any]:
    """Read the mode of a GPIO.

    Args:
        gpio: Broadcom GPIO number.
    """
    error = _check_gpio(gpio, MAX_GPIO)
    if error:
        return error
    mode = _get_pi().get_mode(gpio)
    if mode < 0:
        return _daemon_error(mode)
    return {"gpio": gpio, "mode": MODE_NAMES.get(mode, str(mode))}


@mcp.tool()
def set_mode(gpio: int, mode: str) -> dict[str, Any]:
    """Set the mode of a GPIO.

    Args:
        gpio: Broadcom GPIO number.
        mode: One of INPUT, OUTPUT, ALT0-ALT5.
    """
    try:
        value = Mode[mode.upper()]
    except KeyError:
        return {"error": f"Unknown mode '{mode}'", "modes": list(MODE_NAMES.values())}
    error = _check_gpio(gpio, MAX_GPIO)
    if error:
        return error
    result = _get_pi().set_mode(gpio, value)
    if result < 0:
        return _daemon_error(result)
    return {"gpio": gpio, "mode": value.name}


@mcp.tool()
def read_gpio(gpio: int) -> dict[str, Any]:
    """Read the level of a GPIO. Leaves the GPIO in INPUT mode.

    Args:
        gpio: Broadcom GPIO number.
    """
    error = _check_gpio(gpio, MAX_GPIO)
    if error:
        return error
    level = _get_pi().read(gpio)
    if level < 0:
        return _daemon_error(level)
    return {"gpio": gpio, "level": level}


@mcp.tool()
def write_gpio(gpio: int, level: int) -> dict[str, Any]:
    """Set the level of a GPIO. Leaves the GPIO in OUTPUT mode.

    Args:
        gpio: Broadcom GPIO number.
        level: 0 or 1.
    """
    if level not in (Level.LOW, Level.HIGH):
        return {"error": "Level must be 0 or 1"}
    error = _check_gpio(gpio, MAX_GPIO)
    if error:
        return error
    result = _get_pi().write(gpio, level)
    if result < 0:
        return _daemon_error(result)
    return {"gpio": gpio, "level": level}


@mcp.tool()
def set_pull(gpio: int, pull: str) -> dict[str, Any]:
    """Set the pull-up/down resistor of a GPIO.

    Args:
        gpio: Broadcom GPIO number.
        pull: "up", "down" or "off".
    """
    value = PULL_NAMES.get(pull.lower())
    if value is None:
        return {"error": f"Unknown pull '{pull}'", "pulls": list(PULL_NAMES)}
    error = _check_gpio(gpio, MAX_GPIO)
    if error:
        return error
    result = _get_pi().set_pull_up_down(gpio, value)
    if result < 0:
        return _daemon_error(result)
    return {"gpio": gpio, "pull": value.name.lower()}


@mcp.tool()
def trigger_pulse(gpio: int, pulse_len: int = 10, level: int = 1) -> dict[str, Any]:
    """Send a short trigger pulse on a GPIO.

    Args:
        gpio: Broadcom GPIO number.
        pulse_len: Pulse length in microseconds (1-100).
        level: Level of the pulse, 0 or 1.
    """
    error = _check_gpio(gpio, MAX_GPIO)
    if error:
        return error
    result = _get_pi().gpio_trigger(gpio, pulse_len, level)
    if result < 0:
        return _daemon_error(result)
    return {"gpio": gpio, "pulse_len": pulse_len, "level": level}


@mcp.tool()
def set_watchdog(gpio: int, timeout_ms: int) -> dict[str, Any]:
    """Arm or cancel the watchdog of a GPIO.

    Args:
        gpio: Broadcom GPIO number (0-31).
        timeout_ms: Timeout in milliseconds (0-60000); 0 cancels.
    """
    error = _check_gpio(gpio)
    if error:
        return error
    result = _get_pi().set_watchdog(gpio, timeout_ms)
    if result < 0:
        return _daemon_error(result)
    return {"gpio": gpio, "timeout_ms": timeout_ms}


@mcp.tool()
def read_levels() -> dict[str, Any]:
    """Read the levels of all GPIO in bank 1 (0-31)."""
    bits = _get_pi().read_bank_1()
    return {
        "bank1": f"0x{bits:08X}",
        "levels": {str(g): (bits >> g) & 1 for g in range(MAX_USER_GPIO + 1)},
    }


# ─── DEVICE TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
def switch(gpio: int, on: bool) -> dict[str, Any]:
    """Turn a relay or LED on a GPIO on or off.

    Args:
        gpio: Broadcom GPIO number.
        on: True to switch on (HIGH), False to switch off.
    """
    error = _check_gpio(gpio, MAX_GPIO)
    if error:
        return error
    pi = _get_pi()
    sw = _switches.get(gpio)
    if sw is None:
        sw = _switches[gpio] = Switch(pi, gpio)
    try:
        if on:
            sw.on()
        else:
            sw.off()
    except DaemonError as e:
        return _daemon_error(e.code)
    return {"gpio": gpio, "on": sw.status}


@mcp.tool()
def read_dht22(gpio: int, timeout: float = 2.0) -> dict[str, Any]:
    """Read temperature and humidity from a DHT22 sensor.

    Do not read the same sensor more often than every 3 seconds.

    Args:
        gpio: Broadcom GPIO number of the sensor data pin (0-31).
        timeout: Seconds to wait for the sensor to answer.
    """
    error = _check_gpio(gpio)
    if error:
        return error
    pi = _get_pi()
    sensor = _dht22.get(gpio)
    if sensor is None:
        sensor = _dht22[gpio] = DHT22(pi, gpio)

    reading = sensor.read(timeout)
    if reading is None:
        return {
            "error": "No valid reading from sensor",
            "gpio": gpio,
            "invalid_reads": sensor.invalid_reads,
        }
    return {
        "gpio": gpio,
        "temperature_c": reading.temperature,
        "humidity_pct": reading.humidity,
        "timestamp": reading.timestamp,
    }


@mcp.tool()
def read_co2(tty: str = "/dev/ttyAMA0") -> dict[str, Any]:
    """Read the CO2 concentration from an MH-Z14 sensor on a serial port.

    Args:
        tty: Serial device on the Pi the sensor is connected to.
    """
    try:
        ppm = MHZ14(_get_pi(), tty).read()
    except DaemonError as e:
        return _daemon_error(e.code)
    if ppm is None:
        return {"error": "No valid response from sensor", "tty": tty}
    return {"tty": tty, "co2_ppm": ppm}


@mcp.tool()
def sample_dust(gpio: int, seconds: float = 30) -> dict[str, Any]:
    """Sample a DSM501A dust sensor. Blocks for the whole window.

    Args:
        gpio: Broadcom GPIO number of the sensor output (0-31).
        seconds: Sampling window; 30 seconds or more is recommended.
    """
    error = _check_gpio(gpio)
    if error:
        return error
    if seconds <= 0:
        return {"error": "Sampling time must be positive"}
    try:
        pcs = DSM501A(_get_pi(), gpio).sample(seconds)
    except ValueError as e:
        return {"error": str(e)}
    return {"gpio": gpio, "seconds": seconds, "particles_per_m3": round(pcs)}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("pigpio://connection/status")
def resource_connection_status() -> str:
    """Daemon endpoint and connection state."""
    if _pi is None or not _pi.connected:
        return json.dumps({"connected": False})
    return json.dumps({
        "connected": True,
        "pi": _pi.pi_id,
        "switches": sorted(_switches),
        "dht22": sorted(_dht22),
    })


@mcp.resource("pigpio://gpio/levels")
def resource_gpio_levels() -> str:
    """Current levels of GPIO 0-31."""
    if _pi is None or not _pi.connected:
        return json.dumps({"connected": False})
    return json.dumps(read_levels())


@mcp.resource("pigpio://sensors/dht22")
def resource_dht22() -> str:
    """Last readings of the DHT22 sensors used in this session."""
    sensors = []
    for gpio in sorted(_dht22):
        sensor = _dht22[gpio]
        sensors.append({
            "gpio": gpio,
            "temperature_c": sensor.temperature(),
            "humidity_pct": sensor.humidity(),
            "last_read": sensor.last_read(),
            "invalid_reads": sensor.invalid_reads,
        })
    return json.dumps({"sensors": sensors})


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def diagnose_pin(gpio: int) -> str:
    """Walk through checking why a GPIO does not behave as expected.

    Args:
        gpio: Broadcom GPIO number to diagnose.
    """
    return f"""Diagnose GPIO {gpio} on the connected Pi.
Steps:
- Use get_mode to see whether the pin is INPUT, OUTPUT or an ALT function
- Use read_gpio to check its level; note that this leaves it in INPUT mode
- If it should be an output, use write_gpio with 1 then 0 and read back
- If it floats, try set_pull with "up" or "down" and read again
- An ALT mode means a peripheral (SPI, UART, I2C) owns the pin

Edge directions: {', '.join(e.name for e in Edge)}.
Report the findings and a likely wiring or configuration cause."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
