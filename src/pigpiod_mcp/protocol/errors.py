"""Error types and daemon error codes.

Socket failures surface as the built-in ``ConnectionError``. Negative
daemon results are ordinary return values; ``DaemonError`` is only raised
where a negative result leaves nothing sensible to continue with.
"""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    """Negative result codes returned by the pigpio daemon."""

    INIT_FAILED = -1
    BAD_USER_GPIO = -2
    BAD_GPIO = -3
    BAD_MODE = -4
    BAD_LEVEL = -5
    BAD_PUD = -6
    BAD_PULSEWIDTH = -7
    BAD_DUTYCYCLE = -8
    BAD_WDOG_TIMEOUT = -15
    NO_HANDLE = -24
    BAD_HANDLE = -25
    NOT_PERMITTED = -41
    SOME_PERMITTED = -42
    BAD_PULSELEN = -46
    SER_OPEN_FAILED = -72
    SPI_OPEN_FAILED = -73
    BAD_SPI_CHANNEL = -76
    BAD_FLAGS = -77
    BAD_SPI_SPEED = -78
    BAD_SER_DEVICE = -79
    BAD_SER_SPEED = -80
    BAD_PARAM = -81
    BAD_SPI_COUNT = -84
    SER_WRITE_FAILED = -85
    SER_READ_FAILED = -86
    SER_READ_NO_DATA = -87


_ERROR_TEXT: dict[ErrorCode, str] = {
    ErrorCode.INIT_FAILED: "pigpio initialisation failed",
    ErrorCode.BAD_USER_GPIO: "GPIO not 0-31",
    ErrorCode.BAD_GPIO: "GPIO not 0-53",
    ErrorCode.BAD_MODE: "mode not 0-7",
    ErrorCode.BAD_LEVEL: "level not 0-1",
    ErrorCode.BAD_PUD: "pud not 0-2",
    ErrorCode.BAD_PULSEWIDTH: "pulsewidth not 0 or 500-2500",
    ErrorCode.BAD_DUTYCYCLE: "dutycycle outside set range",
    ErrorCode.BAD_WDOG_TIMEOUT: "timeout not 0-60000",
    ErrorCode.NO_HANDLE: "no handle available",
    ErrorCode.BAD_HANDLE: "unknown handle",
    ErrorCode.NOT_PERMITTED: "GPIO operation not permitted",
    ErrorCode.SOME_PERMITTED: "one or more GPIO not permitted",
    ErrorCode.BAD_PULSELEN: "trigger pulse length not 1-100",
    ErrorCode.SER_OPEN_FAILED: "can't open serial device",
    ErrorCode.SPI_OPEN_FAILED: "can't open SPI device",
    ErrorCode.BAD_SPI_CHANNEL: "bad SPI channel",
    ErrorCode.BAD_FLAGS: "bad flags",
    ErrorCode.BAD_SPI_SPEED: "bad SPI speed",
    ErrorCode.BAD_SER_DEVICE: "bad serial device name",
    ErrorCode.BAD_SER_SPEED: "bad serial baud rate",
    ErrorCode.BAD_PARAM: "bad parameter",
    ErrorCode.BAD_SPI_COUNT: "bad SPI count",
    ErrorCode.SER_WRITE_FAILED: "serial write failed",
    ErrorCode.SER_READ_FAILED: "serial read failed",
    ErrorCode.SER_READ_NO_DATA: "no data available to read",
}


def error_text(code: int) -> str:
    """Return a human-readable description of a daemon result code."""
    if code >= 0:
        return "OK"
    try:
        return _ERROR_TEXT[ErrorCode(code)]
    except ValueError:
        return f"unknown error {code}"


class PigpioError(Exception):
    """Base class for errors raised by this package."""


class ProtocolError(PigpioError):
    """A frame was malformed or the byte stream lost synchronisation."""


class DaemonError(PigpioError):
    """The daemon answered a well-formed request with a negative code."""

    def __init__(self, code: int, operation: str = "") -> None:
        self.code = code
        self.operation = operation
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}{error_text(code)} ({code})")
