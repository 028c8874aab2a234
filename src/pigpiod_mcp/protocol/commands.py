"""Command codes and pin constants.

Command codes follow the pigpio daemon's socket interface numbering.
Callers outside the protocol package use the typed operations on
:class:`pigpiod_mcp.client.Pi` instead of building frames directly.
"""

from __future__ import annotations

from enum import IntEnum


class Command(IntEnum):
    """Daemon command codes."""

    MODES = 0
    MODEG = 1
    PUD = 2
    READ = 3
    WRITE = 4
    WDOG = 9
    BR1 = 10
    BR2 = 11
    TICK = 16
    HWVER = 17
    NB = 19
    NC = 21
    PIGPV = 26
    TRIG = 37
    SPIO = 71
    SPIC = 72
    SPIR = 73
    SPIW = 74
    SPIX = 75
    SERO = 76
    SERC = 77
    SERRB = 78
    SERWB = 79
    SERR = 80
    SERW = 81
    SERDA = 82
    NOIB = 99


class Mode(IntEnum):
    """GPIO modes, in the daemon's numbering."""

    INPUT = 0
    OUTPUT = 1
    ALT0 = 4
    ALT1 = 5
    ALT2 = 6
    ALT3 = 7
    ALT4 = 3
    ALT5 = 2


class Level(IntEnum):
    """Levels delivered to callbacks. TIMEOUT marks a watchdog expiry."""

    LOW = 0
    HIGH = 1
    TIMEOUT = 2


class Pull(IntEnum):
    """Pull-up/down resistor settings."""

    OFF = 0
    DOWN = 1
    UP = 2


class Edge(IntEnum):
    """Which transitions a callback wants to see."""

    RISING = 0
    FALLING = 1
    EITHER = 2


# Notification record flags
NTFY_FLAGS_EVENT = 1 << 7
NTFY_FLAGS_ALIVE = 1 << 6
NTFY_FLAGS_WDOG = 1 << 5
NTFY_FLAGS_GPIO = 0x1F

MAX_GPIO = 53
MAX_USER_GPIO = 31
