"""Parsing for the notification stream."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from .commands import (
    NTFY_FLAGS_ALIVE,
    NTFY_FLAGS_EVENT,
    NTFY_FLAGS_GPIO,
    NTFY_FLAGS_WDOG,
)
from .errors import ProtocolError

NOTIFICATION = struct.Struct("<HHII")
NOTIFICATION_SIZE = NOTIFICATION.size  # 12
TICK_WRAP = 1 << 32


@dataclass
class NotificationRecord:
    """One 12-byte record from a notification stream.

    ``level`` holds the current level of GPIO 0-31, one bit per pin.
    ``tick`` is the daemon's microsecond clock, wrapping at 2**32.
    """

    seq: int
    flags: int
    tick: int
    level: int

    @property
    def is_watchdog(self) -> bool:
        return bool(self.flags & NTFY_FLAGS_WDOG)

    @property
    def is_alive(self) -> bool:
        return bool(self.flags & NTFY_FLAGS_ALIVE)

    @property
    def is_event(self) -> bool:
        return bool(self.flags & NTFY_FLAGS_EVENT)

    @property
    def gpio(self) -> int:
        """GPIO named by a watchdog or alive record."""
        return self.flags & NTFY_FLAGS_GPIO

    def __repr__(self) -> str:
        return (
            f"NotificationRecord(seq={self.seq}, flags=0x{self.flags:04X}, "
            f"tick={self.tick}, level=0x{self.level:08X})"
        )


def parse_notification(data: bytes) -> NotificationRecord:
    """Parse a 12-byte notification record.

    Raises:
        ProtocolError: If ``data`` is not exactly 12 bytes long.
    """
    if len(data) != NOTIFICATION_SIZE:
        raise ProtocolError(
            f"Notification record must be {NOTIFICATION_SIZE} bytes, got {len(data)}"
        )
    seq, flags, tick, level = NOTIFICATION.unpack(data)
    return NotificationRecord(seq=seq, flags=flags, tick=tick, level=level)


def tick_diff(start: int, end: int) -> int:
    """Microseconds from ``start`` to ``end`` on the wrapping 32-bit clock.

    The result is always in ``[0, 2**32)``.
    """
    return (end - start) % TICK_WRAP
