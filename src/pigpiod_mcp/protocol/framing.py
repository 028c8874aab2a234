"""Command frame builder and response decoder for the pigpio socket protocol.

Command layout (all fields unsigned 32-bit, little-endian)::

    +-----------+-----------+-----------+-------------+--------------------+
    |  Command  |  Param 1  |  Param 2  | Extra length|  Extension payload |
    |  4 bytes  |  4 bytes  |  4 bytes  |   4 bytes   |  ``extra length`` B |
    +-----------+-----------+-----------+-------------+--------------------+

Response layout::

    +-----------+-----------+-----------+-------------+
    |  Command  |  Param 1  |  Param 2  |   Result    |
    |  4 bytes  |  4 bytes  |  4 bytes  | int32 (LE)  |
    +-----------+-----------+-----------+-------------+

- Simple commands carry ``extra length = 0`` and no payload.
- Extended commands append exactly ``extra length`` payload bytes, either
  packed uint32 words or a raw byte string depending on the command.
- The first 12 response bytes echo the request; only the result matters.
"""

from __future__ import annotations

import struct
from collections.abc import Iterable
from dataclasses import dataclass

from .errors import ProtocolError

HEADER = struct.Struct("<IIII")
RESPONSE = struct.Struct("<IIIi")
WORD = struct.Struct("<I")

COMMAND_SIZE = HEADER.size  # 16
RESPONSE_SIZE = RESPONSE.size  # 16
UINT32_MAX = 0xFFFFFFFF


@dataclass
class Response:
    """A decoded 16-byte daemon response."""

    command: int
    p1: int
    p2: int
    result: int

    def __repr__(self) -> str:
        return (
            f"Response(command={self.command}, p1={self.p1}, "
            f"p2={self.p2}, result={self.result})"
        )


def _uint32(name: str, value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    # Negative parameters are sent in two's complement, as the daemon expects.
    if not -(1 << 31) <= value <= UINT32_MAX:
        raise ValueError(f"{name} does not fit in 32 bits: {value}")
    return value & UINT32_MAX


def encode_simple(cmd: int, p1: int = 0, p2: int = 0) -> bytes:
    """Build a 16-byte command frame with no extension payload."""
    return HEADER.pack(
        _uint32("cmd", cmd), _uint32("p1", p1), _uint32("p2", p2), 0
    )


def encode_extended(cmd: int, p1: int, p2: int, payload: bytes) -> bytes:
    """Build a command frame followed by its extension payload.

    The length field always equals ``len(payload)``; the daemon rejects a
    frame whose declared length differs from the bytes that follow it.

    Returns:
        The header and payload as one contiguous ``bytes`` object.
    """
    payload = bytes(payload)
    header = HEADER.pack(
        _uint32("cmd", cmd),
        _uint32("p1", p1),
        _uint32("p2", p2),
        len(payload),
    )
    return header + payload


def pack_words(words: Iterable[int]) -> bytes:
    """Concatenate 32-bit values as little-endian words."""
    return b"".join(WORD.pack(_uint32("word", w)) for w in words)


def extra_length(frame: bytes) -> int:
    """Return the declared extension length of an encoded command frame."""
    if len(frame) < COMMAND_SIZE:
        raise ProtocolError(
            f"Command frame must be at least {COMMAND_SIZE} bytes, got {len(frame)}"
        )
    return HEADER.unpack_from(frame)[3]


def parse_response(data: bytes) -> Response:
    """Parse a 16-byte response frame.

    Raises:
        ProtocolError: If ``data`` is not exactly 16 bytes long.
    """
    if len(data) != RESPONSE_SIZE:
        raise ProtocolError(
            f"Response must be {RESPONSE_SIZE} bytes, got {len(data)}"
        )
    command, p1, p2, result = RESPONSE.unpack(data)
    return Response(command=command, p1=p1, p2=p2, result=result)


def decode_response(data: bytes) -> int:
    """Return the signed result carried in the last 4 bytes of a response.

    Negative values are daemon error codes and are returned unchanged.
    """
    return parse_response(data).result
