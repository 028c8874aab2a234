"""Protocol layer: command framing, constants, notification parsing, and errors."""

from .framing import decode_response, encode_extended, encode_simple, pack_words
from .commands import Command, Edge, Level, Mode, Pull
from .parser import NotificationRecord, parse_notification, tick_diff
from .errors import DaemonError, ErrorCode, PigpioError, ProtocolError, error_text
