"""Client and MCP server for the pigpio GPIO daemon."""

from .client import Pi, connect
from .protocol.commands import Edge, Level, Mode, Pull

__version__ = "0.1.0"
