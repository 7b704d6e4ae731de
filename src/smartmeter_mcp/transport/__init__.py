"""Transport layer: serial port and line multiplexing."""

from .lines import LineMultiplexer
from .serial_connection import SerialConnection
