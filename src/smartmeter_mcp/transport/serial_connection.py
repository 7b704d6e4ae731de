"""Serial connection to the Wi-SUN module.

The module (BP35A1, RL7023 Stick-D and similar) presents a UART at
115200 baud, 8 data bits, no parity, 1 stop bit. Reads are owned by a
:class:`LineMultiplexer`; this class only writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import serial

from .lines import DEFAULT_CAPACITY, LineMultiplexer

logger = logging.getLogger(__name__)

DEFAULT_BAUD_RATE = 115200
READER_JOIN_TIMEOUT = 1.0


@dataclass
class PortInfo:
    """Settings the port was opened with."""

    path: str = ""
    baud_rate: int = DEFAULT_BAUD_RATE
    bytesize: int = serial.EIGHTBITS
    parity: str = serial.PARITY_NONE
    stopbits: float = serial.STOPBITS_ONE


class SerialConnection:
    """Manages the serial port and its line multiplexer.

    Usage::

        conn = SerialConnection("/dev/ttyUSB0")
        conn.open()
        conn.write(b"SKVER\\r\\n")
        line = conn.lines.get(timeout=10)
        conn.close()
    """

    def __init__(
        self,
        path: str,
        baud_rate: int = DEFAULT_BAUD_RATE,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        self._info = PortInfo(path=path, baud_rate=baud_rate)
        self._capacity = capacity
        self._port: serial.Serial | None = None
        self._lines: LineMultiplexer | None = None

    @property
    def connected(self) -> bool:
        return self._port is not None and self._lines is not None and not self._lines.closed

    @property
    def port_info(self) -> PortInfo:
        return self._info

    @property
    def lines(self) -> LineMultiplexer:
        if self._lines is None:
            raise ConnectionError("Serial port is not open")
        return self._lines

    def open(self) -> PortInfo:
        """Open the port and start the reader thread.

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        try:
            port = serial.Serial(
                self._info.path,
                self._info.baud_rate,
                bytesize=self._info.bytesize,
                parity=self._info.parity,
                stopbits=self._info.stopbits,
                timeout=None,
            )
        except (serial.SerialException, ValueError) as e:
            raise ConnectionError(
                f"Could not open serial port {self._info.path!r}. "
                f"Ensure the Wi-SUN module is connected and you have permissions. "
                f"Last error: {e}"
            ) from e

        port.reset_input_buffer()
        port.reset_output_buffer()
        self._port = port
        self._lines = LineMultiplexer(port, capacity=self._capacity)
        self._lines.start()
        logger.info("Opened %s at %d baud", self._info.path, self._info.baud_rate)
        return self._info

    def close(self) -> None:
        """Stop the reader thread and close the port."""
        if self._port is None:
            return
        try:
            self._port.cancel_read()
        except serial.SerialException as e:
            logger.debug("Could not cancel pending read: %s", e)
        try:
            if self._lines is not None:
                self._lines.close()
                self._lines.join(READER_JOIN_TIMEOUT)
                if self._lines.running:
                    logger.warning("Line reader did not stop within %gs", READER_JOIN_TIMEOUT)
            else:
                self._port.close()
        finally:
            self._port = None
            logger.info("Disconnected")

    def write(self, data: bytes) -> int:
        """Write raw bytes to the module.

        Raises:
            ConnectionError: If not connected.
        """
        if self._port is None:
            raise ConnectionError("Serial port is not open")
        return self._port.write(data)

    def flush(self) -> None:
        if self._port is None:
            raise ConnectionError("Serial port is not open")
        self._port.flush()
