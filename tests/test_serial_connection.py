"""Tests for SerialConnection with pyserial mocked out."""

from unittest.mock import MagicMock, patch

import pytest
import serial

from smartmeter_mcp.errors import LinkClosed
from smartmeter_mcp.transport.serial_connection import SerialConnection


def _mock_port(lines=(b"",)):
    port = MagicMock()
    port.readline.side_effect = list(lines) + [b""] * 10
    return port


def test_open_uses_8n1():
    port = _mock_port()
    with patch("serial.Serial", return_value=port) as serial_cls:
        conn = SerialConnection("/dev/ttyUSB0")
        info = conn.open()

    serial_cls.assert_called_once_with(
        "/dev/ttyUSB0",
        115200,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        timeout=None,
    )
    port.reset_input_buffer.assert_called_once()
    assert info.path == "/dev/ttyUSB0"


def test_lines_come_from_the_port():
    port = _mock_port([b"EVER 1.2.10\r\n", b"OK\r\n"])
    with patch("serial.Serial", return_value=port):
        conn = SerialConnection("/dev/ttyUSB0")
        conn.open()

    assert conn.lines.get(timeout=1) == "EVER 1.2.10"
    assert conn.lines.get(timeout=1) == "OK"
    with pytest.raises(LinkClosed):
        conn.lines.get(timeout=1)
    assert not conn.connected


def test_write_and_close():
    port = _mock_port()
    with patch("serial.Serial", return_value=port):
        conn = SerialConnection("/dev/ttyUSB0", baud_rate=9600)
        conn.open()
    conn.write(b"SKVER\r\n")
    conn.flush()
    port.write.assert_called_once_with(b"SKVER\r\n")
    port.flush.assert_called_once()

    conn.close()
    port.cancel_read.assert_called_once()
    port.close.assert_called_once()
    with pytest.raises(ConnectionError):
        conn.write(b"SKVER\r\n")


def test_open_failure_raises_connection_error():
    error = serial.SerialException("could not open port /dev/ttyUSB9")
    with patch("serial.Serial", side_effect=error):
        conn = SerialConnection("/dev/ttyUSB9")
        with pytest.raises(ConnectionError) as excinfo:
            conn.open()
    assert excinfo.value.__cause__ is error
    assert not conn.connected


def test_lines_before_open():
    with pytest.raises(ConnectionError):
        SerialConnection("/dev/ttyUSB0").lines


def test_close_stops_reader_with_unread_lines():
    port = _mock_port([f"EVENT 21 FE80::{i} 00\r\n".encode() for i in range(8)])
    with patch("serial.Serial", return_value=port):
        conn = SerialConnection("/dev/ttyUSB0")
        conn.open()
    lines = conn.lines

    conn.close()

    assert not lines.running
    assert not conn.connected
    with pytest.raises(LinkClosed):
        lines.get(timeout=0)
